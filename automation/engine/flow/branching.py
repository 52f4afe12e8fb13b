"""
Branching Logic - avaliação de CONDITION e resolução de edges.

Operadores formam um enum fechado com regras explícitas de coerção:
- greater_than/less_than: os dois lados são convertidos para número
- equals/not_equals: numérico se um dos lados é número, booleano se um
  dos lados é bool, senão comparação de strings
- contains: substring em strings, pertinência em listas

Qualquer falha de coerção, campo ausente ou operador desconhecido avalia
como False (fail-closed).
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from automation.engine.variable_resolver import VariableResolver

logger = logging.getLogger(__name__)


class ConditionOperator(str, Enum):
    """Condition operators for CONDITION nodes"""
    EQUALS = 'equals'
    NOT_EQUALS = 'not_equals'
    CONTAINS = 'contains'
    GREATER_THAN = 'greater_than'
    LESS_THAN = 'less_than'

    @classmethod
    def parse(cls, raw: Any) -> Optional['ConditionOperator']:
        """Retorna o operador ou None se desconhecido"""
        name = str(raw or '').strip().lower()
        name = OPERATOR_ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            return None


OPERATOR_ALIASES = {
    '==': 'equals',
    '=': 'equals',
    'eq': 'equals',
    '!=': 'not_equals',
    'ne': 'not_equals',
    'neq': 'not_equals',
    '>': 'greater_than',
    'gt': 'greater_than',
    '<': 'less_than',
    'lt': 'less_than',
    'includes': 'contains',
}


class CoercionError(ValueError):
    pass


def normalize_branch_key(value: Any) -> str:
    """Forma canônica de labels de edge e branch keys"""
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value).strip().lower()


def _to_number(value: Any) -> float:
    if isinstance(value, bool) or value is None:
        raise CoercionError(f"{value!r} is not a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise CoercionError(f"{value!r} is not a number")
    if math.isnan(number):
        raise CoercionError('NaN is not comparable')
    return number


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    raise CoercionError(f"{value!r} is not a boolean")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _equals(actual: Any, expected: Any) -> bool:
    if isinstance(actual, bool) or isinstance(expected, bool):
        return _to_bool(actual) == _to_bool(expected)
    if _is_number(actual) or _is_number(expected):
        return _to_number(actual) == _to_number(expected)
    if isinstance(actual, (dict, list)) or isinstance(expected, (dict, list)):
        return actual == expected
    return str(actual) == str(expected)


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str):
        return str(expected) in actual
    if isinstance(actual, list):
        return expected in actual or str(expected) in [str(item) for item in actual]
    if isinstance(actual, dict):
        return str(expected) in actual
    raise CoercionError(f"contains is not defined for {type(actual).__name__}")


def compare(actual: Any, operator: Optional[ConditionOperator], expected: Any) -> bool:
    """
    Aplica o operador com as regras de coerção.

    Returns:
        Resultado da comparação; False para operador desconhecido,
        campo ausente ou falha de coerção
    """
    if operator is None or actual is None:
        return False

    try:
        if operator == ConditionOperator.EQUALS:
            return _equals(actual, expected)
        if operator == ConditionOperator.NOT_EQUALS:
            return not _equals(actual, expected)
        if operator == ConditionOperator.CONTAINS:
            return _contains(actual, expected)
        if operator == ConditionOperator.GREATER_THAN:
            return _to_number(actual) > _to_number(expected)
        if operator == ConditionOperator.LESS_THAN:
            return _to_number(actual) < _to_number(expected)
    except CoercionError as e:
        logger.debug(f"Condition coercion failed ({operator.value}): {e}")
        return False

    return False


def evaluate_condition(config: Any, variables: Dict[str, Any]) -> bool:
    """
    Avalia um ConditionConfig contra o mapa de variáveis.

    O campo pode ser um path ("contact.age") ou um template ("{{contact.age}}").
    O valor esperado aceita templates.
    """
    resolver = VariableResolver(variables)
    field_ref = config.field.strip()

    if VariableResolver.VARIABLE_PATTERN.search(field_ref):
        actual = resolver.resolve(field_ref)
    else:
        actual = resolver.lookup(field_ref)

    expected = resolver.resolve(config.value)
    return compare(actual, config.operator, expected)


@dataclass
class EdgeResolution:
    """Próximo node (ou None para término) e o motivo"""
    next_node_id: Optional[str]
    reason: str

    COMPLETED = 'completed'
    NO_MATCHING_BRANCH = 'no_matching_branch'
    FOLLOW = 'follow'

    @property
    def is_terminal(self) -> bool:
        return self.next_node_id is None


def resolve_next_node(graph: Any, node: Any, branch_key: Optional[Any]) -> EdgeResolution:
    """
    Escolhe o próximo node.

    Nodes comuns seguem a única edge de saída (ou terminam se não há).
    CONDITION/MENU seguem a edge cujo label é igual ao branch key; sem
    edge correspondente o run termina ali, sem cair em outra edge.
    """
    outgoing = graph.outgoing(node.id)

    if not node.type.is_branching:
        if not outgoing:
            return EdgeResolution(None, EdgeResolution.COMPLETED)
        return EdgeResolution(outgoing[0].target, EdgeResolution.FOLLOW)

    if branch_key is None:
        logger.warning(f"Node {node.id} produced no branch key")
        return EdgeResolution(None, EdgeResolution.NO_MATCHING_BRANCH)

    key = normalize_branch_key(branch_key)
    for edge in outgoing:
        if edge.label is not None and edge.label == key:
            return EdgeResolution(edge.target, EdgeResolution.FOLLOW)

    logger.info(f"Node {node.id}: no edge labeled '{key}', run halts")
    return EdgeResolution(None, EdgeResolution.NO_MATCHING_BRANCH)
