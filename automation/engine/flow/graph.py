"""
Grafo tipado do workflow.

Cada node carrega uma config tipada (dataclass) escolhida pelo seu NodeType.
A config é validada em tempo de carga: um campo obrigatório ausente vira
NodeConfigError com o id do node, antes de qualquer step executar.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from automation.engine.errors import NodeConfigError, WorkflowGraphError
from automation.engine.flow.branching import ConditionOperator, normalize_branch_key

logger = logging.getLogger(__name__)


class NodeType(str, Enum):
    """Tipos de node suportados (enum fechado)"""
    START = 'START'
    CONTENT = 'CONTENT'
    CONDITION = 'CONDITION'
    DELAY = 'DELAY'
    HTTP = 'HTTP'
    TOOL_CALL = 'TOOL_CALL'
    ASSIGN_QUEUE = 'ASSIGN_QUEUE'
    MENU = 'MENU'

    @property
    def is_branching(self) -> bool:
        """Nodes cujas edges são escolhidas pelo branch key"""
        return self in (NodeType.CONDITION, NodeType.MENU)

    @classmethod
    def parse(cls, node_id: str, raw: Any) -> 'NodeType':
        name = str(raw or '').strip().upper().replace('-', '_')
        name = NODE_TYPE_ALIASES.get(name, name)
        try:
            return cls(name)
        except ValueError:
            raise NodeConfigError(node_id, f"unknown node type '{raw}'")


# Nomes usados pelo editor visual
NODE_TYPE_ALIASES = {
    'OPENAI': 'TOOL_CALL',
    'TOOL': 'TOOL_CALL',
    'AI_ACTION': 'TOOL_CALL',
    'MESSAGE': 'CONTENT',
    'WAIT': 'DELAY',
    'WEBHOOK': 'HTTP',
}

HTTP_METHODS = ('GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'HEAD')

DELAY_UNITS = {
    'seconds': 1,
    'minutes': 60,
    'hours': 3600,
    'days': 86400,
}


@dataclass
class StartConfig:
    pass


@dataclass
class ContentConfig:
    message: str
    channel: Optional[str] = None
    recipient: Optional[str] = None
    integration_id: Optional[str] = None


@dataclass
class ConditionConfig:
    field: str
    raw_operator: str
    value: Any = None
    # None quando o operador é desconhecido (avalia sempre como false)
    operator: Optional[ConditionOperator] = None


@dataclass
class DelayConfig:
    seconds: float


@dataclass
class HttpConfig:
    url: str
    method: str = 'GET'
    headers: Dict[str, Any] = field(default_factory=dict)
    body: Any = None
    response_key: str = 'httpResponse'
    timeout: Optional[float] = None


@dataclass
class ToolCallConfig:
    tool_name: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    result_key: str = 'toolResult'


@dataclass
class AssignQueueConfig:
    queue_id: str
    user_id: Optional[str] = None

    @property
    def target(self) -> Dict[str, Any]:
        target = {'queue_id': self.queue_id}
        if self.user_id:
            target['user_id'] = self.user_id
        return target


@dataclass
class MenuOption:
    key: str
    label: str


@dataclass
class MenuConfig:
    prompt: str
    options: List[MenuOption]
    channel: Optional[str] = None
    recipient: Optional[str] = None
    integration_id: Optional[str] = None
    response_key: str = 'menuResponse'

    def render_prompt(self, prompt: str) -> str:
        lines = [prompt]
        for index, option in enumerate(self.options, start=1):
            lines.append(f"{index}. {option.label}")
        return '\n'.join(lines)

    def match_reply(self, reply: str) -> Optional[str]:
        """Casa a resposta com a chave, o label ou o índice (1-based) de uma opção"""
        text = normalize_branch_key(reply)
        if not text:
            return None
        for option in self.options:
            if text in (normalize_branch_key(option.key), normalize_branch_key(option.label)):
                return option.key
        if text.isdigit():
            index = int(text)
            if 1 <= index <= len(self.options):
                return self.options[index - 1].key
        return None


NodeConfig = Union[
    StartConfig, ContentConfig, ConditionConfig, DelayConfig,
    HttpConfig, ToolCallConfig, AssignQueueConfig, MenuConfig,
]


def _first(raw: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ''):
            return value
    return None


def _required_str(node_id: str, raw: Dict[str, Any], *keys: str) -> str:
    value = _first(raw, *keys)
    if value is None or not isinstance(value, (str, int, float)):
        raise NodeConfigError(node_id, f"missing required field '{keys[0]}'")
    return str(value)


def _optional_str(raw: Dict[str, Any], *keys: str) -> Optional[str]:
    value = _first(raw, *keys)
    return str(value) if value is not None else None


def _number(node_id: str, name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise NodeConfigError(node_id, f"'{name}' must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise NodeConfigError(node_id, f"'{name}' must be a number")
    if not math.isfinite(number) or number < 0:
        raise NodeConfigError(node_id, f"'{name}' must be a non-negative number")
    return number


def _parse_start(node_id: str, raw: Dict[str, Any]) -> StartConfig:
    return StartConfig()


def _parse_content(node_id: str, raw: Dict[str, Any]) -> ContentConfig:
    channel = _optional_str(raw, 'channel')
    return ContentConfig(
        message=_required_str(node_id, raw, 'message', 'text', 'content'),
        channel=channel.lower() if channel else None,
        recipient=_optional_str(raw, 'recipient', 'to'),
        integration_id=_optional_str(raw, 'integration_id', 'integrationId'),
    )


def _parse_condition(node_id: str, raw: Dict[str, Any]) -> ConditionConfig:
    raw_operator = _required_str(node_id, raw, 'operator', 'op')
    operator = ConditionOperator.parse(raw_operator)
    if operator is None:
        logger.warning(f"Node {node_id}: unknown condition operator '{raw_operator}', evaluates to false")
    return ConditionConfig(
        field=_required_str(node_id, raw, 'field', 'variable'),
        raw_operator=raw_operator,
        value=raw.get('value'),
        operator=operator,
    )


def _parse_delay(node_id: str, raw: Dict[str, Any]) -> DelayConfig:
    if raw.get('seconds') is not None:
        return DelayConfig(seconds=_number(node_id, 'seconds', raw['seconds']))

    for key, unit in (('minutes', 'minutes'), ('delay_minutes', 'minutes'), ('hours', 'hours'), ('days', 'days')):
        if raw.get(key) is not None:
            return DelayConfig(seconds=_number(node_id, key, raw[key]) * DELAY_UNITS[unit])

    amount = _first(raw, 'duration', 'delay', 'amount')
    if amount is None:
        raise NodeConfigError(node_id, "missing required field 'duration'")

    unit = str(raw.get('unit') or 'seconds').lower()
    if not unit.endswith('s'):
        unit = f"{unit}s"
    if unit not in DELAY_UNITS:
        raise NodeConfigError(node_id, f"unknown delay unit '{raw.get('unit')}'")

    return DelayConfig(seconds=_number(node_id, 'duration', amount) * DELAY_UNITS[unit])


def _parse_http(node_id: str, raw: Dict[str, Any]) -> HttpConfig:
    method = str(raw.get('method') or 'GET').upper()
    if method not in HTTP_METHODS:
        raise NodeConfigError(node_id, f"unsupported HTTP method '{method}'")

    headers = raw.get('headers') or {}
    if not isinstance(headers, dict):
        raise NodeConfigError(node_id, "'headers' must be an object")

    timeout = raw.get('timeout')
    return HttpConfig(
        url=_required_str(node_id, raw, 'url'),
        method=method,
        headers=headers,
        body=_first(raw, 'body', 'data'),
        response_key=_optional_str(raw, 'response_key', 'responseKey', 'saveAs') or 'httpResponse',
        timeout=_number(node_id, 'timeout', timeout) if timeout is not None else None,
    )


def _parse_tool_call(node_id: str, raw: Dict[str, Any]) -> ToolCallConfig:
    parameters = _first(raw, 'parameters', 'params') or {}
    if not isinstance(parameters, dict):
        raise NodeConfigError(node_id, "'parameters' must be an object")

    return ToolCallConfig(
        tool_name=_required_str(node_id, raw, 'tool_name', 'toolName', 'tool'),
        parameters=parameters,
        result_key=_optional_str(raw, 'result_key', 'resultKey', 'saveAs') or 'toolResult',
    )


def _parse_assign_queue(node_id: str, raw: Dict[str, Any]) -> AssignQueueConfig:
    return AssignQueueConfig(
        queue_id=_required_str(node_id, raw, 'queue_id', 'queueId', 'queue'),
        user_id=_optional_str(raw, 'user_id', 'userId'),
    )


def _parse_menu(node_id: str, raw: Dict[str, Any]) -> MenuConfig:
    raw_options = raw.get('options')
    if not isinstance(raw_options, list) or not raw_options:
        raise NodeConfigError(node_id, "missing required field 'options'")

    options = []
    for raw_option in raw_options:
        if isinstance(raw_option, dict):
            key = _first(raw_option, 'key', 'id', 'value')
            if key is None:
                raise NodeConfigError(node_id, "menu option without 'key'")
            label = _first(raw_option, 'label', 'text') or key
            options.append(MenuOption(key=str(key), label=str(label)))
        elif isinstance(raw_option, (str, int)):
            options.append(MenuOption(key=str(raw_option), label=str(raw_option)))
        else:
            raise NodeConfigError(node_id, "menu options must be strings or objects")

    channel = _optional_str(raw, 'channel')
    return MenuConfig(
        prompt=_required_str(node_id, raw, 'prompt', 'message', 'text'),
        options=options,
        channel=channel.lower() if channel else None,
        recipient=_optional_str(raw, 'recipient', 'to'),
        integration_id=_optional_str(raw, 'integration_id', 'integrationId'),
        response_key=_optional_str(raw, 'response_key', 'responseKey') or 'menuResponse',
    )


CONFIG_PARSERS = {
    NodeType.START: _parse_start,
    NodeType.CONTENT: _parse_content,
    NodeType.CONDITION: _parse_condition,
    NodeType.DELAY: _parse_delay,
    NodeType.HTTP: _parse_http,
    NodeType.TOOL_CALL: _parse_tool_call,
    NodeType.ASSIGN_QUEUE: _parse_assign_queue,
    NodeType.MENU: _parse_menu,
}


def parse_node_config(node_id: str, node_type: NodeType, raw: Any) -> NodeConfig:
    """
    Valida e converte a config crua de um node na dataclass do seu tipo.

    Raises:
        NodeConfigError: config malformada ou campo obrigatório ausente
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise NodeConfigError(node_id, 'config must be an object')
    return CONFIG_PARSERS[node_type](node_id, raw)


@dataclass
class Node:
    id: str
    type: NodeType
    config: NodeConfig
    label: Optional[str] = None


@dataclass
class Edge:
    source: str
    target: str
    label: Optional[str] = None


@dataclass
class WorkflowDefinition:
    """Workflow já normalizado, como entregue pelo Graph Store"""
    workflow_id: str
    tenant_id: str
    active: bool
    nodes: List[Dict[str, Any]] = field(default_factory=list)
    edges: List[Dict[str, Any]] = field(default_factory=list)
    entry_node_id: Optional[str] = None

    def find_start_node_id(self) -> Optional[str]:
        for raw in self.nodes:
            if str(raw.get('type') or '').strip().upper() == NodeType.START.value:
                return str(raw['id'])
        return None


class WorkflowGraph:
    """Grafo compilado: nodes tipados e edges indexadas pela origem"""

    def __init__(
        self,
        workflow_id: str,
        tenant_id: str,
        active: bool,
        nodes: Dict[str, Node],
        edges: List[Edge],
        start_node_id: str,
    ):
        self.workflow_id = workflow_id
        self.tenant_id = tenant_id
        self.active = active
        self.nodes = nodes
        self.start_node_id = start_node_id
        self._edges_by_source: Dict[str, List[Edge]] = {}
        for edge in edges:
            self._edges_by_source.setdefault(edge.source, []).append(edge)

    def get_node(self, node_id: Optional[str]) -> Node:
        node = self.nodes.get(node_id) if node_id else None
        if node is None:
            raise WorkflowGraphError(self.workflow_id, f"node '{node_id}' does not belong to the workflow")
        return node

    def outgoing(self, node_id: str) -> List[Edge]:
        return list(self._edges_by_source.get(node_id, []))

    @property
    def start_node(self) -> Node:
        return self.nodes[self.start_node_id]


def compile_graph(definition: WorkflowDefinition) -> WorkflowGraph:
    """
    Compila um WorkflowDefinition em WorkflowGraph.

    Raises:
        NodeConfigError: node com tipo ou config inválidos
        WorkflowGraphError: estrutura inválida (START ausente ou duplicado,
            edge apontando para node inexistente, saídas ambíguas)
    """
    workflow_id = definition.workflow_id
    nodes: Dict[str, Node] = {}

    for raw in definition.nodes:
        node_id = str(raw.get('id') or '')
        if not node_id:
            raise WorkflowGraphError(workflow_id, 'node without id')
        if node_id in nodes:
            raise WorkflowGraphError(workflow_id, f"duplicate node id '{node_id}'")

        node_type = NodeType.parse(node_id, raw.get('type'))
        nodes[node_id] = Node(
            id=node_id,
            type=node_type,
            config=parse_node_config(node_id, node_type, raw.get('config')),
            label=raw.get('label'),
        )

    start_ids = [n.id for n in nodes.values() if n.type == NodeType.START]
    if len(start_ids) != 1:
        raise WorkflowGraphError(workflow_id, f"expected exactly one START node, found {len(start_ids)}")
    start_node_id = start_ids[0]

    if definition.entry_node_id and definition.entry_node_id != start_node_id:
        raise WorkflowGraphError(workflow_id, f"entry node '{definition.entry_node_id}' is not the START node")

    edges = []
    for raw in definition.edges:
        source, target = str(raw.get('source')), str(raw.get('target'))
        if source not in nodes or target not in nodes:
            raise WorkflowGraphError(workflow_id, f"edge {source} -> {target} references an unknown node")
        label = raw.get('label')
        edges.append(Edge(source=source, target=target, label=normalize_branch_key(label) if label is not None else None))

    graph = WorkflowGraph(
        workflow_id=workflow_id,
        tenant_id=definition.tenant_id,
        active=definition.active,
        nodes=nodes,
        edges=edges,
        start_node_id=start_node_id,
    )

    for node in nodes.values():
        outgoing = graph.outgoing(node.id)
        if not node.type.is_branching:
            if len(outgoing) > 1:
                raise WorkflowGraphError(workflow_id, f"node '{node.id}' has {len(outgoing)} outgoing edges")
            continue
        labels = [edge.label for edge in outgoing if edge.label is not None]
        if len(labels) != len(set(labels)):
            raise WorkflowGraphError(workflow_id, f"node '{node.id}' has duplicate branch labels")

    return graph
