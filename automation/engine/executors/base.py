"""
Base dos Node Executors.

Cada executor é uma função async (node, context, deps) -> NodeResult. O
executor não altera o contexto: devolve um patch de variáveis que o Run
Driver aplica.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Dict, Optional

from automation.engine.collaborators import Recipient, address_for_channel
from automation.engine.errors import TransientNodeError
from automation.engine.variable_resolver import VariableResolver

logger = logging.getLogger(__name__)


@dataclass
class Suspension:
    """Pedido de suspensão: timer (DELAY) ou input (MENU)"""
    kind: str
    resume_at: Optional[datetime] = None

    TIMER = 'timer'
    INPUT = 'input'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'resume_at': self.resume_at.isoformat() if self.resume_at else None,
        }


@dataclass
class NodeResult:
    success: bool = True
    context_patch: Dict[str, Any] = field(default_factory=dict)
    suspend: Optional[Suspension] = None
    branch_key: Optional[str] = None
    output: Dict[str, Any] = field(default_factory=dict)

    def to_log_result(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {'success': self.success, 'output': self.output}
        if self.branch_key is not None:
            result['branch_key'] = self.branch_key
        if self.suspend is not None:
            result['suspend'] = self.suspend.to_dict()
        return result


async def with_timeout(awaitable: Awaitable[Any], timeout: float, node_id: str, what: str) -> Any:
    """
    Aguarda uma chamada externa com limite de tempo.

    Raises:
        TransientNodeError: timeout ou falha temporária do colaborador
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise TransientNodeError(node_id, f"{what} timed out after {timeout}s") from e
    except TransientNodeError as e:
        if e.node_id is None:
            e.node_id = node_id
        raise


def resolve_recipient(
    config: Any,
    context: Any,
    channel: str,
    resolver: VariableResolver,
) -> Optional[Recipient]:
    """
    Resolve o destinatário de CONTENT/MENU.

    Ordem: recipient da config (template), endereço do contato do run no
    canal, chave de correlação do run.
    """
    contact = context.variables.get('contact')
    if not isinstance(contact, dict):
        contact = {}

    if config.recipient:
        address = resolver.render(config.recipient).strip()
    else:
        address = address_for_channel(contact, channel) or context.correlation_key

    if not address:
        return None

    return Recipient(
        address=str(address),
        channel=channel,
        contact_id=contact.get('id'),
        integration_id=config.integration_id or contact.get('integration_id'),
    )


def idempotency_key(context: Any, node_id: str) -> str:
    """Estável entre retentativas do mesmo step"""
    return f"{context.run_id}:{node_id}:{context.step_count}"
