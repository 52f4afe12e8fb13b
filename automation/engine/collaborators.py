"""
Contratos dos colaboradores externos do engine.

O engine só conhece estas interfaces; as implementações concretas
(gateways HTTP) são construídas uma vez no start do processo e injetadas
via EngineDeps. Colaboradores nunca tocam no Graph Store nem no contexto.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

import httpx

from automation.engine.errors import CollaboratorError, TransientNodeError

logger = logging.getLogger(__name__)


# Campo do contato que endereça cada canal
CHANNEL_ADDRESS_FIELDS = {
    'whatsapp': 'phone',
    'sms': 'phone',
    'facebook': 'facebook_id',
    'instagram': 'instagram_id',
}


@dataclass
class Recipient:
    """Destinatário de uma mensagem em um canal"""
    address: str
    channel: str
    contact_id: Optional[str] = None
    integration_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'address': self.address,
            'channel': self.channel,
            'contact_id': self.contact_id,
            'integration_id': self.integration_id,
        }


def address_for_channel(contact: Dict[str, Any], channel: str) -> Optional[str]:
    """Endereço do contato no canal (telefone ou id da plataforma)"""
    field_name = CHANNEL_ADDRESS_FIELDS.get(channel, 'phone')
    value = contact.get(field_name) if contact else None
    return str(value) if value else None


class MessageSender(Protocol):
    async def send(
        self,
        recipient: Recipient,
        body: str,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Retorna {'message_id': ...}"""
        ...


class ToolExecutor(Protocol):
    async def execute(self, tool_name: str, params: Dict[str, Any]) -> Any:
        ...


class QueueAssigner(Protocol):
    async def assign(self, conversation_id: str, target: Dict[str, Any]) -> Dict[str, Any]:
        ...


class DelayedRequeue(Protocol):
    async def enqueue(self, job: Dict[str, Any], not_before: datetime, job_id: str) -> Dict[str, Any]:
        """Agenda o job para não antes de not_before. job_id repetido não duplica."""
        ...


# Status que indicam falha temporária do colaborador
RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


async def post_json(
    client: httpx.AsyncClient,
    collaborator: str,
    url: str,
    payload: Dict[str, Any],
    timeout: float,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """
    POST JSON para um gateway.

    Raises:
        TransientNodeError: timeout, erro de transporte, 408/429/5xx
        CollaboratorError: demais respostas não-2xx
    """
    try:
        response = await client.post(url, json=payload, headers=headers, timeout=timeout)
    except httpx.TimeoutException as e:
        raise TransientNodeError(None, f"{collaborator} timed out after {timeout}s") from e
    except httpx.TransportError as e:
        raise TransientNodeError(None, f"{collaborator} unreachable: {e}") from e

    if response.status_code in RETRYABLE_STATUS_CODES:
        raise TransientNodeError(
            None,
            f"{collaborator} returned {response.status_code}",
            status_code=response.status_code,
        )
    if not response.is_success:
        raise CollaboratorError(collaborator, response.text[:500], status_code=response.status_code)

    try:
        data = response.json()
    except ValueError:
        data = {'raw': response.text}
    return data if isinstance(data, dict) else {'result': data}


class _Gateway:
    def __init__(self, client: httpx.AsyncClient, base_url: str, timeout: float, api_token: str = ''):
        self.client = client
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.api_token = api_token

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {'Content-Type': 'application/json'}
        if self.api_token:
            headers['Authorization'] = f"Bearer {self.api_token}"
        if extra:
            headers.update(extra)
        return headers


class GatewayMessageSender(_Gateway):
    """Envia mensagens de um canal via gateway de mensageria"""

    def __init__(self, client: httpx.AsyncClient, base_url: str, channel: str, timeout: float, api_token: str = ''):
        super().__init__(client, base_url, timeout, api_token)
        self.channel = channel

    async def send(
        self,
        recipient: Recipient,
        body: str,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        extra = {'Idempotency-Key': idempotency_key} if idempotency_key else None
        data = await post_json(
            self.client,
            f"messaging:{self.channel}",
            f"{self.base_url}/channels/{self.channel}/messages",
            {'recipient': recipient.to_dict(), 'body': body},
            self.timeout,
            headers=self._headers(extra),
        )
        return {'message_id': data.get('message_id') or data.get('id')}


class GatewayToolExecutor(_Gateway):
    """Executa ferramentas/ações de IA por nome"""

    async def execute(self, tool_name: str, params: Dict[str, Any]) -> Any:
        data = await post_json(
            self.client,
            f"tool:{tool_name}",
            f"{self.base_url}/tools/{tool_name}/execute",
            {'parameters': params},
            self.timeout,
            headers=self._headers(),
        )
        return data.get('result', data)


class GatewayQueueAssigner(_Gateway):
    """Atribui conversas a filas/atendentes"""

    async def assign(self, conversation_id: str, target: Dict[str, Any]) -> Dict[str, Any]:
        return await post_json(
            self.client,
            'assignment',
            f"{self.base_url}/conversations/{conversation_id}/assignment",
            target,
            self.timeout,
            headers=self._headers(),
        )
