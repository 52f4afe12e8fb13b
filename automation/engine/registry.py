"""
Registro de dependências do engine.

Os colaboradores (senders por canal, executor de ferramentas, atribuição de
filas, cliente HTTP, relógio) são montados uma única vez no start do
processo e passados explicitamente para o Run Driver.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from automation.engine.collaborators import (
    GatewayMessageSender,
    GatewayQueueAssigner,
    GatewayToolExecutor,
    MessageSender,
    QueueAssigner,
    ToolExecutor,
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class EngineSettings:
    max_steps_per_run: int = 500
    http_timeout: float = 30.0
    tool_timeout: float = 60.0
    send_timeout: float = 30.0
    assign_timeout: float = 30.0
    default_channel: str = 'whatsapp'

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> 'EngineSettings':
        """Cria settings a partir do app.config do Flask (ou dict equivalente)"""
        return cls(
            max_steps_per_run=int(config.get('MAX_STEPS_PER_RUN', 500)),
            http_timeout=float(config.get('HTTP_NODE_TIMEOUT_SECONDS', 30)),
            tool_timeout=float(config.get('TOOL_TIMEOUT_SECONDS', 60)),
            send_timeout=float(config.get('SEND_TIMEOUT_SECONDS', 30)),
            assign_timeout=float(config.get('ASSIGN_TIMEOUT_SECONDS', 30)),
            default_channel=str(config.get('DEFAULT_CHANNEL', 'whatsapp')).lower(),
        )


@dataclass
class EngineDeps:
    """Mapa de interfaces injetado nos executores"""
    senders: Dict[str, MessageSender]
    tools: ToolExecutor
    assigner: QueueAssigner
    http: httpx.AsyncClient
    settings: EngineSettings = field(default_factory=EngineSettings)
    clock: Callable[[], datetime] = utc_now

    def sender_for(self, channel: Optional[str]) -> Optional[MessageSender]:
        return self.senders.get((channel or self.settings.default_channel).lower())


def build_engine_deps(config: Mapping[str, Any], http_client: httpx.AsyncClient) -> EngineDeps:
    """
    Monta os colaboradores concretos (gateways HTTP) a partir da config.

    Args:
        config: app.config do Flask
        http_client: cliente compartilhado pelo processo

    Returns:
        EngineDeps pronto para o Engine e o CadenceScheduler
    """
    settings = EngineSettings.from_config(config)
    token = config.get('GATEWAY_API_TOKEN', '')

    channels = [
        c.strip().lower()
        for c in str(config.get('MESSAGING_CHANNELS', settings.default_channel)).split(',')
        if c.strip()
    ]
    if settings.default_channel not in channels:
        channels.append(settings.default_channel)

    senders = {
        channel: GatewayMessageSender(
            http_client,
            config.get('MESSAGING_GATEWAY_URL', ''),
            channel,
            settings.send_timeout,
            api_token=token,
        )
        for channel in channels
    }

    return EngineDeps(
        senders=senders,
        tools=GatewayToolExecutor(http_client, config.get('TOOLS_GATEWAY_URL', ''), settings.tool_timeout, api_token=token),
        assigner=GatewayQueueAssigner(http_client, config.get('ASSIGNMENT_GATEWAY_URL', ''), settings.assign_timeout, api_token=token),
        http=http_client,
        settings=settings,
    )
