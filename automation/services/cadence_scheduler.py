"""
Follow-up Cadence Scheduler.

Variante sem ramificação do engine: uma lista ordenada de steps, cada um
com atraso em minutos. Não há contexto de longa duração; todo o estado
necessário para continuar vive no payload do job reagendado
({tenant_id, cadence_id, recipient_ids, step_index}).

Estados por step: PENDING(i) → SENT(i) → PENDING(i+1) | EXHAUSTED.

O step i+1 só é enfileirado depois que os envios do step i foram
registrados (send-then-enqueue). O job id é determinístico, então o mesmo
avanço nunca é enfileirado duas vezes.
"""

import asyncio
import hashlib
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Protocol

import httpx

from automation.engine.collaborators import Recipient, address_for_channel
from automation.engine.errors import (
    CadenceNotFoundError,
    CadenceRequeueUnavailableError,
    CollaboratorError,
    TransientNodeError,
)
from automation.engine.registry import utc_now
from automation.engine.variable_resolver import VariableResolver

logger = logging.getLogger(__name__)


class CadenceState(str, Enum):
    PENDING = 'pending'
    SENT = 'sent'
    EXHAUSTED = 'exhausted'


@dataclass
class CadenceStepJob:
    """Payload reagendado de um step de cadência"""
    tenant_id: str
    cadence_id: str
    recipient_ids: List[str]
    step_index: int = 0

    KIND = 'cadence_step'

    @property
    def job_id(self) -> str:
        digest = hashlib.sha1(','.join(sorted(self.recipient_ids)).encode('utf-8')).hexdigest()[:12]
        return f"cadence-{self.cadence_id}-{digest}-step-{self.step_index}"

    def advance(self) -> 'CadenceStepJob':
        return CadenceStepJob(
            tenant_id=self.tenant_id,
            cadence_id=self.cadence_id,
            recipient_ids=list(self.recipient_ids),
            step_index=self.step_index + 1,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.KIND,
            'tenant_id': self.tenant_id,
            'cadence_id': self.cadence_id,
            'recipient_ids': list(self.recipient_ids),
            'step_index': self.step_index,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CadenceStepJob':
        recipients = data.get('recipient_ids') or data.get('lead_ids') or data.get('leadIds') or []
        return cls(
            tenant_id=data.get('tenant_id') or data.get('tenantId'),
            cadence_id=data.get('cadence_id') or data.get('cadenceId'),
            recipient_ids=[str(r) for r in recipients],
            step_index=int(data.get('step_index', data.get('stepIndex', 0))),
        )


@dataclass
class CadenceStep:
    message: str
    delay_minutes: float = 0.0
    channel: Optional[str] = None
    integration_id: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'CadenceStep':
        delay = raw.get('delay_minutes', raw.get('delayMinutes', raw.get('delay', 0)))
        try:
            delay_minutes = float(delay or 0)
        except (TypeError, ValueError):
            delay_minutes = 0.0
        if not math.isfinite(delay_minutes) or delay_minutes < 0:
            delay_minutes = 0.0

        channel = raw.get('channel')
        integration_id = raw.get('integration_id') or raw.get('integrationId') or raw.get('connectionId')
        return cls(
            message=str(raw.get('message') or ''),
            delay_minutes=delay_minutes,
            channel=str(channel).lower() if channel else None,
            integration_id=str(integration_id) if integration_id else None,
        )


@dataclass
class RecipientOutcome:
    recipient_id: str
    outcome: str  # sent, failed, skipped
    channel: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'recipient_id': self.recipient_id,
            'outcome': self.outcome,
            'channel': self.channel,
            'message_id': self.message_id,
            'error': self.error,
        }


@dataclass
class CadenceTickResult:
    """Resultado de um tick: estado do step atual e da cadência"""
    state: CadenceState
    step_index: int
    next_state: CadenceState
    outcomes: List[RecipientOutcome] = field(default_factory=list)
    next_step_index: Optional[int] = None
    next_run_at: Optional[datetime] = None

    def count(self, outcome: str) -> int:
        return sum(1 for o in self.outcomes if o.outcome == outcome)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'step_index': self.step_index,
            'next_state': self.next_state.value,
            'next_step_index': self.next_step_index,
            'next_run_at': self.next_run_at.isoformat() if self.next_run_at else None,
            'processed': len(self.outcomes),
            'sent': self.count('sent'),
            'failed': self.count('failed'),
            'skipped': self.count('skipped'),
            'outcomes': [o.to_dict() for o in self.outcomes],
        }


class CadenceDirectory(Protocol):
    def get_cadence(self, tenant_id: str, cadence_id: str) -> Optional[Dict[str, Any]]:
        ...

    def get_contact(self, tenant_id: str, contact_id: str) -> Optional[Dict[str, Any]]:
        ...

    def get_integration(self, tenant_id: str, integration_id: str) -> Optional[Dict[str, Any]]:
        ...


class SqlAlchemyCadenceDirectory:
    """Leitura de cadências, contatos e integrações via Flask-SQLAlchemy"""

    def get_cadence(self, tenant_id: str, cadence_id: str) -> Optional[Dict[str, Any]]:
        from automation.models import FollowUpCadence

        cadence = FollowUpCadence.query.filter_by(id=cadence_id, tenant_id=tenant_id).first()
        return cadence.to_dict() if cadence else None

    def get_contact(self, tenant_id: str, contact_id: str) -> Optional[Dict[str, Any]]:
        from automation.models import Contact

        contact = Contact.query.filter_by(id=contact_id, tenant_id=tenant_id).first()
        return contact.to_dict() if contact else None

    def get_integration(self, tenant_id: str, integration_id: str) -> Optional[Dict[str, Any]]:
        from automation.models import Integration

        integration = Integration.query.filter_by(id=integration_id, tenant_id=tenant_id).first()
        return integration.to_dict() if integration else None


class CadenceScheduler:
    """
    Processa um step de cadência para todos os destinatários e agenda o
    próximo.

    Args:
        directory: CadenceDirectory
        senders: senders por canal (o mesmo mapa injetado no engine)
        audit: AuditService (ou equivalente com log_cadence_step/log_cadence_truncated)
        requeue: DelayedRequeue; sem ele o avanço falha explicitamente
        clock: relógio injetável
    """

    def __init__(
        self,
        directory: CadenceDirectory,
        senders: Dict[str, Any],
        audit: Any,
        requeue: Optional[Any] = None,
        clock: Callable[[], datetime] = utc_now,
        default_channel: str = 'whatsapp',
        send_timeout: float = 30.0,
    ):
        self.directory = directory
        self.senders = senders
        self.audit = audit
        self.requeue = requeue
        self.clock = clock
        self.default_channel = default_channel
        self.send_timeout = send_timeout

    async def process_step(self, job: CadenceStepJob) -> CadenceTickResult:
        """
        Executa um tick da cadência.

        Raises:
            CadenceNotFoundError: cadência inexistente para o tenant
            CadenceRequeueUnavailableError: há próximo step mas nenhuma fila
                para agendá-lo (os envios deste step já foram registrados)
        """
        logger.info(
            f"Processing follow-up cadence {job.cadence_id} step {job.step_index} "
            f"for {len(job.recipient_ids)} recipients"
        )

        cadence = self.directory.get_cadence(job.tenant_id, job.cadence_id)
        if cadence is None:
            raise CadenceNotFoundError(job.cadence_id, job.tenant_id)

        steps = [CadenceStep.from_dict(raw) for raw in cadence.get('steps') or []]

        if not cadence.get('active', True):
            logger.info(f"Cadence {job.cadence_id} is inactive, stopping at step {job.step_index}")
            return CadenceTickResult(CadenceState.EXHAUSTED, job.step_index, CadenceState.EXHAUSTED)

        if job.step_index < 0 or job.step_index >= len(steps):
            logger.info(f"No more steps in cadence {job.cadence_id} (step {job.step_index})")
            return CadenceTickResult(CadenceState.EXHAUSTED, job.step_index, CadenceState.EXHAUSTED)

        step = steps[job.step_index]
        outcomes = []
        for recipient_id in job.recipient_ids:
            outcomes.append(await self._process_recipient(job, cadence, step, recipient_id))

        result = CadenceTickResult(
            state=CadenceState.SENT,
            step_index=job.step_index,
            next_state=CadenceState.EXHAUSTED,
            outcomes=outcomes,
        )

        next_index = job.step_index + 1
        if next_index >= len(steps):
            logger.info(f"Cadence {job.cadence_id} exhausted after step {job.step_index}")
            return result

        next_job = job.advance()
        not_before = self.clock() + timedelta(minutes=steps[next_index].delay_minutes)

        if self.requeue is None:
            logger.error(
                f"Unable to schedule step {next_index} of cadence {job.cadence_id}: "
                f"delayed requeue unavailable"
            )
            self.audit.log_cadence_truncated(
                tenant_id=job.tenant_id,
                cadence_id=job.cadence_id,
                next_step_index=next_index,
                recipient_ids=job.recipient_ids,
            )
            raise CadenceRequeueUnavailableError(job.cadence_id, next_index)

        await self.requeue.enqueue(next_job.to_dict(), not_before, next_job.job_id)
        logger.info(f"Scheduled cadence {job.cadence_id} step {next_index} for {not_before.isoformat()}")

        result.next_state = CadenceState.PENDING
        result.next_step_index = next_index
        result.next_run_at = not_before
        return result

    def resolve_integration(
        self,
        tenant_id: str,
        contact: Dict[str, Any],
        step: CadenceStep,
    ) -> Optional[Dict[str, Any]]:
        """Integração do step (override) ou, na falta, a padrão do contato"""
        if step.integration_id:
            integration = self.directory.get_integration(tenant_id, step.integration_id)
            if integration:
                return integration

        if contact.get('integration_id'):
            return self.directory.get_integration(tenant_id, contact['integration_id'])

        return None

    async def _process_recipient(
        self,
        job: CadenceStepJob,
        cadence: Dict[str, Any],
        step: CadenceStep,
        recipient_id: str,
    ) -> RecipientOutcome:
        contact = self.directory.get_contact(job.tenant_id, recipient_id)
        if contact is None:
            logger.warning(f"Contact {recipient_id} not found for follow-up cadence")
            return RecipientOutcome(recipient_id, 'skipped', error='contact not found')

        integration = self.resolve_integration(job.tenant_id, contact, step)
        channel = (step.channel or (integration or {}).get('platform') or self.default_channel).lower()
        if channel not in self.senders:
            channel = self.default_channel

        body = VariableResolver({'contact': contact}).render(step.message).strip()
        outcome = RecipientOutcome(recipient_id, 'skipped', channel=channel)

        if integration is None:
            logger.warning(f"Skipping follow-up message to {recipient_id}: no integration configured")
            outcome.error = 'no integration configured'
        elif not body:
            logger.warning(f"Cadence {job.cadence_id} step {job.step_index} has no message, skipping send")
            outcome.error = 'empty message'
        else:
            outcome = await self._send(job, contact, integration, channel, body)

        self.audit.log_cadence_step(
            tenant_id=job.tenant_id,
            contact_id=recipient_id,
            cadence_id=job.cadence_id,
            cadence_name=cadence.get('name'),
            step_index=job.step_index,
            outcome=outcome.outcome,
            channel=channel,
            message=body,
            error=outcome.error,
        )
        return outcome

    async def _send(
        self,
        job: CadenceStepJob,
        contact: Dict[str, Any],
        integration: Dict[str, Any],
        channel: str,
        body: str,
    ) -> RecipientOutcome:
        recipient_id = contact['id']
        sender = self.senders.get(channel)
        if sender is None:
            return RecipientOutcome(recipient_id, 'failed', channel=channel, error=f"no sender for channel {channel}")

        address = address_for_channel(contact, channel)
        if not address:
            return RecipientOutcome(
                recipient_id, 'failed', channel=channel,
                error=f"contact has no address for channel {channel}",
            )

        recipient = Recipient(
            address=address,
            channel=channel,
            contact_id=recipient_id,
            integration_id=integration.get('id'),
        )

        try:
            receipt = await asyncio.wait_for(
                sender.send(recipient, body, idempotency_key=f"{job.job_id}:{recipient_id}"),
                timeout=self.send_timeout,
            )
        except (CollaboratorError, TransientNodeError, httpx.HTTPError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to process lead {recipient_id} in cadence {job.cadence_id}: {e}")
            return RecipientOutcome(recipient_id, 'failed', channel=channel, error=str(e) or type(e).__name__)

        logger.info(f"Follow-up message sent to {recipient_id} (step {job.step_index})")
        return RecipientOutcome(
            recipient_id, 'sent', channel=channel,
            message_id=(receipt or {}).get('message_id'),
        )
