"""
AuditService - Helper para registrar eventos de auditoria.

Trail append-only por tenant: envios de cadência e encerramentos de runs.
"""
import logging
from typing import Optional, Dict

from sqlalchemy.exc import SQLAlchemyError

from automation.models.audit_event import AuditEvent, AuditAction
from automation.database import db

logger = logging.getLogger(__name__)


class AuditService:
    """
    Service para registrar eventos de auditoria.

    Uso:
        AuditService.log(
            tenant_id='tenant-1',
            action='cadence.step_sent',
            target_type='contact',
            target_id='contact-1',
        )
    """

    @staticmethod
    def log(
        tenant_id: str,
        action: str,
        target_type: str,
        target_id: str,
        actor_type: str = 'system',
        actor_name: Optional[str] = None,
        metadata: Optional[Dict] = None
    ) -> AuditEvent:
        """
        Registra evento de auditoria.

        Args:
            tenant_id: ID do tenant
            action: Ação executada
            target_type: Tipo do alvo
            target_id: ID do alvo
            actor_type: Tipo do ator
            actor_name: Nome do ator
            metadata: Dados extras

        Returns:
            AuditEvent criado
        """
        event = AuditEvent.create(
            tenant_id=tenant_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            actor_type=actor_type,
            actor_name=actor_name,
            metadata=metadata
        )

        db.session.add(event)

        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(
                f"Failed to persist audit event: {e} "
                f"(action={action}, target_type={target_type}, target_id={target_id})"
            )

        return event

    @staticmethod
    def log_cadence_step(
        tenant_id: str,
        contact_id: str,
        cadence_id: str,
        cadence_name: str,
        step_index: int,
        outcome: str,
        channel: Optional[str] = None,
        message: Optional[str] = None,
        error: Optional[str] = None,
    ):
        """Registra o resultado de um step de cadência para um contato"""
        action = {
            'sent': AuditAction.CADENCE_STEP_SENT,
            'failed': AuditAction.CADENCE_STEP_FAILED,
        }.get(outcome, AuditAction.CADENCE_STEP_SKIPPED)

        metadata = {
            'cadence_id': cadence_id,
            'cadence_name': cadence_name,
            'step_index': step_index,
            'channel': channel,
            'description': message,
        }
        if error:
            metadata['error'] = error

        return AuditService.log(
            tenant_id=tenant_id,
            action=action,
            target_type='contact',
            target_id=contact_id,
            actor_name='Follow-up Cadence',
            metadata=metadata,
        )

    @staticmethod
    def log_cadence_truncated(tenant_id: str, cadence_id: str, next_step_index: int, recipient_ids=None):
        """Registra cadência interrompida por falta de fila para o próximo step"""
        return AuditService.log(
            tenant_id=tenant_id,
            action=AuditAction.CADENCE_TRUNCATED,
            target_type='cadence',
            target_id=cadence_id,
            actor_name='Follow-up Cadence',
            metadata={
                'next_step_index': next_step_index,
                'recipient_ids': list(recipient_ids or []),
            },
        )

    @staticmethod
    def log_run_failed(run_id: str, tenant_id: str, workflow_id: str, reason: Optional[str] = None):
        """Registra falha de run"""
        return AuditService.log(
            tenant_id=tenant_id,
            action=AuditAction.RUN_FAILED,
            target_type='run',
            target_id=run_id,
            metadata={'workflow_id': workflow_id, 'reason': reason},
        )

    @staticmethod
    def log_run_canceled(run_id: str, tenant_id: str, workflow_id: str, reason: Optional[str] = None):
        """Registra cancelamento de run"""
        return AuditService.log(
            tenant_id=tenant_id,
            action=AuditAction.RUN_CANCELED,
            target_type='run',
            target_id=run_id,
            metadata={'workflow_id': workflow_id, 'reason': reason},
        )
