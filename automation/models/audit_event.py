"""
AuditEvent Model - Audit trail append-only.

- Trail imutável para compliance
- Rastreamento de envios de cadência e falhas de runs
"""
import uuid
from datetime import datetime
from automation.database import db, JSONType


class AuditEvent(db.Model):
    """
    Eventos de auditoria append-only (nunca UPDATE/DELETE).

    Registra ações relevantes por tenant:
    - cadence.step_sent, cadence.step_failed, cadence.truncated
    - run.failed, run.canceled
    """
    __tablename__ = 'audit_events'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Tenant (para compliance multi-tenant)
    tenant_id = db.Column(db.String(36), nullable=False)

    # Timestamp
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    # Ator (quem fez a ação)
    actor_type = db.Column(db.String(20), nullable=False)  # system, user
    actor_name = db.Column(db.String(255), nullable=True)  # "Follow-up Cadence"

    # Ação
    action = db.Column(db.String(100), nullable=False)     # cadence.step_sent

    # Alvo da ação
    target_type = db.Column(db.String(50), nullable=False)  # contact, run, cadence
    target_id = db.Column(db.String(36), nullable=False)

    # Metadados adicionais (renamed from 'metadata' - SQLAlchemy reserved word)
    event_metadata = db.Column(JSONType, nullable=True)

    # Índices
    __table_args__ = (
        db.Index('idx_audit_events_tenant_target', 'tenant_id', 'target_type', 'target_id'),
        db.Index('idx_audit_events_timestamp', 'timestamp'),
        db.Index('idx_audit_events_action', 'action'),
    )

    def to_dict(self):
        """Converte para dicionário"""
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'timestamp': self.timestamp.isoformat() if self.timestamp else None,
            'actor_type': self.actor_type,
            'actor_name': self.actor_name,
            'action': self.action,
            'target_type': self.target_type,
            'target_id': self.target_id,
            'metadata': self.event_metadata  # API mantém nome 'metadata'
        }

    @classmethod
    def create(
        cls,
        tenant_id: str,
        action: str,
        target_type: str,
        target_id: str,
        actor_type: str = 'system',
        actor_name: str = None,
        metadata: dict = None
    ):
        """Cria o evento (ainda não adicionado à sessão)"""
        return cls(
            tenant_id=tenant_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
            actor_type=actor_type,
            actor_name=actor_name,
            event_metadata=metadata  # Use event_metadata internally
        )


# === Ações de auditoria (constantes) ===

class AuditAction:
    """Ações de auditoria disponíveis"""
    # Cadências
    CADENCE_STEP_SENT = 'cadence.step_sent'
    CADENCE_STEP_FAILED = 'cadence.step_failed'
    CADENCE_STEP_SKIPPED = 'cadence.step_skipped'
    CADENCE_TRUNCATED = 'cadence.truncated'

    # Runs
    RUN_FAILED = 'run.failed'
    RUN_CANCELED = 'run.canceled'
