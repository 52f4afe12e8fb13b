import uuid
from datetime import datetime
from automation.database import db, JSONType


class WorkflowRun(db.Model):
    """
    Estado persistido de um run (Execution Context).

    O run é retomado sempre a partir do último estado salvo: cursor,
    variáveis e log. O campo version implementa optimistic locking para
    que dois workers nunca gravem o mesmo run ao mesmo tempo.
    """
    __tablename__ = 'workflow_runs'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    workflow_id = db.Column(db.String(36), db.ForeignKey('workflows.id', ondelete='CASCADE'), nullable=False)
    tenant_id = db.Column(db.String(36), nullable=False, index=True)

    # running, waiting_timer, waiting_input, completed, halted, failed, canceled
    status = db.Column(db.String(20), nullable=False, default='running', index=True)

    # Node atual (sempre pertence ao workflow do run)
    cursor = db.Column(db.String(100), nullable=True)

    # Mapa de variáveis do run
    variables = db.Column(JSONType, default=dict)

    # Log append-only: [{node_id, type, kind, result, at}]
    execution_logs = db.Column(JSONType, default=list)

    # Steps executados (limite de steps por run)
    step_count = db.Column(db.Integer, default=0, nullable=False)

    # Suspensão atual: {kind: timer|input, node_id, resume_at}
    wait = db.Column(JSONType, nullable=True)

    # Conversa/contato usado para correlacionar respostas de MENU
    correlation_key = db.Column(db.String(255), nullable=True, index=True)

    cancel_requested = db.Column(db.Boolean, default=False, nullable=False)
    error_message = db.Column(db.Text)

    started_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow)
    completed_at = db.Column(db.DateTime)

    # Optimistic locking version
    version = db.Column(db.Integer, default=1, nullable=False)

    __table_args__ = (
        db.Index('idx_workflow_runs_waiting', 'tenant_id', 'correlation_key', 'status'),
    )

    def to_dict(self, include_logs=False):
        result = {
            'id': self.id,
            'workflow_id': self.workflow_id,
            'tenant_id': self.tenant_id,
            'status': self.status,
            'cursor': self.cursor,
            'variables': self.variables or {},
            'step_count': self.step_count,
            'wait': self.wait,
            'correlation_key': self.correlation_key,
            'cancel_requested': self.cancel_requested,
            'error_message': self.error_message,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'version': self.version,
        }

        if include_logs:
            result['execution_logs'] = self.execution_logs or []

        return result
