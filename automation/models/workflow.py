import uuid
from datetime import datetime
from automation.database import db, JSONType


class Workflow(db.Model):
    """
    Workflow de automação (grafo dirigido de nodes tipados).

    Os nodes e edges são armazenados no formato do editor visual (React Flow)
    e normalizados para o formato do engine em tempo de carga.
    """
    __tablename__ = 'workflows'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = db.Column(db.String(36), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)

    # Só workflows ativos podem iniciar novos runs
    active = db.Column(db.Boolean, default=False, nullable=False)

    # Referência opcional ao node de entrada (o node START é a autoridade)
    entry_node_id = db.Column(db.String(100), nullable=True)

    # Estrutura visual: [{id, type, position, data: {type, config, label}}]
    nodes = db.Column(JSONType, default=list)
    # [{id, source, target, sourceHandle?, label?}]
    edges = db.Column(JSONType, default=list)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    runs = db.relationship('WorkflowRun', backref='workflow', lazy='dynamic', cascade='all, delete-orphan')

    def is_runnable(self) -> bool:
        return bool(self.active)

    def to_dict(self, include_graph=False):
        result = {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'name': self.name,
            'description': self.description,
            'active': self.active,
            'entry_node_id': self.entry_node_id,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }

        if include_graph:
            result['nodes'] = self.nodes or []
            result['edges'] = self.edges or []

        return result
