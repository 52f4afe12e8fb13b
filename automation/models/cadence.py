import uuid
from datetime import datetime
from automation.database import db, JSONType


class FollowUpCadence(db.Model):
    """
    Cadência de follow-up: lista ordenada de steps sem ramificação.

    Cada step: {delay, message, channel, integration_id}. O delay é em minutos
    e conta a partir do envio do step anterior.
    """
    __tablename__ = 'followup_cadences'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = db.Column(db.String(36), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    active = db.Column(db.Boolean, default=True, nullable=False)
    steps = db.Column(JSONType, default=list)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'name': self.name,
            'active': self.active,
            'steps': self.steps or [],
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Contact(db.Model):
    """Projeção mínima do contato usada como destinatário das mensagens"""
    __tablename__ = 'contacts'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = db.Column(db.String(36), nullable=False, index=True)
    name = db.Column(db.String(255))
    phone = db.Column(db.String(50))
    facebook_id = db.Column(db.String(100))
    instagram_id = db.Column(db.String(100))

    # Integração padrão do contato (canal por onde chegou)
    integration_id = db.Column(db.String(36), db.ForeignKey('integrations.id', ondelete='SET NULL'), nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'name': self.name,
            'phone': self.phone,
            'facebook_id': self.facebook_id,
            'instagram_id': self.instagram_id,
            'integration_id': self.integration_id,
        }


class Integration(db.Model):
    """Integração de mensageria do tenant (whatsapp, facebook, instagram)"""
    __tablename__ = 'integrations'

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = db.Column(db.String(36), nullable=False, index=True)
    platform = db.Column(db.String(50), nullable=False)
    name = db.Column(db.String(255))
    config = db.Column(JSONType, default=dict)

    def to_dict(self):
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'platform': self.platform,
            'name': self.name,
        }
