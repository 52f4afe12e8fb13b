"""
Tests for AuditService and SqlAlchemyCadenceDirectory against SQLite
"""

from automation.database import db
from automation.models import Contact, FollowUpCadence, Integration
from automation.models.audit_event import AuditAction, AuditEvent
from automation.services.audit_service import AuditService
from automation.services.cadence_scheduler import SqlAlchemyCadenceDirectory


class TestAuditService:
    def test_log_persists_event(self, app):
        event = AuditService.log(
            tenant_id='tenant-1',
            action=AuditAction.RUN_FAILED,
            target_type='run',
            target_id='run-1',
            metadata={'reason': 'boom'},
        )

        stored = db.session.get(AuditEvent, event.id)
        assert stored.action == 'run.failed'
        assert stored.actor_type == 'system'
        assert stored.to_dict()['metadata'] == {'reason': 'boom'}

    def test_cadence_step_outcomes_map_to_actions(self, app):
        for outcome in ('sent', 'failed', 'skipped'):
            AuditService.log_cadence_step(
                tenant_id='tenant-1',
                contact_id='c-1',
                cadence_id='cad-1',
                cadence_name='Reativação',
                step_index=0,
                outcome=outcome,
                channel='whatsapp',
                message='Oi',
                error='blocked' if outcome == 'failed' else None,
            )

        events = AuditEvent.query.order_by(AuditEvent.timestamp).all()
        assert sorted(e.action for e in events) == [
            'cadence.step_failed',
            'cadence.step_sent',
            'cadence.step_skipped',
        ]
        failed = [e for e in events if e.action == AuditAction.CADENCE_STEP_FAILED][0]
        assert failed.event_metadata['error'] == 'blocked'
        assert failed.actor_name == 'Follow-up Cadence'

    def test_truncated_cadence(self, app):
        AuditService.log_cadence_truncated(
            tenant_id='tenant-1',
            cadence_id='cad-1',
            next_step_index=2,
            recipient_ids=['c-1'],
        )

        event = AuditEvent.query.filter_by(action=AuditAction.CADENCE_TRUNCATED).one()
        assert event.target_type == 'cadence'
        assert event.event_metadata == {'next_step_index': 2, 'recipient_ids': ['c-1']}


class TestSqlAlchemyCadenceDirectory:
    def _seed(self):
        integration = Integration(id='i-wa', tenant_id='tenant-1', platform='whatsapp', name='WhatsApp')
        db.session.add(integration)
        db.session.add(Contact(id='c-1', tenant_id='tenant-1', name='Ana', phone='+5511900000001', integration_id='i-wa'))
        db.session.add(FollowUpCadence(
            id='cad-1',
            tenant_id='tenant-1',
            name='Reativação',
            active=True,
            steps=[{'delay_minutes': 0, 'message': 'Oi {{contact.name}}'}],
        ))
        db.session.commit()

    def test_reads_rows_as_dicts(self, app):
        self._seed()
        directory = SqlAlchemyCadenceDirectory()

        cadence = directory.get_cadence('tenant-1', 'cad-1')
        contact = directory.get_contact('tenant-1', 'c-1')
        integration = directory.get_integration('tenant-1', 'i-wa')

        assert cadence['steps'][0]['message'] == 'Oi {{contact.name}}'
        assert contact['integration_id'] == 'i-wa'
        assert integration['platform'] == 'whatsapp'

    def test_scoped_by_tenant(self, app):
        self._seed()
        directory = SqlAlchemyCadenceDirectory()

        assert directory.get_cadence('tenant-2', 'cad-1') is None
        assert directory.get_contact('tenant-2', 'c-1') is None
        assert directory.get_integration('tenant-2', 'i-wa') is None
