"""
Tests for automation/engine/store.py and the SQLAlchemy Graph Store

Run against an in-memory SQLite database.
"""

import pytest
from datetime import datetime, timezone

from automation.database import db
from automation.engine.context import ExecutionContext, LogEntry, RunStatus, TerminalOutcome
from automation.engine.errors import (
    ConcurrentRunModificationError,
    RunNotFoundError,
    WorkflowNotFoundError,
)
from automation.engine.flow.context import SqlAlchemyGraphStore
from automation.engine.store import SqlAlchemyRunStore
from automation.models import Workflow, WorkflowRun


AT = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def workflow(app):
    workflow = Workflow(
        id='wf-1',
        tenant_id='tenant-1',
        name='Lead qualification',
        active=True,
        nodes=[
            {'id': 'start', 'type': 'workflow', 'position': {'x': 0, 'y': 0}, 'data': {'type': 'START', 'config': {}}},
            {'id': 'greet', 'type': 'workflow', 'data': {'type': 'CONTENT', 'config': {'message': 'Hi'}}},
        ],
        edges=[{'id': 'e1', 'source': 'start', 'target': 'greet'}],
    )
    db.session.add(workflow)
    db.session.commit()
    return workflow


@pytest.fixture
def store(app):
    return SqlAlchemyRunStore()


@pytest.fixture
def context(store, workflow):
    context = ExecutionContext.new('wf-1', 'tenant-1', {'name': 'Ana'}, cursor='start', correlation_key='conv-1')
    return store.create(context)


class TestSqlAlchemyRunStore:
    def test_create_and_load(self, store, context):
        loaded = store.load(context.run_id)

        assert loaded.to_dict() == context.to_dict()

    def test_load_unknown_run(self, store, app):
        with pytest.raises(RunNotFoundError):
            store.load('missing')

    def test_save_bumps_version(self, store, context):
        context.cursor = 'greet'
        context.step_count = 1
        context.append_log(LogEntry('start', 'START', {'success': True}, AT.isoformat()))

        store.save(context)

        loaded = store.load(context.run_id)
        assert loaded.version == 2
        assert loaded.cursor == 'greet'
        assert loaded.log[0].node_id == 'start'

    def test_stale_version_is_rejected(self, store, context):
        first = store.load(context.run_id)
        second = store.load(context.run_id)

        first.cursor = 'greet'
        store.save(first)

        second.cursor = 'start'
        with pytest.raises(ConcurrentRunModificationError):
            store.save(second)

        assert store.load(context.run_id).cursor == 'greet'

    def test_terminal_save_sets_completed_at(self, store, context):
        context.status = RunStatus.COMPLETED
        store.save(context)

        assert db.session.get(WorkflowRun, context.run_id).completed_at is not None

    def test_append_log_with_status(self, store, context):
        entry = LogEntry.terminal('start', TerminalOutcome.CANCELED, AT, reason='manual')

        updated = store.append_log(context.run_id, entry, status=RunStatus.CANCELED)

        assert updated.status == RunStatus.CANCELED
        loaded = store.load(context.run_id)
        assert loaded.status == RunStatus.CANCELED
        assert loaded.outcome == 'canceled'
        assert loaded.wait is None

    def test_cancel_flag(self, store, context):
        assert store.is_cancel_requested(context.run_id) is False

        store.request_cancel(context.run_id)

        assert store.is_cancel_requested(context.run_id) is True

    def test_cancel_unknown_run(self, store, app):
        with pytest.raises(RunNotFoundError):
            store.request_cancel('missing')

    def test_find_waiting_run(self, store, context):
        assert store.find_waiting_run('tenant-1', 'conv-1') is None

        context.status = RunStatus.WAITING_INPUT
        context.wait = {'node_id': 'menu', 'kind': 'input', 'resume_at': None}
        store.save(context)

        found = store.find_waiting_run('tenant-1', 'conv-1')
        assert found.run_id == context.run_id
        assert store.find_waiting_run('tenant-2', 'conv-1') is None


class TestSqlAlchemyGraphStore:
    def test_load_normalizes_visual_graph(self, workflow):
        definition = SqlAlchemyGraphStore().load_workflow('wf-1')

        assert definition.tenant_id == 'tenant-1'
        assert definition.active is True
        assert [n['type'] for n in definition.nodes] == ['START', 'CONTENT']
        assert definition.edges == [{'source': 'start', 'target': 'greet', 'label': None}]
        assert definition.find_start_node_id() == 'start'

    def test_missing_workflow(self, app):
        with pytest.raises(WorkflowNotFoundError):
            SqlAlchemyGraphStore().load_workflow('ghost')


class TestHealthRoute:
    def test_health(self, app):
        response = app.test_client().get('/api/health')

        body = response.get_json()
        assert response.status_code == 200
        assert body['status'] == 'healthy'
        assert body['waiting_runs'] == {'waiting_timer': 0, 'waiting_input': 0}
        assert body['max_steps_per_run'] == 50
