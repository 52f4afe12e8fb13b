"""
Pytest fixtures shared by engine, services and temporal tests

In-memory stores and fake collaborators, plus an in-memory SQLite app for
model and store tests.
"""

import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import httpx
import pytest

from automation.engine.context import ExecutionContext, LogEntry, RunStatus
from automation.engine.engine import Engine
from automation.engine.errors import (
    CollaboratorError,
    ConcurrentRunModificationError,
    RunNotFoundError,
    WorkflowNotFoundError,
)
from automation.engine.flow.graph import WorkflowDefinition
from automation.engine.flow.normalization import normalize_graph_json
from automation.engine.registry import EngineDeps, EngineSettings


FIXED_NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Injectable clock that only moves when told to"""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class InMemoryGraphStore:
    def __init__(self):
        self.workflows: Dict[str, WorkflowDefinition] = {}

    def add(
        self,
        workflow_id: str,
        nodes: List[Dict[str, Any]],
        edges: List[Dict[str, Any]],
        tenant_id: str = 'tenant-1',
        active: bool = True,
        entry_node_id: Optional[str] = None,
    ) -> None:
        normalized_nodes, normalized_edges = normalize_graph_json(nodes, edges)
        self.workflows[workflow_id] = WorkflowDefinition(
            workflow_id=workflow_id,
            tenant_id=tenant_id,
            active=active,
            nodes=normalized_nodes,
            edges=normalized_edges,
            entry_node_id=entry_node_id,
        )

    def load_workflow(self, workflow_id: str) -> WorkflowDefinition:
        if workflow_id not in self.workflows:
            raise WorkflowNotFoundError(workflow_id)
        return self.workflows[workflow_id]


class InMemoryRunStore:
    """RunStore that keeps serialized rows, so every load is a JSON round-trip"""

    def __init__(self):
        self.rows: Dict[str, Dict[str, Any]] = {}
        self.cancel_flags = set()
        self.save_count = 0

    def create(self, context: ExecutionContext) -> ExecutionContext:
        self.rows[context.run_id] = context.to_dict()
        return context

    def load(self, run_id: str) -> ExecutionContext:
        if run_id not in self.rows:
            raise RunNotFoundError(run_id)
        return ExecutionContext.from_dict(copy.deepcopy(self.rows[run_id]))

    def save(self, context: ExecutionContext) -> ExecutionContext:
        row = self.rows.get(context.run_id)
        if row is None:
            raise RunNotFoundError(context.run_id)
        if row['version'] != context.version:
            raise ConcurrentRunModificationError(context.run_id, context.version)

        context.version += 1
        self.rows[context.run_id] = context.to_dict()
        self.save_count += 1
        return context

    def append_log(
        self,
        run_id: str,
        entry: LogEntry,
        status: Optional[RunStatus] = None,
        error_message: Optional[str] = None,
    ) -> ExecutionContext:
        context = self.load(run_id)
        context.append_log(entry)
        if status is not None:
            context.status = status
            if status.is_terminal:
                context.wait = None
        if error_message is not None:
            context.error_message = error_message
        return self.save(context)

    def is_cancel_requested(self, run_id: str) -> bool:
        return run_id in self.cancel_flags

    def request_cancel(self, run_id: str) -> None:
        if run_id not in self.rows:
            raise RunNotFoundError(run_id)
        self.cancel_flags.add(run_id)

    def find_waiting_run(self, tenant_id: str, correlation_key: str) -> Optional[ExecutionContext]:
        for row in self.rows.values():
            if (
                row['tenant_id'] == tenant_id
                and row['correlation_key'] == correlation_key
                and row['status'] == RunStatus.WAITING_INPUT.value
            ):
                return self.load(row['run_id'])
        return None


class FakeSender:
    def __init__(self, channel: str = 'whatsapp', error: Optional[Exception] = None):
        self.channel = channel
        self.error = error
        self.sent: List[Dict[str, Any]] = []

    async def send(self, recipient, body: str, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
        if self.error is not None:
            raise self.error
        self.sent.append({
            'recipient': recipient,
            'body': body,
            'idempotency_key': idempotency_key,
        })
        return {'message_id': f"{self.channel}-msg-{len(self.sent)}"}


class FakeToolExecutor:
    def __init__(self, results: Optional[Dict[str, Any]] = None, error: Optional[Exception] = None):
        self.results = results or {}
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    async def execute(self, tool_name: str, params: Dict[str, Any]) -> Any:
        self.calls.append({'tool_name': tool_name, 'params': params})
        if self.error is not None:
            raise self.error
        return self.results.get(tool_name)


class FakeAssigner:
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.assignments: List[Dict[str, Any]] = []

    async def assign(self, conversation_id: str, target: Dict[str, Any]) -> Dict[str, Any]:
        if self.error is not None:
            raise self.error
        self.assignments.append({'conversation_id': conversation_id, 'target': target})
        return {'assigned': True}


class FakeRequeue:
    """DelayedRequeue that keeps jobs by id (a repeated id is not enqueued again)"""

    def __init__(self):
        self.jobs: Dict[str, Dict[str, Any]] = {}
        self.calls = 0

    async def enqueue(self, job: Dict[str, Any], not_before: datetime, job_id: str) -> Dict[str, Any]:
        self.calls += 1
        if job_id in self.jobs:
            return {'job_id': job_id, 'enqueued': False}
        self.jobs[job_id] = {'job': copy.deepcopy(job), 'not_before': not_before}
        return {'job_id': job_id, 'enqueued': True}


class FakeAudit:
    def __init__(self):
        self.events: List[Dict[str, Any]] = []

    def _record(self, method: str, **kwargs) -> None:
        self.events.append({'method': method, **kwargs})

    def log_cadence_step(self, **kwargs):
        self._record('log_cadence_step', **kwargs)

    def log_cadence_truncated(self, **kwargs):
        self._record('log_cadence_truncated', **kwargs)

    def log_run_failed(self, **kwargs):
        self._record('log_run_failed', **kwargs)

    def log_run_canceled(self, **kwargs):
        self._record('log_run_canceled', **kwargs)

    def named(self, method: str) -> List[Dict[str, Any]]:
        return [event for event in self.events if event['method'] == method]


class HttpRoutes:
    """httpx.MockTransport handler keyed by (method, url)"""

    def __init__(self):
        self.routes: Dict[tuple, Any] = {}
        self.requests: List[httpx.Request] = []

    def add(self, method: str, url: str, status_code: int = 200, json: Any = None, text: Optional[str] = None):
        self.routes[(method.upper(), url)] = (status_code, json, text)

    def raise_on(self, method: str, url: str, error: Exception):
        self.routes[(method.upper(), url)] = error

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, str(request.url)))
        if route is None:
            return httpx.Response(404, json={'error': 'not found'})
        if isinstance(route, Exception):
            raise route
        status_code, json, text = route
        if json is not None:
            return httpx.Response(status_code, json=json)
        return httpx.Response(status_code, text=text or '')


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def graph_store():
    return InMemoryGraphStore()


@pytest.fixture
def run_store():
    return InMemoryRunStore()


@pytest.fixture
def senders():
    return {
        'whatsapp': FakeSender('whatsapp'),
        'facebook': FakeSender('facebook'),
        'instagram': FakeSender('instagram'),
    }


@pytest.fixture
def tools():
    return FakeToolExecutor()


@pytest.fixture
def assigner():
    return FakeAssigner()


@pytest.fixture
def requeue():
    return FakeRequeue()


@pytest.fixture
def audit():
    return FakeAudit()


@pytest.fixture
def http_routes():
    return HttpRoutes()


@pytest.fixture
def settings():
    return EngineSettings(max_steps_per_run=50, http_timeout=5.0, tool_timeout=5.0, send_timeout=5.0)


@pytest.fixture
def deps(senders, tools, assigner, http_routes, settings, clock):
    return EngineDeps(
        senders=senders,
        tools=tools,
        assigner=assigner,
        http=httpx.AsyncClient(transport=httpx.MockTransport(http_routes)),
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def engine(graph_store, run_store, deps, requeue, audit):
    return Engine(graph_store, run_store, deps, requeue, audit=audit)


@pytest.fixture
def collaborator_error():
    return CollaboratorError('messaging:whatsapp', 'recipient blocked', status_code=400)


class SqliteConfig:
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SECRET_KEY = 'test'
    TESTING = True
    MAX_STEPS_PER_RUN = 50


@pytest.fixture
def app():
    """Flask app over an in-memory SQLite database (tables created on startup)"""
    from automation import create_app
    from automation.database import db

    app = create_app(SqliteConfig)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()
