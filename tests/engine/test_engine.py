"""
Tests for automation/engine/engine.py and the run driver

End-to-end runs over in-memory stores and fake collaborators.
"""

import pytest
from datetime import timedelta

from automation.engine.context import LogKind, RunStatus, TerminalOutcome
from automation.engine.engine import ResumeKind
from automation.engine.errors import (
    TransientNodeError,
    WorkflowInactiveError,
    WorkflowNotFoundError,
)


START = {'id': 'start', 'type': 'START', 'config': {}}
PHONE = '+5511999990000'


def content(node_id, message):
    return {'id': node_id, 'type': 'CONTENT', 'config': {'message': message}}


def bodies(sender):
    return [message['body'] for message in sender.sent]


@pytest.fixture
def age_workflow(graph_store):
    """START -> CONTENT -> CONDITION(age > 18) -> A | B"""
    graph_store.add(
        'wf-age',
        nodes=[
            START,
            content('greet', 'Hello {{name}}'),
            {'id': 'check', 'type': 'CONDITION', 'config': {'field': 'age', 'operator': 'greater_than', 'value': 18}},
            content('a', 'Adult'),
            content('b', 'Minor'),
        ],
        edges=[
            {'source': 'start', 'target': 'greet'},
            {'source': 'greet', 'target': 'check'},
            {'source': 'check', 'target': 'a', 'label': 'true'},
            {'source': 'check', 'target': 'b', 'label': 'false'},
        ],
    )
    return 'wf-age'


@pytest.fixture
def delay_workflow(graph_store):
    """START -> DELAY(60s) -> CONTENT"""
    graph_store.add(
        'wf-delay',
        nodes=[
            START,
            {'id': 'wait', 'type': 'DELAY', 'config': {'seconds': 60}},
            content('after', 'Back, {{name}}'),
        ],
        edges=[
            {'source': 'start', 'target': 'wait'},
            {'source': 'wait', 'target': 'after'},
        ],
    )
    return 'wf-delay'


@pytest.fixture
def menu_workflow(graph_store):
    graph_store.add(
        'wf-menu',
        nodes=[
            START,
            {
                'id': 'menu',
                'type': 'MENU',
                'config': {
                    'prompt': 'How can we help?',
                    'options': [{'key': 'sales', 'label': 'Sales'}, {'key': 'support', 'label': 'Support'}],
                },
            },
            {'id': 'to-sales', 'type': 'ASSIGN_QUEUE', 'config': {'queue_id': 'q-sales'}},
            {'id': 'to-support', 'type': 'ASSIGN_QUEUE', 'config': {'queue_id': 'q-support'}},
        ],
        edges=[
            {'source': 'start', 'target': 'menu'},
            {'source': 'menu', 'target': 'to-sales', 'sourceHandle': 'sales'},
            {'source': 'menu', 'target': 'to-support', 'sourceHandle': 'support'},
        ],
    )
    return 'wf-menu'


class TestBranchingRuns:
    """START -> CONTENT -> CONDITION -> A/B"""

    @pytest.mark.asyncio
    async def test_adult_takes_true_branch(self, engine, age_workflow, senders):
        context = await engine.run(age_workflow, {'name': 'Ana', 'age': 20}, correlation_key=PHONE)

        assert context.status == RunStatus.COMPLETED
        assert context.visited_nodes() == ['start', 'greet', 'check', 'a']
        assert bodies(senders['whatsapp']) == ['Hello Ana', 'Adult']
        assert context.outcome == TerminalOutcome.COMPLETED.value

    @pytest.mark.asyncio
    async def test_minor_takes_false_branch(self, engine, age_workflow, senders):
        context = await engine.run(age_workflow, {'name': 'Ana', 'age': 15}, correlation_key=PHONE)

        assert context.status == RunStatus.COMPLETED
        assert context.visited_nodes() == ['start', 'greet', 'check', 'b']
        assert bodies(senders['whatsapp']) == ['Hello Ana', 'Minor']

    @pytest.mark.asyncio
    async def test_persisted_run_matches_returned_context(self, engine, age_workflow, run_store):
        context = await engine.run(age_workflow, {'name': 'Ana', 'age': 20}, correlation_key=PHONE)

        stored = run_store.load(context.run_id)
        assert stored.to_dict() == context.to_dict()

    @pytest.mark.asyncio
    async def test_no_matching_branch_halts(self, engine, graph_store):
        graph_store.add(
            'wf-one-branch',
            nodes=[
                START,
                {'id': 'check', 'type': 'CONDITION', 'config': {'field': 'age', 'operator': '>', 'value': 18}},
                content('a', 'Adult'),
            ],
            edges=[
                {'source': 'start', 'target': 'check'},
                {'source': 'check', 'target': 'a', 'label': 'true'},
            ],
        )

        context = await engine.run('wf-one-branch', {'age': 15}, correlation_key=PHONE)

        assert context.status == RunStatus.HALTED
        assert context.visited_nodes() == ['start', 'check']
        terminal = context.last_entry
        assert terminal.kind == LogKind.TERMINAL
        assert terminal.outcome == TerminalOutcome.NO_MATCHING_BRANCH.value
        assert terminal.result['branch_key'] == 'false'
        assert terminal.node_id == 'check'

    @pytest.mark.asyncio
    async def test_unknown_operator_takes_false_branch(self, engine, graph_store, senders):
        graph_store.add(
            'wf-bad-op',
            nodes=[
                START,
                {'id': 'check', 'type': 'CONDITION', 'config': {'field': 'age', 'operator': 'between', 'value': 1}},
                content('a', 'yes'),
                content('b', 'no'),
            ],
            edges=[
                {'source': 'start', 'target': 'check'},
                {'source': 'check', 'target': 'a', 'label': 'true'},
                {'source': 'check', 'target': 'b', 'label': 'false'},
            ],
        )

        context = await engine.run('wf-bad-op', {'age': 20}, correlation_key=PHONE)

        assert context.visited_nodes()[-1] == 'b'


class TestStepBudget:
    @pytest.mark.asyncio
    async def test_cycle_stops_at_budget(self, engine, graph_store, settings, audit):
        graph_store.add(
            'wf-loop',
            nodes=[START, content('again', 'ping')],
            edges=[{'source': 'start', 'target': 'again'}, {'source': 'again', 'target': 'again'}],
        )

        context = await engine.run('wf-loop', {}, correlation_key=PHONE)

        assert context.status == RunStatus.FAILED
        assert context.step_count == settings.max_steps_per_run
        assert context.outcome == TerminalOutcome.STEP_BUDGET_EXCEEDED.value
        assert len(audit.named('log_run_failed')) == 1


class TestDelay:
    """DELAY suspends, persists and resumes from the durable handoff"""

    @pytest.mark.asyncio
    async def test_suspend_and_resume_round_trip(self, engine, delay_workflow, run_store, requeue, clock, senders):
        context = await engine.run(delay_workflow, {'name': 'Ana', 'tags': ['vip']}, correlation_key=PHONE)

        assert context.status == RunStatus.WAITING_TIMER
        assert context.cursor == 'wait'
        assert senders['whatsapp'].sent == []

        job_id = f"run-{context.run_id}-wake-wait-2"
        assert list(requeue.jobs) == [job_id]
        scheduled = requeue.jobs[job_id]
        assert scheduled['job']['kind'] == ResumeKind.TIMER
        assert scheduled['not_before'] == clock() + timedelta(seconds=60)

        stored = run_store.load(context.run_id)
        assert stored.variables == {'name': 'Ana', 'tags': ['vip']}
        assert stored.wait['node_id'] == 'wait'

        clock.advance(seconds=60)
        resumed = await engine.resume(context.run_id, scheduled['job'])

        assert resumed.status == RunStatus.COMPLETED
        assert resumed.variables == {'name': 'Ana', 'tags': ['vip']}
        assert bodies(senders['whatsapp']) == ['Back, Ana']
        assert [entry.kind for entry in resumed.log] == [
            LogKind.STEP, LogKind.STEP, LogKind.SUSPENDED, LogKind.RESUMED, LogKind.STEP, LogKind.TERMINAL,
        ]

    @pytest.mark.asyncio
    async def test_replayed_segment_does_not_duplicate_wake_up(self, engine, delay_workflow, requeue):
        context = await engine.run(delay_workflow, {'name': 'Ana'}, correlation_key=PHONE)

        again = await engine.run_segment(context.run_id)

        assert again.status == RunStatus.WAITING_TIMER
        assert requeue.calls == 2
        assert len(requeue.jobs) == 1

    @pytest.mark.asyncio
    async def test_stale_wake_up_is_ignored(self, engine, delay_workflow, run_store):
        context = await engine.run(delay_workflow, {'name': 'Ana'}, correlation_key=PHONE)

        result = await engine.resume(context.run_id, {'kind': ResumeKind.TIMER, 'node_id': 'other'})

        assert result.status == RunStatus.WAITING_TIMER
        assert len(run_store.load(context.run_id).log) == len(context.log)

    @pytest.mark.asyncio
    async def test_wake_up_after_completion_is_ignored(self, engine, delay_workflow, requeue):
        context = await engine.run(delay_workflow, {'name': 'Ana'}, correlation_key=PHONE)
        job = next(iter(requeue.jobs.values()))['job']

        done = await engine.resume(context.run_id, job)
        again = await engine.resume(context.run_id, job)

        assert done.status == RunStatus.COMPLETED
        assert again.status == RunStatus.COMPLETED
        assert len(again.log) == len(done.log)


class TestMenu:
    @pytest.mark.asyncio
    async def test_reply_resumes_matching_branch(self, engine, menu_workflow, assigner, senders):
        context = await engine.run(menu_workflow, {}, correlation_key='conv-1')

        assert context.status == RunStatus.WAITING_INPUT
        assert bodies(senders['whatsapp']) == ['How can we help?\n1. Sales\n2. Support']

        resumed = await engine.handle_inbound_message('tenant-1', 'conv-1', '2')

        assert resumed.status == RunStatus.COMPLETED
        assert resumed.visited_nodes() == ['start', 'menu', 'to-support']
        assert resumed.variables['menuResponse'] == '2'
        assert assigner.assignments[0]['target'] == {'queue_id': 'q-support'}

    @pytest.mark.asyncio
    async def test_unmatched_reply_halts(self, engine, menu_workflow):
        await engine.run(menu_workflow, {}, correlation_key='conv-1')

        resumed = await engine.handle_inbound_message('tenant-1', 'conv-1', 'pizza')

        assert resumed.status == RunStatus.HALTED
        assert resumed.outcome == TerminalOutcome.NO_MATCHING_BRANCH.value

    @pytest.mark.asyncio
    async def test_message_without_waiting_run(self, engine, menu_workflow):
        assert await engine.handle_inbound_message('tenant-1', 'unknown-conv', 'hi') is None

    @pytest.mark.asyncio
    async def test_reply_to_other_tenant_is_not_correlated(self, engine, menu_workflow):
        await engine.run(menu_workflow, {}, correlation_key='conv-1')

        assert await engine.handle_inbound_message('tenant-2', 'conv-1', '1') is None


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_waiting_run(self, engine, delay_workflow, audit, requeue):
        context = await engine.run(delay_workflow, {'name': 'Ana'}, correlation_key=PHONE)

        canceled = engine.cancel(context.run_id, reason='lead replied')

        assert canceled.status == RunStatus.CANCELED
        assert canceled.outcome == TerminalOutcome.CANCELED.value
        assert canceled.wait is None
        assert audit.named('log_run_canceled')[0]['reason'] == 'lead replied'

        job = next(iter(requeue.jobs.values()))['job']
        late = await engine.resume(context.run_id, job)
        assert late.status == RunStatus.CANCELED

    @pytest.mark.asyncio
    async def test_cancel_is_checked_at_step_boundary(self, engine, age_workflow, run_store):
        context = engine.create_run(age_workflow, {'name': 'Ana', 'age': 20}, correlation_key=PHONE)
        run_store.request_cancel(context.run_id)

        result = await engine.run_segment(context.run_id)

        assert result.status == RunStatus.CANCELED
        assert result.visited_nodes() == []

    @pytest.mark.asyncio
    async def test_cancel_requested_while_prompt_is_sent_stops_before_waiting(
        self, engine, menu_workflow, run_store, senders, audit
    ):
        """A cancel arriving during the MENU step is honored instead of suspending"""
        class CancelingSender:
            def __init__(self):
                self.sent = []

            async def send(self, recipient, body, idempotency_key=None):
                self.sent.append(body)
                for run_id in list(run_store.rows):
                    run_store.request_cancel(run_id)
                return {'message_id': 'msg-1'}

        senders['whatsapp'] = CancelingSender()

        context = await engine.run(menu_workflow, {}, correlation_key='conv-1')

        assert context.status == RunStatus.CANCELED
        assert context.wait is None
        assert context.last_entry.node_id == 'menu'
        assert run_store.load(context.run_id).status == RunStatus.CANCELED
        assert audit.named('log_run_canceled')[0]['run_id'] == context.run_id
        assert await engine.handle_inbound_message('tenant-1', 'conv-1', '1') is None

    @pytest.mark.asyncio
    async def test_reply_to_run_with_pending_cancel_is_not_applied(self, engine, menu_workflow, run_store, assigner):
        context = await engine.run(menu_workflow, {}, correlation_key='conv-1')
        run_store.request_cancel(context.run_id)

        resumed = await engine.handle_inbound_message('tenant-1', 'conv-1', '2')

        assert resumed.status == RunStatus.CANCELED
        assert resumed.outcome == TerminalOutcome.CANCELED.value
        assert 'menuResponse' not in resumed.variables
        assert assigner.assignments == []

    @pytest.mark.asyncio
    async def test_cancel_terminal_run_is_noop(self, engine, age_workflow):
        context = await engine.run(age_workflow, {'name': 'Ana', 'age': 20}, correlation_key=PHONE)

        assert engine.cancel(context.run_id).status == RunStatus.COMPLETED


class TestFailures:
    @pytest.mark.asyncio
    async def test_config_error_fails_before_any_step(self, engine, graph_store, senders):
        graph_store.add(
            'wf-broken',
            nodes=[START, content('greet', 'hi'), {'id': 'http-1', 'type': 'HTTP', 'config': {'method': 'POST'}}],
            edges=[{'source': 'start', 'target': 'greet'}, {'source': 'greet', 'target': 'http-1'}],
        )

        context = await engine.run('wf-broken', {}, correlation_key=PHONE)

        assert context.status == RunStatus.FAILED
        assert context.visited_nodes() == []
        assert context.last_entry.node_id == 'http-1'
        assert context.last_entry.result['error_type'] == 'configuration'
        assert senders['whatsapp'].sent == []

    @pytest.mark.asyncio
    async def test_inactive_workflow_rejected(self, engine, graph_store):
        graph_store.add('wf-off', nodes=[START], edges=[], active=False)

        with pytest.raises(WorkflowInactiveError):
            await engine.run('wf-off', {})

    @pytest.mark.asyncio
    async def test_missing_workflow(self, engine):
        with pytest.raises(WorkflowNotFoundError):
            await engine.run('wf-ghost', {})

    @pytest.mark.asyncio
    async def test_http_500_then_retries_exhausted(self, engine, graph_store, http_routes, run_store, audit):
        http_routes.add('GET', 'https://api.example.com/flaky', status_code=500, text='boom')
        graph_store.add(
            'wf-http',
            nodes=[START, {'id': 'http', 'type': 'HTTP', 'config': {'url': 'https://api.example.com/flaky'}}],
            edges=[{'source': 'start', 'target': 'http'}],
        )

        with pytest.raises(TransientNodeError) as exc:
            await engine.run('wf-http', {})

        run_id = next(iter(run_store.rows))
        saved = run_store.load(run_id)
        assert saved.status == RunStatus.RUNNING
        assert saved.cursor == 'http'
        assert saved.visited_nodes() == ['start']

        failed = engine.fail(run_id, str(exc.value), exc.value.to_details())

        assert failed.status == RunStatus.FAILED
        assert failed.last_entry.node_id == 'http'
        assert failed.last_entry.result['status_code'] == 500
        assert failed.last_entry.result['error_type'] == 'retries_exhausted'
        assert audit.named('log_run_failed')[0]['run_id'] == run_id

    @pytest.mark.asyncio
    async def test_retry_resumes_from_last_saved_step(self, engine, graph_store, http_routes, run_store):
        http_routes.add('GET', 'https://api.example.com/flaky', status_code=503)
        graph_store.add(
            'wf-http',
            nodes=[START, {'id': 'http', 'type': 'HTTP', 'config': {'url': 'https://api.example.com/flaky'}}],
            edges=[{'source': 'start', 'target': 'http'}],
        )

        with pytest.raises(TransientNodeError):
            await engine.run('wf-http', {})

        http_routes.add('GET', 'https://api.example.com/flaky', json={'ok': True})
        run_id = next(iter(run_store.rows))
        context = await engine.run_segment(run_id)

        assert context.status == RunStatus.COMPLETED
        assert context.visited_nodes() == ['start', 'http']
        assert context.variables['httpResponse'] == {'ok': True}

    @pytest.mark.asyncio
    async def test_fail_terminal_run_is_noop(self, engine, age_workflow):
        context = await engine.run(age_workflow, {'name': 'Ana', 'age': 20}, correlation_key=PHONE)

        assert engine.fail(context.run_id, 'late failure').status == RunStatus.COMPLETED
