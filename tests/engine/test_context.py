"""
Tests for automation/engine/context.py
"""

import json
from datetime import datetime, timezone

from automation.engine.context import (
    ExecutionContext,
    LogEntry,
    LogKind,
    RunStatus,
    TerminalOutcome,
)


AT = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


class TestRunStatus:
    def test_terminal_statuses(self):
        assert RunStatus.COMPLETED.is_terminal
        assert RunStatus.HALTED.is_terminal
        assert RunStatus.FAILED.is_terminal
        assert RunStatus.CANCELED.is_terminal
        assert not RunStatus.WAITING_TIMER.is_terminal

    def test_waiting_statuses(self):
        assert RunStatus.WAITING_TIMER.is_waiting
        assert RunStatus.WAITING_INPUT.is_waiting
        assert not RunStatus.RUNNING.is_waiting


class TestExecutionContext:
    def test_json_round_trip(self):
        """Serialized context survives a JSON round-trip unchanged"""
        context = ExecutionContext.new('wf-1', 'tenant-1', {'name': 'Ana', 'items': [{'id': 1}]}, cursor='start')
        context.step_count = 2
        context.status = RunStatus.WAITING_TIMER
        context.wait = {'node_id': 'wait', 'kind': 'timer', 'resume_at': AT.isoformat()}
        context.append_log(LogEntry('start', 'START', {'success': True, 'output': {}}, AT.isoformat()))

        restored = ExecutionContext.from_dict(json.loads(json.dumps(context.to_dict())))

        assert restored == context

    def test_new_copies_variables(self):
        variables = {'contact': {'name': 'Ana'}}
        context = ExecutionContext.new('wf-1', 'tenant-1', variables)

        variables['contact']['name'] = 'Bia'

        assert context.variables['contact']['name'] == 'Ana'

    def test_merge_is_shallow_and_copies(self):
        context = ExecutionContext.new('wf-1', 'tenant-1', {'a': 1, 'b': {'x': 1}})
        patch = {'b': {'y': 2}}

        context.merge(patch)
        patch['b']['y'] = 99

        assert context.variables == {'a': 1, 'b': {'y': 2}}

    def test_terminal_entry(self):
        entry = LogEntry.terminal('check', TerminalOutcome.NO_MATCHING_BRANCH, AT, branch_key='false')

        assert entry.kind == LogKind.TERMINAL
        assert entry.type == 'TERMINAL'
        assert entry.outcome == 'no_matching_branch'
        assert entry.result['branch_key'] == 'false'

    def test_step_entry_has_no_outcome(self):
        entry = LogEntry('a', 'CONTENT', {}, AT.isoformat())

        assert entry.outcome is None

    def test_visited_nodes_only_counts_steps(self):
        context = ExecutionContext.new('wf-1', 'tenant-1')
        context.append_log(LogEntry('menu', 'MENU', {}, AT.isoformat()))
        context.append_log(LogEntry('menu', 'MENU', {}, AT.isoformat(), kind=LogKind.SUSPENDED))
        context.append_log(LogEntry('menu', 'MENU', {}, AT.isoformat(), kind=LogKind.RESUMED))
        context.append_log(LogEntry.terminal('menu', TerminalOutcome.COMPLETED, AT))

        assert context.visited_nodes() == ['menu']
        assert context.outcome == 'completed'
