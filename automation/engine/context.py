"""
Execution Context - estado mutável de um run.

Contém o mapa de variáveis, o cursor (node atual) e o log append-only.
É serializável para JSON de forma exata, o que permite suspender o run
(DELAY, MENU) e retomá-lo em outro worker.
"""

import copy
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class RunStatus(str, Enum):
    """
    Estados possíveis de um run.

    Fluxo típico:
    running → (waiting_timer | waiting_input → running)* → completed

    Terminais alternativos:
    halted (nenhuma edge para o branch resolvido), failed, canceled
    """
    RUNNING = 'running'
    WAITING_TIMER = 'waiting_timer'
    WAITING_INPUT = 'waiting_input'
    COMPLETED = 'completed'
    HALTED = 'halted'
    FAILED = 'failed'
    CANCELED = 'canceled'

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_waiting(self) -> bool:
        return self in (RunStatus.WAITING_TIMER, RunStatus.WAITING_INPUT)


TERMINAL_STATUSES = frozenset({
    RunStatus.COMPLETED,
    RunStatus.HALTED,
    RunStatus.FAILED,
    RunStatus.CANCELED,
})


class LogKind(str, Enum):
    STEP = 'step'
    SUSPENDED = 'suspended'
    RESUMED = 'resumed'
    TERMINAL = 'terminal'


class TerminalOutcome(str, Enum):
    """Motivo do término, distinguível no log"""
    COMPLETED = 'completed'
    NO_MATCHING_BRANCH = 'no_matching_branch'
    FAILED = 'failed'
    STEP_BUDGET_EXCEEDED = 'step_budget_exceeded'
    CANCELED = 'canceled'


OUTCOME_STATUS = {
    TerminalOutcome.COMPLETED: RunStatus.COMPLETED,
    TerminalOutcome.NO_MATCHING_BRANCH: RunStatus.HALTED,
    TerminalOutcome.FAILED: RunStatus.FAILED,
    TerminalOutcome.STEP_BUDGET_EXCEEDED: RunStatus.FAILED,
    TerminalOutcome.CANCELED: RunStatus.CANCELED,
}


@dataclass
class LogEntry:
    """Entrada do log de execução: {node_id, type, kind, result, at}"""
    node_id: Optional[str]
    type: str
    result: Dict[str, Any]
    at: str
    kind: LogKind = LogKind.STEP

    def to_dict(self) -> Dict[str, Any]:
        return {
            'node_id': self.node_id,
            'type': self.type,
            'kind': self.kind.value,
            'result': copy.deepcopy(self.result),
            'at': self.at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LogEntry':
        return cls(
            node_id=data.get('node_id'),
            type=data.get('type', ''),
            result=copy.deepcopy(data.get('result') or {}),
            at=data.get('at', ''),
            kind=LogKind(data.get('kind', LogKind.STEP.value)),
        )

    @classmethod
    def terminal(
        cls,
        node_id: Optional[str],
        outcome: TerminalOutcome,
        at: datetime,
        **details: Any,
    ) -> 'LogEntry':
        return cls(
            node_id=node_id,
            type='TERMINAL',
            result={'outcome': outcome.value, **details},
            at=at.isoformat(),
            kind=LogKind.TERMINAL,
        )

    @property
    def outcome(self) -> Optional[str]:
        if self.kind != LogKind.TERMINAL:
            return None
        return self.result.get('outcome')


@dataclass
class ExecutionContext:
    """
    Contexto de um run.

    O log só cresce via append_log; nenhuma entrada é reescrita.
    """
    run_id: str
    workflow_id: str
    tenant_id: str
    status: RunStatus = RunStatus.RUNNING
    cursor: Optional[str] = None
    variables: Dict[str, Any] = field(default_factory=dict)
    log: List[LogEntry] = field(default_factory=list)
    step_count: int = 0
    wait: Optional[Dict[str, Any]] = None
    correlation_key: Optional[str] = None
    error_message: Optional[str] = None
    version: int = 1

    @classmethod
    def new(
        cls,
        workflow_id: str,
        tenant_id: str,
        variables: Optional[Dict[str, Any]] = None,
        cursor: Optional[str] = None,
        correlation_key: Optional[str] = None,
    ) -> 'ExecutionContext':
        return cls(
            run_id=str(uuid.uuid4()),
            workflow_id=workflow_id,
            tenant_id=tenant_id,
            cursor=cursor,
            variables=copy.deepcopy(variables or {}),
            correlation_key=correlation_key,
        )

    def append_log(self, entry: LogEntry) -> None:
        self.log.append(entry)

    def merge(self, patch: Optional[Dict[str, Any]]) -> None:
        """Merge raso do patch do executor nas variáveis"""
        if patch:
            self.variables.update(copy.deepcopy(patch))

    @property
    def last_entry(self) -> Optional[LogEntry]:
        return self.log[-1] if self.log else None

    @property
    def outcome(self) -> Optional[str]:
        entry = self.last_entry
        return entry.outcome if entry else None

    def visited_nodes(self) -> List[str]:
        """Node ids executados, em ordem"""
        return [entry.node_id for entry in self.log if entry.kind == LogKind.STEP]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'run_id': self.run_id,
            'workflow_id': self.workflow_id,
            'tenant_id': self.tenant_id,
            'status': self.status.value,
            'cursor': self.cursor,
            'variables': copy.deepcopy(self.variables),
            'log': [entry.to_dict() for entry in self.log],
            'step_count': self.step_count,
            'wait': copy.deepcopy(self.wait),
            'correlation_key': self.correlation_key,
            'error_message': self.error_message,
            'version': self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ExecutionContext':
        return cls(
            run_id=data['run_id'],
            workflow_id=data['workflow_id'],
            tenant_id=data['tenant_id'],
            status=RunStatus(data.get('status', RunStatus.RUNNING.value)),
            cursor=data.get('cursor'),
            variables=copy.deepcopy(data.get('variables') or {}),
            log=[LogEntry.from_dict(e) for e in data.get('log') or []],
            step_count=data.get('step_count', 0),
            wait=copy.deepcopy(data.get('wait')),
            correlation_key=data.get('correlation_key'),
            error_message=data.get('error_message'),
            version=data.get('version', 1),
        )
