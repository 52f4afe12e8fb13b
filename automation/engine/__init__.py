"""
Automation Engine - interpretador de grafos de workflow.

Componentes principais:
- Engine: criação, execução, retomada, cancelamento e falha de runs
- ExecutionContext: variáveis, cursor e log append-only de um run
- Node Executors: uma função por tipo de node
- Edge Resolver: escolha da próxima edge (fail-safe sem branch correspondente)
- Run Driver (steps.iterate): loop step a step com limite de steps

Uso:
    from automation.engine import Engine, build_engine_deps

    deps = build_engine_deps(app.config, http_client)
    engine = Engine(SqlAlchemyGraphStore(), SqlAlchemyRunStore(), deps, requeue)
    context = await engine.run(workflow_id, {'name': 'Ana', 'age': 20})
"""

from .context import ExecutionContext, LogEntry, LogKind, RunStatus, TerminalOutcome
from .errors import (
    EngineError,
    NodeConfigError,
    WorkflowGraphError,
    TransientNodeError,
    CollaboratorError,
    WorkflowNotFoundError,
    WorkflowInactiveError,
    RunNotFoundError,
    PersistenceError,
    ConcurrentRunModificationError,
)
from .registry import EngineDeps, EngineSettings, build_engine_deps
from .store import RunStore, SqlAlchemyRunStore
from .flow.context import GraphStore, SqlAlchemyGraphStore
from .engine import Engine, ResumeKind

__all__ = [
    'Engine',
    'ResumeKind',
    'ExecutionContext',
    'LogEntry',
    'LogKind',
    'RunStatus',
    'TerminalOutcome',
    'EngineDeps',
    'EngineSettings',
    'build_engine_deps',
    'RunStore',
    'SqlAlchemyRunStore',
    'GraphStore',
    'SqlAlchemyGraphStore',
    'EngineError',
    'NodeConfigError',
    'WorkflowGraphError',
    'TransientNodeError',
    'CollaboratorError',
    'WorkflowNotFoundError',
    'WorkflowInactiveError',
    'RunNotFoundError',
    'PersistenceError',
    'ConcurrentRunModificationError',
]
