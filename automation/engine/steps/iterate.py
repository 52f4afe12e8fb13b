"""
Steps Iterator - Run Driver.

Executa um segmento síncrono de um run: do cursor atual até um node
terminal ou até uma suspensão (DELAY, MENU). A cada step:
1. Checa cancelamento (também antes de suspender e ao retomar) e limite de steps
2. Executa o node no executor do seu tipo
3. Mescla o patch de variáveis e acrescenta a entrada no log
4. Resolve a próxima edge e persiste o contexto

Erros de configuração encerram o run com entrada terminal. Erros
transitórios propagam sem gravar nada do step, para que a infraestrutura
retente a partir do último estado salvo.
"""

import logging
from typing import Any, Optional

from automation.engine.context import (
    OUTCOME_STATUS,
    ExecutionContext,
    LogEntry,
    LogKind,
    RunStatus,
    TerminalOutcome,
)
from automation.engine.errors import NodeConfigError, WorkflowGraphError
from automation.engine.executors import NODE_EXECUTORS, NodeResult, Suspension
from automation.engine.flow.branching import EdgeResolution, resolve_next_node

logger = logging.getLogger(__name__)


def finish_run(
    context: ExecutionContext,
    store: Any,
    outcome: TerminalOutcome,
    clock,
    node_id: Optional[str] = None,
    **details: Any,
) -> ExecutionContext:
    """Acrescenta a entrada terminal, marca o status final e persiste"""
    context.append_log(LogEntry.terminal(node_id, outcome, clock(), **details))
    context.status = OUTCOME_STATUS[outcome]
    context.wait = None
    if outcome in (TerminalOutcome.FAILED, TerminalOutcome.STEP_BUDGET_EXCEEDED):
        context.error_message = details.get('reason') or outcome.value

    store.save(context)
    logger.info(f"Run {context.run_id} finalizado: {outcome.value} (node {node_id})")
    return context


def _advance(
    context: ExecutionContext,
    graph: Any,
    node: Any,
    result: NodeResult,
    store: Any,
    clock,
) -> bool:
    """
    Move o cursor para o próximo node e persiste.

    Returns:
        True se o run terminou neste node
    """
    resolution = resolve_next_node(graph, node, result.branch_key)

    if resolution.is_terminal:
        if resolution.reason == EdgeResolution.NO_MATCHING_BRANCH:
            finish_run(
                context, store, TerminalOutcome.NO_MATCHING_BRANCH, clock,
                node_id=node.id, branch_key=result.branch_key,
            )
        else:
            finish_run(context, store, TerminalOutcome.COMPLETED, clock, node_id=node.id)
        return True

    context.cursor = resolution.next_node_id
    store.save(context)
    return False


def _suspend(context: ExecutionContext, node: Any, suspension: Suspension, store: Any, clock) -> ExecutionContext:
    """Persiste o contexto completo e devolve o controle ao chamador"""
    context.status = RunStatus.WAITING_TIMER if suspension.kind == Suspension.TIMER else RunStatus.WAITING_INPUT
    context.wait = {'node_id': node.id, **suspension.to_dict()}
    context.append_log(LogEntry(
        node_id=node.id,
        type=node.type.value,
        result=dict(context.wait),
        at=clock().isoformat(),
        kind=LogKind.SUSPENDED,
    ))
    store.save(context)
    logger.info(f"Run {context.run_id} suspenso em {node.id} ({suspension.kind})")
    return context


async def resume_steps(
    context: ExecutionContext,
    graph: Any,
    deps: Any,
    store: Any,
    max_steps: int,
    result: NodeResult,
) -> ExecutionContext:
    """
    Retoma um run suspenso: resolve a edge de saída do node em espera
    com o resultado da retomada e continua o loop.
    """
    node = graph.get_node(context.cursor)

    # Cancelamento pedido enquanto o run estava suspenso: a retomada não é aplicada
    if store.is_cancel_requested(context.run_id):
        return finish_run(context, store, TerminalOutcome.CANCELED, deps.clock, node_id=node.id)

    context.status = RunStatus.RUNNING
    context.wait = None
    context.merge(result.context_patch)
    context.append_log(LogEntry(
        node_id=node.id,
        type=node.type.value,
        result=result.to_log_result(),
        at=deps.clock().isoformat(),
        kind=LogKind.RESUMED,
    ))

    if _advance(context, graph, node, result, store, deps.clock):
        return context

    return await iterate_steps(context, graph, deps, store, max_steps)


async def iterate_steps(
    context: ExecutionContext,
    graph: Any,
    deps: Any,
    store: Any,
    max_steps: int,
) -> ExecutionContext:
    """
    Executa steps a partir do cursor até terminar ou suspender.

    Args:
        context: contexto carregado do RunStore (status running)
        graph: WorkflowGraph compilado
        deps: EngineDeps (colaboradores injetados)
        store: RunStore
        max_steps: limite de steps do run inteiro

    Returns:
        Contexto após o segmento (terminal ou aguardando)

    Raises:
        TransientNodeError: falha recuperável; nada do step foi persistido
        PersistenceError: contexto não pôde ser salvo
    """
    clock = deps.clock

    while True:
        if store.is_cancel_requested(context.run_id):
            return finish_run(context, store, TerminalOutcome.CANCELED, clock, node_id=context.cursor)

        if context.step_count >= max_steps:
            logger.error(f"Run {context.run_id} excedeu o limite de {max_steps} steps")
            return finish_run(
                context, store, TerminalOutcome.STEP_BUDGET_EXCEEDED, clock,
                node_id=context.cursor, reason=f"step budget of {max_steps} exhausted",
                max_steps=max_steps,
            )

        try:
            node = graph.get_node(context.cursor)
        except WorkflowGraphError as e:
            return finish_run(
                context, store, TerminalOutcome.FAILED, clock,
                node_id=context.cursor, reason=str(e), error_type='graph',
            )

        executor = NODE_EXECUTORS[node.type]
        logger.debug(f"Run {context.run_id}: executando {node.type.value} {node.id}")

        try:
            result = await executor(node, context, deps)
        except NodeConfigError as e:
            logger.error(f"Run {context.run_id}: config inválida no node {e.node_id}: {e.reason}")
            return finish_run(
                context, store, TerminalOutcome.FAILED, clock,
                node_id=e.node_id, reason=e.reason, error_type='configuration',
            )

        context.merge(result.context_patch)
        context.step_count += 1
        context.append_log(LogEntry(
            node_id=node.id,
            type=node.type.value,
            result=result.to_log_result(),
            at=clock().isoformat(),
        ))

        if result.suspend is not None:
            # Suspensão também é fronteira de step
            if store.is_cancel_requested(context.run_id):
                return finish_run(context, store, TerminalOutcome.CANCELED, clock, node_id=node.id)
            return _suspend(context, node, result.suspend, store, clock)

        if _advance(context, graph, node, result, store, clock):
            return context
