"""
Engine Principal - Orquestrador central de execução de workflows.

Responsável por:
- Criar runs a partir de workflows ativos
- Executar segmentos síncronos (até terminar ou suspender)
- Retomar runs suspensos (timer expirado ou resposta do usuário)
- Cancelar e falhar runs fora do Run Driver
"""

from typing import Dict, Any, Optional
from datetime import datetime
import logging

from automation.engine.context import ExecutionContext, LogEntry, RunStatus, TerminalOutcome
from automation.engine.errors import NodeConfigError, WorkflowGraphError, WorkflowInactiveError
from automation.engine.executors import NodeResult, menu_reply_result
from automation.engine.flow.context import build_workflow_graph
from automation.engine.flow.graph import NodeType, WorkflowGraph
from automation.engine.steps.iterate import finish_run, iterate_steps, resume_steps

logger = logging.getLogger(__name__)


class ResumeKind:
    TIMER = 'resume_run'
    INPUT = 'inbound_message'


class Engine:
    """
    Engine de execução de workflows.

    Todas as dependências são injetadas: Graph Store, Run Store,
    colaboradores (EngineDeps) e a fila de reentrada com atraso.
    """

    def __init__(self, graph_store, run_store, deps, requeue, audit=None):
        self.graph_store = graph_store
        self.run_store = run_store
        self.deps = deps
        self.requeue = requeue
        self.audit = audit

    @property
    def max_steps(self) -> int:
        return self.deps.settings.max_steps_per_run

    def create_run(
        self,
        workflow_id: str,
        variables: Optional[Dict[str, Any]] = None,
        correlation_key: Optional[str] = None,
    ) -> ExecutionContext:
        """
        Cria um run posicionado no node START.

        Se o grafo tiver config inválida, o run é criado e imediatamente
        encerrado como failed com o node e o motivo no log.

        Args:
            workflow_id: ID do workflow
            variables: Variáveis iniciais (payload do trigger)
            correlation_key: Conversa/contato para correlacionar respostas

        Returns:
            ExecutionContext persistido

        Raises:
            WorkflowNotFoundError: workflow inexistente
            WorkflowInactiveError: workflow desativado
        """
        definition = self.graph_store.load_workflow(workflow_id)
        if not definition.active:
            raise WorkflowInactiveError(workflow_id)

        context = ExecutionContext.new(
            workflow_id=definition.workflow_id,
            tenant_id=definition.tenant_id,
            variables=variables,
            cursor=definition.find_start_node_id(),
            correlation_key=correlation_key,
        )
        self.run_store.create(context)

        try:
            build_workflow_graph(definition)
        except NodeConfigError as e:
            logger.error(f"Workflow {workflow_id}: node {e.node_id} com config inválida: {e.reason}")
            finish_run(
                context, self.run_store, TerminalOutcome.FAILED, self.deps.clock,
                node_id=e.node_id, reason=e.reason, error_type='configuration',
            )
        except WorkflowGraphError as e:
            logger.error(f"Workflow {workflow_id}: grafo inválido: {e.reason}")
            finish_run(
                context, self.run_store, TerminalOutcome.FAILED, self.deps.clock,
                node_id=None, reason=e.reason, error_type='graph',
            )

        return context

    async def run(
        self,
        workflow_id: str,
        variables: Optional[Dict[str, Any]] = None,
        correlation_key: Optional[str] = None,
    ) -> ExecutionContext:
        """Cria o run e executa o primeiro segmento no processo atual"""
        context = self.create_run(workflow_id, variables, correlation_key)
        if context.status != RunStatus.RUNNING:
            return context
        return await self.run_segment(context.run_id)

    async def run_segment(self, run_id: str) -> ExecutionContext:
        """
        Executa o segmento síncrono do run a partir do cursor persistido.

        Runs aguardando timer têm a retomada (re)agendada; o job id é
        determinístico, então reagendar não duplica.

        Raises:
            TransientNodeError: step falhou de forma recuperável
        """
        context = self.run_store.load(run_id)

        if context.status == RunStatus.WAITING_TIMER:
            await self._schedule_wake_up(context)
            return context

        if context.status != RunStatus.RUNNING:
            logger.info(f"Run {run_id} em status {context.status.value}, segmento ignorado")
            return context

        graph = self._load_graph(context)
        if graph is None:
            return context

        context = await iterate_steps(context, graph, self.deps, self.run_store, self.max_steps)
        await self._after_segment(context)
        return context

    async def resume(self, run_id: str, payload: Dict[str, Any]) -> ExecutionContext:
        """
        Retoma um run suspenso.

        Args:
            run_id: ID do run
            payload: {'kind': 'resume_run', 'node_id'} para timer ou
                {'kind': 'inbound_message', 'text'} para resposta de MENU

        Returns:
            Contexto após o segmento; inalterado se a retomada estiver obsoleta
        """
        kind = payload.get('kind')
        context = self.run_store.load(run_id)
        wait = context.wait or {}

        if kind == ResumeKind.TIMER:
            if context.status != RunStatus.WAITING_TIMER or wait.get('node_id') != payload.get('node_id'):
                logger.info(f"Retomada obsoleta do run {run_id} (status {context.status.value})")
                return context
        elif kind == ResumeKind.INPUT:
            if context.status != RunStatus.WAITING_INPUT:
                logger.info(f"Resposta ignorada: run {run_id} não aguarda input")
                return context
        else:
            raise ValueError(f"Unknown resume kind: {kind}")

        graph = self._load_graph(context)
        if graph is None:
            return context

        node = graph.get_node(context.cursor)
        if kind == ResumeKind.INPUT and node.type == NodeType.MENU:
            result = menu_reply_result(node, payload.get('text'))
        else:
            result = NodeResult(success=True, output={'resumed_by': kind})

        context = await resume_steps(context, graph, self.deps, self.run_store, self.max_steps, result)
        await self._after_segment(context)
        return context

    async def handle_inbound_message(
        self,
        tenant_id: str,
        correlation_key: str,
        text: str,
    ) -> Optional[ExecutionContext]:
        """
        Correlaciona uma mensagem recebida ao run que aguarda input.

        Returns:
            Contexto retomado, ou None se nenhum run aguarda esta conversa
        """
        context = self.run_store.find_waiting_run(tenant_id, correlation_key)
        if context is None:
            logger.debug(f"Nenhum run aguardando resposta de {correlation_key}")
            return None
        return await self.resume(context.run_id, {'kind': ResumeKind.INPUT, 'text': text})

    def cancel(self, run_id: str, reason: str = 'canceled') -> ExecutionContext:
        """
        Cancela um run.

        Runs aguardando são encerrados na hora. Runs em execução param na
        próxima fronteira de step (o step em andamento termina).
        """
        context = self.run_store.load(run_id)
        if context.status.is_terminal:
            return context

        self.run_store.request_cancel(run_id)

        if context.status.is_waiting:
            entry = LogEntry.terminal(context.cursor, TerminalOutcome.CANCELED, self.deps.clock(), reason=reason)
            context = self.run_store.append_log(run_id, entry, status=RunStatus.CANCELED)
            self._audit('log_run_canceled', context, reason=reason)
            return context

        logger.info(f"Cancelamento solicitado para o run {run_id} (em execução)")
        return self.run_store.load(run_id)

    def fail(self, run_id: str, reason: str, details: Optional[Dict[str, Any]] = None) -> ExecutionContext:
        """
        Encerra o run como failed depois que a infraestrutura esgotou as
        retentativas. O último status HTTP (se houver) vai para o log.
        """
        context = self.run_store.load(run_id)
        if context.status.is_terminal:
            logger.warning(f"Run {run_id} já está encerrado ({context.status.value})")
            return context

        details = dict(details or {})
        for key in ('reason', 'outcome', 'error_type'):
            details.pop(key, None)
        node_id = details.pop('node_id', None) or context.cursor

        entry = LogEntry.terminal(
            node_id, TerminalOutcome.FAILED, self.deps.clock(),
            reason=reason, error_type='retries_exhausted', **details,
        )
        context = self.run_store.append_log(run_id, entry, status=RunStatus.FAILED, error_message=reason)
        self._audit('log_run_failed', context, reason=reason)
        return context

    def _load_graph(self, context: ExecutionContext) -> Optional[WorkflowGraph]:
        definition = self.graph_store.load_workflow(context.workflow_id)
        try:
            return build_workflow_graph(definition)
        except NodeConfigError as e:
            finish_run(
                context, self.run_store, TerminalOutcome.FAILED, self.deps.clock,
                node_id=e.node_id, reason=e.reason, error_type='configuration',
            )
        except WorkflowGraphError as e:
            finish_run(
                context, self.run_store, TerminalOutcome.FAILED, self.deps.clock,
                node_id=context.cursor, reason=e.reason, error_type='graph',
            )
        return None

    async def _after_segment(self, context: ExecutionContext) -> None:
        if context.status == RunStatus.WAITING_TIMER:
            await self._schedule_wake_up(context)
        elif context.status == RunStatus.FAILED:
            self._audit('log_run_failed', context, reason=context.error_message)
        elif context.status == RunStatus.CANCELED:
            self._audit('log_run_canceled', context, reason='canceled')

    async def _schedule_wake_up(self, context: ExecutionContext) -> None:
        wait = context.wait or {}
        node_id = wait.get('node_id')
        resume_at = datetime.fromisoformat(wait['resume_at'])

        job = {
            'kind': ResumeKind.TIMER,
            'run_id': context.run_id,
            'node_id': node_id,
            'resume_at': wait['resume_at'],
        }
        job_id = f"run-{context.run_id}-wake-{node_id}-{context.step_count}"

        await self.requeue.enqueue(job, resume_at, job_id)
        logger.info(f"Run {context.run_id} retoma em {resume_at.isoformat()} (job {job_id})")

    def _audit(self, method: str, context: ExecutionContext, **kwargs) -> None:
        if self.audit is None:
            return
        getattr(self.audit, method)(
            run_id=context.run_id,
            tenant_id=context.tenant_id,
            workflow_id=context.workflow_id,
            **kwargs,
        )
