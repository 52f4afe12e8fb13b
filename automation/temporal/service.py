"""
Serviço de integração Temporal - Funções para uso na API Flask.

Este módulo fornece funções síncronas para:
- Criar um run e iniciar seu primeiro segmento
- Encaminhar mensagens recebidas para runs aguardando resposta de MENU
- Iniciar cadências de follow-up
"""
import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from temporalio.exceptions import WorkflowAlreadyStartedError

from automation.engine.context import RunStatus
from automation.engine.engine import ResumeKind
from automation.engine.errors import CadenceNotFoundError
from automation.engine.registry import utc_now
from automation.services.cadence_scheduler import CadenceStep, CadenceStepJob
from .client import connect
from .config import WorkflowNames, get_config
from .requeue import TemporalDelayedRequeue

logger = logging.getLogger(__name__)


def start_workflow_run(
    engine,
    workflow_id: str,
    variables: Optional[Dict[str, Any]] = None,
    correlation_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Cria o run e inicia seu primeiro segmento via Temporal.

    Args:
        engine: Engine (só create_run é usado aqui)
        workflow_id: ID do Workflow
        variables: payload do trigger
        correlation_key: conversa/contato do run

    Returns:
        {run_id, status, temporal_workflow_id}
    """
    context = engine.create_run(workflow_id, variables, correlation_key)

    if context.status != RunStatus.RUNNING:
        # Config inválida: o run já nasceu encerrado
        return {'run_id': context.run_id, 'status': context.status.value, 'temporal_workflow_id': None}

    config = get_config()
    temporal_workflow_id = f"run-{context.run_id}"

    async def _start():
        client = await connect()
        handle = await client.start_workflow(
            WorkflowNames.RUN_WORKFLOW,
            args=[context.run_id, None],
            id=temporal_workflow_id,
            task_queue=config.task_queue,
        )
        return handle.result_run_id

    temporal_run_id = _run_async(_start())
    logger.info(f"Run {context.run_id} iniciado no Temporal: {temporal_workflow_id}")

    return {
        'run_id': context.run_id,
        'status': context.status.value,
        'temporal_workflow_id': temporal_workflow_id,
        'temporal_run_id': temporal_run_id,
    }


def dispatch_inbound_message(
    run_store,
    tenant_id: str,
    correlation_key: str,
    text: str,
) -> Optional[Dict[str, Any]]:
    """
    Encaminha a resposta do usuário ao run que aguarda input.

    O id do workflow de retomada inclui o step_count do run, então a mesma
    resposta entregue duas vezes não retoma o run duas vezes.

    Returns:
        {run_id, temporal_workflow_id, dispatched} ou None se nenhum run aguarda
    """
    context = run_store.find_waiting_run(tenant_id, correlation_key)
    if context is None:
        logger.debug(f"Nenhum run aguardando resposta de {correlation_key}")
        return None

    config = get_config()
    temporal_workflow_id = f"run-{context.run_id}-input-{context.step_count}"
    payload = {'kind': ResumeKind.INPUT, 'text': text}

    async def _start():
        client = await connect()
        try:
            await client.start_workflow(
                WorkflowNames.RUN_WORKFLOW,
                args=[context.run_id, payload],
                id=temporal_workflow_id,
                task_queue=config.task_queue,
            )
        except WorkflowAlreadyStartedError:
            logger.info(f"Resposta já encaminhada para o run {context.run_id}")
            return False
        return True

    dispatched = _run_async(_start())
    return {
        'run_id': context.run_id,
        'temporal_workflow_id': temporal_workflow_id,
        'dispatched': dispatched,
    }


async def enqueue_cadence_start(
    requeue,
    directory,
    tenant_id: str,
    cadence_id: str,
    recipient_ids: List[str],
    clock=utc_now,
) -> Dict[str, Any]:
    """
    Agenda o step 0 da cadência após o atraso do primeiro step.

    Raises:
        CadenceNotFoundError: cadência inexistente para o tenant
    """
    cadence = directory.get_cadence(tenant_id, cadence_id)
    if cadence is None:
        raise CadenceNotFoundError(cadence_id, tenant_id)

    steps = cadence.get('steps') or []
    delay_minutes = CadenceStep.from_dict(steps[0]).delay_minutes if steps else 0.0

    job = CadenceStepJob(
        tenant_id=tenant_id,
        cadence_id=cadence_id,
        recipient_ids=[str(r) for r in recipient_ids],
        step_index=0,
    )
    not_before = clock() + timedelta(minutes=delay_minutes)
    result = await requeue.enqueue(job.to_dict(), not_before, job.job_id)

    logger.info(f"Cadence {cadence_id} started for {len(job.recipient_ids)} recipients")
    return {**result, 'not_before': not_before.isoformat()}


def start_cadence(tenant_id: str, cadence_id: str, recipient_ids: List[str]) -> Dict[str, Any]:
    """Inicia uma cadência de follow-up para uma lista de contatos"""
    from automation.services.cadence_scheduler import SqlAlchemyCadenceDirectory

    config = get_config()

    async def _start():
        client = await connect()
        requeue = TemporalDelayedRequeue(client, config.task_queue)
        return await enqueue_cadence_start(
            requeue, SqlAlchemyCadenceDirectory(), tenant_id, cadence_id, recipient_ids,
        )

    return _run_async(_start())


def _run_async(coro):
    """
    Executa coroutine em contexto síncrono.

    Usa asyncio.run, ou uma thread separada se já houver um loop rodando.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # Não tem event loop
        return asyncio.run(coro)

    # Estamos dentro de um loop (ex: pytest-asyncio)
    import concurrent.futures
    with concurrent.futures.ThreadPoolExecutor() as executor:
        future = executor.submit(asyncio.run, coro)
        return future.result(timeout=60)
