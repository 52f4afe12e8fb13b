"""
Fila de reentrada com atraso sobre o Temporal.

Cada job vira um workflow iniciado com start_delay. O job id é usado como
id do workflow: o Temporal rejeita um segundo start com o mesmo id, então
reagendar o mesmo job não duplica a execução.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from temporalio.exceptions import WorkflowAlreadyStartedError

from automation.engine.registry import utc_now
from .config import WorkflowNames

logger = logging.getLogger(__name__)

# kind do job -> workflow que o processa
JOB_WORKFLOWS = {
    'resume_run': WorkflowNames.RUN_WORKFLOW,
    'cadence_step': WorkflowNames.CADENCE_STEP_WORKFLOW,
}


class TemporalDelayedRequeue:
    """
    DelayedRequeue implementado com workflows agendados.

    Args:
        client: temporalio Client conectado
        task_queue: task queue do worker
        clock: relógio injetável (para calcular o start_delay)
    """

    def __init__(self, client, task_queue: str, clock: Callable[[], datetime] = utc_now):
        self.client = client
        self.task_queue = task_queue
        self.clock = clock

    def start_delay(self, not_before: datetime) -> Optional[timedelta]:
        delay = not_before - self.clock()
        if delay <= timedelta(0):
            return None
        return delay

    async def enqueue(self, job: Dict[str, Any], not_before: datetime, job_id: str) -> Dict[str, Any]:
        """
        Agenda o job para não antes de not_before.

        Returns:
            {'job_id', 'enqueued'}; enqueued False se o job já existia

        Raises:
            ValueError: kind desconhecido
        """
        kind = job.get('kind')
        workflow_name = JOB_WORKFLOWS.get(kind)
        if workflow_name is None:
            raise ValueError(f"Unknown job kind: {kind}")

        if kind == 'resume_run':
            args = [job['run_id'], job]
        else:
            args = [job]

        try:
            await self.client.start_workflow(
                workflow_name,
                args=args,
                id=job_id,
                task_queue=self.task_queue,
                start_delay=self.start_delay(not_before),
            )
        except WorkflowAlreadyStartedError:
            logger.info(f"Job {job_id} já agendado, ignorando")
            return {'job_id': job_id, 'enqueued': False}

        logger.info(f"Job {job_id} agendado para {not_before.isoformat()} ({workflow_name})")
        return {'job_id': job_id, 'enqueued': True}
