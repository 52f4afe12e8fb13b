"""
Activities de cadência de follow-up.
"""
import logging
from typing import Any, Dict

from temporalio import activity

from automation.engine.errors import EngineError
from automation.services.cadence_scheduler import CadenceStepJob
from .base import as_application_error

logger = logging.getLogger(__name__)


class CadenceActivities:
    def __init__(self, app, scheduler):
        self.app = app
        self.scheduler = scheduler

    @activity.defn(name='process_cadence_step')
    async def process_cadence_step(self, job: Dict[str, Any]) -> Dict[str, Any]:
        """
        Processa um step de cadência para todos os destinatários.

        Args:
            job: {tenant_id, cadence_id, recipient_ids, step_index}

        Returns:
            CadenceTickResult serializado
        """
        step_job = CadenceStepJob.from_dict(job)

        with self.app.app_context():
            try:
                result = await self.scheduler.process_step(step_job)
            except EngineError as e:
                logger.error(f"Failed to process follow-up cadence {step_job.cadence_id}: {e}")
                raise as_application_error(e) from e

        return result.to_dict()
