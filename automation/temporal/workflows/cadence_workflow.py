"""
Cadence Step Workflow - processa um step de cadência de follow-up.

Iniciado com start_delay pela fila de reentrada; o id do workflow é o job
id determinístico do step, então o mesmo avanço não é iniciado duas vezes.
"""

from datetime import timedelta
from typing import Dict, Any
from temporalio import workflow

with workflow.unsafe.imports_passed_through():
    from automation.temporal.activities.cadence import CadenceActivities
    from automation.temporal.config import build_retry_policy, get_config


@workflow.defn
class CadenceStepWorkflow:

    @workflow.run
    async def run(self, job: Dict[str, Any]) -> Dict[str, Any]:
        config = get_config()
        retry_policy = build_retry_policy(config, config.cadence_initial_retry_interval_seconds)

        workflow.logger.info(
            f"Starting CadenceStepWorkflow for cadence {job.get('cadence_id')} step {job.get('step_index')}"
        )

        return await workflow.execute_activity_method(
            CadenceActivities.process_cadence_step,
            job,
            start_to_close_timeout=timedelta(seconds=config.cadence_step_timeout_seconds),
            retry_policy=retry_policy,
        )
