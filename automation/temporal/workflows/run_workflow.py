"""
Run Workflow - Temporal workflow que executa um segmento de run.

Cada segmento (do início ou de uma retomada até a próxima suspensão ou
término) é uma execução independente deste workflow. Falhas recuperáveis
são retentadas pela retry policy; esgotadas as tentativas, o run é
marcado como failed com o último erro (e status HTTP) no log.
"""

from datetime import timedelta
from typing import Dict, Any, Optional
from temporalio import workflow
from temporalio.exceptions import ActivityError, ApplicationError

with workflow.unsafe.imports_passed_through():
    from automation.temporal.activities.run import RunActivities
    from automation.temporal.config import build_retry_policy, get_config


def failure_details(error: BaseException) -> Dict[str, Any]:
    """
    Extrai {reason, node_id, status_code} da falha de uma activity.

    Args:
        error: ActivityError (ou a causa já desembrulhada)
    """
    cause = error
    if isinstance(error, ActivityError) and error.cause is not None:
        cause = error.cause

    details: Dict[str, Any] = {}
    if isinstance(cause, ApplicationError):
        if cause.details and isinstance(cause.details[0], dict):
            details.update(cause.details[0])
        details['last_error_type'] = cause.type
        details['reason'] = details.get('reason') or cause.message
    else:
        details['reason'] = str(cause)

    return details


@workflow.defn
class RunWorkflow:
    """
    Temporal workflow de um segmento de run.

    Handles:
    - Segmento inicial (resume_payload None)
    - Retomada por timer ou resposta do usuário
    - Retries com backoff exponencial
    - Falha terminal registrada no run
    """

    @workflow.run
    async def run(self, run_id: str, resume_payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Args:
            run_id: ID do WorkflowRun
            resume_payload: Payload de retomada (opcional)

        Returns:
            Resumo do run após o segmento
        """
        config = get_config()
        retry_policy = build_retry_policy(config)
        timeout = timedelta(seconds=config.segment_timeout_seconds)

        workflow.logger.info(f"Starting RunWorkflow for run: {run_id}")

        try:
            if resume_payload:
                return await workflow.execute_activity_method(
                    RunActivities.resume_run,
                    args=[run_id, resume_payload],
                    start_to_close_timeout=timeout,
                    retry_policy=retry_policy,
                )

            return await workflow.execute_activity_method(
                RunActivities.run_segment,
                run_id,
                start_to_close_timeout=timeout,
                retry_policy=retry_policy,
            )

        except ActivityError as e:
            details = failure_details(e)
            workflow.logger.error(f"RunWorkflow failed for run {run_id}: {details.get('reason')}")

            await workflow.execute_activity_method(
                RunActivities.fail_run,
                args=[run_id, details],
                start_to_close_timeout=timedelta(seconds=30),
                retry_policy=retry_policy,
            )

            return {
                'run_id': run_id,
                'status': 'failed',
                'error': details.get('reason'),
                'status_code': details.get('status_code'),
            }
