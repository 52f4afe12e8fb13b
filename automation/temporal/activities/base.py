"""
Activities base - conversão de erros do engine para o Temporal.

TransientNodeError vira ApplicationError retentável com {node_id,
status_code}; erros definitivos viram ApplicationError non_retryable.
"""
from typing import Any, Dict

from temporalio.exceptions import ApplicationError

from automation.engine.context import ExecutionContext
from automation.engine.errors import (
    CadenceNotFoundError,
    CadenceRequeueUnavailableError,
    EngineError,
    RunNotFoundError,
    TransientNodeError,
    WorkflowInactiveError,
    WorkflowNotFoundError,
)

NON_RETRYABLE_ENGINE_ERRORS = (
    RunNotFoundError,
    WorkflowNotFoundError,
    WorkflowInactiveError,
    CadenceNotFoundError,
    CadenceRequeueUnavailableError,
)


def as_application_error(error: EngineError) -> ApplicationError:
    """Converte um erro do engine preservando tipo e detalhes"""
    if isinstance(error, TransientNodeError):
        return ApplicationError(
            str(error),
            error.to_details(),
            type='TransientNodeError',
        )

    return ApplicationError(
        str(error),
        {'reason': str(error)},
        type=type(error).__name__,
        non_retryable=isinstance(error, NON_RETRYABLE_ENGINE_ERRORS),
    )


def summarize_context(context: ExecutionContext) -> Dict[str, Any]:
    """Resumo serializável do run devolvido pelas activities"""
    return {
        'run_id': context.run_id,
        'status': context.status.value,
        'cursor': context.cursor,
        'step_count': context.step_count,
        'outcome': context.outcome,
        'wait': context.wait,
    }
