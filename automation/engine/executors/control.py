"""
Executors de controle de fluxo: START, CONDITION, DELAY.
"""

import logging
from datetime import timedelta

from automation.engine.executors.base import NodeResult, Suspension
from automation.engine.flow.branching import evaluate_condition

logger = logging.getLogger(__name__)


async def execute_start(node, context, deps) -> NodeResult:
    return NodeResult(success=True)


async def execute_condition(node, context, deps) -> NodeResult:
    """Avalia {field, operator, value} e produz branch key 'true' ou 'false'"""
    config = node.config
    matched = evaluate_condition(config, context.variables)

    logger.info(f"Condition {node.id}: {config.field} {config.raw_operator} {config.value!r} -> {matched}")

    return NodeResult(
        success=True,
        branch_key='true' if matched else 'false',
        output={
            'field': config.field,
            'operator': config.raw_operator,
            'value': config.value,
            'result': matched,
        },
    )


async def execute_delay(node, context, deps) -> NodeResult:
    """Calcula o horário absoluto de retomada e suspende (nunca dorme)"""
    resume_at = deps.clock() + timedelta(seconds=node.config.seconds)
    return NodeResult(
        success=True,
        suspend=Suspension(kind=Suspension.TIMER, resume_at=resume_at),
        output={'seconds': node.config.seconds, 'resume_at': resume_at.isoformat()},
    )
