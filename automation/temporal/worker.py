"""
Worker Temporal - Executa os segmentos de runs e os steps de cadência.

Para executar:
    python -m automation.temporal.worker

Ou via módulo:
    from automation.temporal.worker import run_worker
    asyncio.run(run_worker())
"""
import asyncio
import logging
import sys

import httpx
from temporalio.worker import Worker
from temporalio.worker.workflow_sandbox import SandboxedWorkflowRunner, SandboxRestrictions

from .client import get_temporal_client
from .config import get_config
from .requeue import TemporalDelayedRequeue
from .workflows import ALL_WORKFLOWS
from .activities import RunActivities, CadenceActivities

# Configurar logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# O pacote importa Flask/SQLAlchemy e lê .env no import; fica fora do sandbox
WORKFLOW_RUNNER = SandboxedWorkflowRunner(
    restrictions=SandboxRestrictions.default.with_passthrough_modules('automation', 'httpx', 'dotenv')
)


def build_activities(app, client, http_client: httpx.AsyncClient, task_queue: str):
    """
    Monta Engine e CadenceScheduler com os colaboradores concretos e
    devolve os métodos de activity a registrar.
    """
    from automation.engine import Engine, SqlAlchemyGraphStore, SqlAlchemyRunStore, build_engine_deps
    from automation.services import AuditService, CadenceScheduler, SqlAlchemyCadenceDirectory

    deps = build_engine_deps(app.config, http_client)
    requeue = TemporalDelayedRequeue(client, task_queue, clock=deps.clock)

    engine = Engine(
        SqlAlchemyGraphStore(),
        SqlAlchemyRunStore(),
        deps,
        requeue,
        audit=AuditService,
    )
    scheduler = CadenceScheduler(
        SqlAlchemyCadenceDirectory(),
        deps.senders,
        AuditService,
        requeue=requeue,
        clock=deps.clock,
        default_channel=deps.settings.default_channel,
        send_timeout=deps.settings.send_timeout,
    )

    run_activities = RunActivities(app, engine)
    cadence_activities = CadenceActivities(app, scheduler)

    return [
        run_activities.run_segment,
        run_activities.resume_run,
        run_activities.fail_run,
        cadence_activities.process_cadence_step,
    ]


async def run_worker(app=None):
    """
    Inicia o worker Temporal.

    Args:
        app: Flask app (opcional, para contexto)
    """
    config = get_config()

    logger.info(f"Task Queue: {config.task_queue}")

    client = await get_temporal_client()

    if app is None:
        from automation import create_app
        app = create_app()

    async with httpx.AsyncClient(timeout=30.0) as http_client:
        activities = build_activities(app, client, http_client, config.task_queue)

        async with Worker(
            client,
            task_queue=config.task_queue,
            workflows=ALL_WORKFLOWS,
            activities=activities,
            workflow_runner=WORKFLOW_RUNNER,
        ):
            logger.info(f"Worker iniciado na task queue: {config.task_queue}")
            logger.info(f"Workflows registrados: {', '.join(w.__name__ for w in ALL_WORKFLOWS)}")
            logger.info(f"Activities registradas: {len(activities)}")

            # Manter worker rodando
            await asyncio.Future()


def main():
    """Entry point para execução via CLI"""
    from dotenv import load_dotenv
    load_dotenv()

    from automation import create_app
    app = create_app()

    try:
        asyncio.run(run_worker(app))
    except KeyboardInterrupt:
        logger.info("Worker interrompido pelo usuário")
    except Exception as e:
        logger.exception(f"Erro no worker: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
