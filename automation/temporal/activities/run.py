"""
Activities de runs - executam segmentos do engine dentro do contexto Flask.
"""
import logging
from typing import Any, Dict, Optional

from temporalio import activity

from automation.engine.errors import EngineError
from .base import as_application_error, summarize_context

logger = logging.getLogger(__name__)


class RunActivities:
    """
    Activities que delegam ao Engine montado no start do worker.

    Args:
        app: Flask app (para o contexto do banco)
        engine: Engine com as dependências injetadas
    """

    def __init__(self, app, engine):
        self.app = app
        self.engine = engine

    @activity.defn(name='run_segment')
    async def run_segment(self, run_id: str) -> Dict[str, Any]:
        """Executa o segmento síncrono do run a partir do cursor persistido"""
        with self.app.app_context():
            try:
                context = await self.engine.run_segment(run_id)
            except EngineError as e:
                logger.warning(f"Segmento do run {run_id} falhou: {e}")
                raise as_application_error(e) from e

        logger.info(f"Segmento do run {run_id} terminou em {context.status.value}")
        return summarize_context(context)

    @activity.defn(name='resume_run')
    async def resume_run(self, run_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Retoma o run por timer ou resposta do usuário"""
        with self.app.app_context():
            try:
                context = await self.engine.resume(run_id, payload)
            except EngineError as e:
                logger.warning(f"Retomada do run {run_id} falhou: {e}")
                raise as_application_error(e) from e

        return summarize_context(context)

    @activity.defn(name='fail_run')
    async def fail_run(self, run_id: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Marca o run como failed depois de esgotadas as retentativas"""
        details = details or {}
        reason = details.get('reason') or 'retries exhausted'

        with self.app.app_context():
            context = self.engine.fail(run_id, reason, details)

        logger.error(f"Run {run_id} marcado como failed: {reason}")
        return summarize_context(context)
