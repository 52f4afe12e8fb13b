"""
Persistência do Execution Context.

save() grava cursor, variáveis, status e log na mesma transação, com
checagem de versão (optimistic locking). Se outro worker gravou o run
antes, a gravação falha com ConcurrentRunModificationError e o run é
retomado a partir do último estado salvo.
"""

import logging
from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError

from automation.database import db
from automation.engine.context import ExecutionContext, LogEntry, RunStatus
from automation.engine.errors import (
    ConcurrentRunModificationError,
    PersistenceError,
    RunNotFoundError,
)

logger = logging.getLogger(__name__)


class RunStore(Protocol):
    def create(self, context: ExecutionContext) -> ExecutionContext:
        ...

    def load(self, run_id: str) -> ExecutionContext:
        ...

    def save(self, context: ExecutionContext) -> ExecutionContext:
        ...

    def append_log(
        self,
        run_id: str,
        entry: LogEntry,
        status: Optional[RunStatus] = None,
        error_message: Optional[str] = None,
    ) -> ExecutionContext:
        ...

    def is_cancel_requested(self, run_id: str) -> bool:
        ...

    def request_cancel(self, run_id: str) -> None:
        ...

    def find_waiting_run(self, tenant_id: str, correlation_key: str) -> Optional[ExecutionContext]:
        ...


def _context_from_row(run) -> ExecutionContext:
    return ExecutionContext.from_dict({
        'run_id': run.id,
        'workflow_id': run.workflow_id,
        'tenant_id': run.tenant_id,
        'status': run.status,
        'cursor': run.cursor,
        'variables': run.variables or {},
        'log': run.execution_logs or [],
        'step_count': run.step_count or 0,
        'wait': run.wait,
        'correlation_key': run.correlation_key,
        'error_message': run.error_message,
        'version': run.version,
    })


class SqlAlchemyRunStore:
    """RunStore sobre o model WorkflowRun"""

    def create(self, context: ExecutionContext) -> ExecutionContext:
        from automation.models import WorkflowRun

        now = datetime.utcnow()
        run = WorkflowRun(
            id=context.run_id,
            workflow_id=context.workflow_id,
            tenant_id=context.tenant_id,
            status=context.status.value,
            cursor=context.cursor,
            variables=context.variables,
            execution_logs=[entry.to_dict() for entry in context.log],
            step_count=context.step_count,
            wait=context.wait,
            correlation_key=context.correlation_key,
            error_message=context.error_message,
            started_at=now,
            updated_at=now,
            completed_at=now if context.status.is_terminal else None,
            version=context.version,
        )
        db.session.add(run)

        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError(f"Failed to create run {context.run_id}: {e}") from e

        logger.info(f"Run {context.run_id} criado para workflow {context.workflow_id}")
        return context

    def load(self, run_id: str) -> ExecutionContext:
        from automation.models import WorkflowRun

        run = WorkflowRun.query.filter_by(id=run_id).first()
        if not run:
            raise RunNotFoundError(run_id)
        return _context_from_row(run)

    def save(self, context: ExecutionContext) -> ExecutionContext:
        """
        Grava o contexto inteiro de forma atômica.

        Raises:
            ConcurrentRunModificationError: versão persistida diferente da carregada
            PersistenceError: falha do banco
        """
        values = {
            'status': context.status.value,
            'cursor': context.cursor,
            'variables': context.variables,
            'execution_logs': [entry.to_dict() for entry in context.log],
            'step_count': context.step_count,
            'wait': context.wait,
            'error_message': context.error_message,
        }
        if context.status.is_terminal:
            values['completed_at'] = datetime.utcnow()

        self._update(context.run_id, context.version, values)
        context.version += 1
        return context

    def append_log(
        self,
        run_id: str,
        entry: LogEntry,
        status: Optional[RunStatus] = None,
        error_message: Optional[str] = None,
    ) -> ExecutionContext:
        """
        Acrescenta uma entrada ao log (e opcionalmente muda o status) na
        mesma transação. Usado para encerrar runs fora do Run Driver.
        """
        context = self.load(run_id)
        context.append_log(entry)

        values = {'execution_logs': [e.to_dict() for e in context.log]}
        if status is not None:
            context.status = status
            values['status'] = status.value
            if status.is_terminal:
                context.wait = None
                values['wait'] = None
                values['completed_at'] = datetime.utcnow()
        if error_message is not None:
            context.error_message = error_message
            values['error_message'] = error_message

        self._update(run_id, context.version, values)
        context.version += 1
        return context

    def is_cancel_requested(self, run_id: str) -> bool:
        from automation.models import WorkflowRun

        flag = db.session.query(WorkflowRun.cancel_requested).filter(WorkflowRun.id == run_id).scalar()
        return bool(flag)

    def request_cancel(self, run_id: str) -> None:
        from automation.models import WorkflowRun

        try:
            updated = WorkflowRun.query.filter_by(id=run_id).update(
                {'cancel_requested': True},
                synchronize_session=False,
            )
            if updated == 0:
                db.session.rollback()
                raise RunNotFoundError(run_id)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError(f"Failed to request cancel for run {run_id}: {e}") from e

    def find_waiting_run(self, tenant_id: str, correlation_key: str) -> Optional[ExecutionContext]:
        from automation.models import WorkflowRun

        run = (
            WorkflowRun.query
            .filter_by(
                tenant_id=tenant_id,
                correlation_key=correlation_key,
                status=RunStatus.WAITING_INPUT.value,
            )
            .order_by(WorkflowRun.started_at.desc())
            .first()
        )
        return _context_from_row(run) if run else None

    def _update(self, run_id: str, expected_version: int, values: dict) -> None:
        from automation.models import WorkflowRun

        values = dict(values)
        values['version'] = expected_version + 1
        values['updated_at'] = datetime.utcnow()

        try:
            updated = WorkflowRun.query.filter_by(id=run_id, version=expected_version).update(
                values,
                synchronize_session=False,
            )
            if updated == 0:
                db.session.rollback()
                raise ConcurrentRunModificationError(run_id, expected_version)
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceError(f"Failed to save run {run_id}: {e}") from e

        # Objetos em cache na sessão ficaram defasados pelo UPDATE direto
        db.session.expire_all()
