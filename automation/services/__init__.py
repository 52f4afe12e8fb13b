from .audit_service import AuditService
from .cadence_scheduler import (
    CadenceScheduler,
    CadenceStepJob,
    CadenceState,
    CadenceTickResult,
    SqlAlchemyCadenceDirectory,
)

__all__ = [
    'AuditService',
    'CadenceScheduler',
    'CadenceStepJob',
    'CadenceState',
    'CadenceTickResult',
    'SqlAlchemyCadenceDirectory',
]
