from .workflow import Workflow
from .run import WorkflowRun
from .cadence import FollowUpCadence, Contact, Integration
from .audit_event import AuditEvent, AuditAction

__all__ = [
    'Workflow',
    'WorkflowRun',
    'FollowUpCadence',
    'Contact',
    'Integration',
    'AuditEvent',
    'AuditAction',
]
