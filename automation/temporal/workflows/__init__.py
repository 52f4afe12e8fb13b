from .run_workflow import RunWorkflow
from .cadence_workflow import CadenceStepWorkflow

ALL_WORKFLOWS = [RunWorkflow, CadenceStepWorkflow]

__all__ = [
    'RunWorkflow',
    'CadenceStepWorkflow',
    'ALL_WORKFLOWS',
]
