"""
Erros do engine de automação.

Taxonomia:
- NodeConfigError: configuração inválida de node. Fatal, nunca é retentado.
- TransientNodeError: timeout, rate limit, resposta não-2xx. Retentado pela
  infraestrutura (Temporal) com backoff exponencial.
- PersistenceError: contexto não pôde ser salvo. O run é retomado a partir
  do último estado salvo.
"""
from typing import Any, Dict, Optional


class EngineError(Exception):
    """Base de todos os erros do engine"""


class WorkflowGraphError(EngineError):
    """Grafo estruturalmente inválido (sem START, edge órfã, etc)"""

    def __init__(self, workflow_id: str, reason: str):
        self.workflow_id = workflow_id
        self.reason = reason
        super().__init__(f"Workflow {workflow_id} has an invalid graph: {reason}")


class NodeConfigError(EngineError):
    """Config de node malformada ou campo obrigatório ausente"""

    def __init__(self, node_id: str, reason: str):
        self.node_id = node_id
        self.reason = reason
        super().__init__(f"Node {node_id}: {reason}")


class TransientNodeError(EngineError):
    """Falha recuperável de um executor (timeout, não-2xx, colaborador indisponível)"""

    def __init__(self, node_id: Optional[str], message: str, status_code: Optional[int] = None):
        self.node_id = node_id
        self.status_code = status_code
        super().__init__(message)

    def to_details(self) -> Dict[str, Any]:
        return {
            'node_id': self.node_id,
            'status_code': self.status_code,
            'reason': str(self),
        }


class CollaboratorError(EngineError):
    """Colaborador externo respondeu com erro definitivo"""

    def __init__(self, collaborator: str, message: str, status_code: Optional[int] = None):
        self.collaborator = collaborator
        self.status_code = status_code
        super().__init__(f"{collaborator}: {message}")


class WorkflowNotFoundError(EngineError):
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} not found")


class WorkflowInactiveError(EngineError):
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} is not active")


class RunNotFoundError(EngineError):
    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Run {run_id} not found")


class PersistenceError(EngineError):
    """Contexto do run não pôde ser persistido"""


class ConcurrentRunModificationError(PersistenceError):
    """Raised when the persisted run was changed by another worker"""

    def __init__(self, run_id: str, expected_version: int):
        self.run_id = run_id
        self.expected_version = expected_version
        super().__init__(f"Run {run_id} was modified concurrently (expected version {expected_version})")


class CadenceNotFoundError(EngineError):
    def __init__(self, cadence_id: str, tenant_id: str):
        self.cadence_id = cadence_id
        self.tenant_id = tenant_id
        super().__init__(f"Cadence {cadence_id} not found for tenant {tenant_id}")


class CadenceRequeueUnavailableError(EngineError):
    """Não há fila disponível para agendar o próximo step da cadência"""

    def __init__(self, cadence_id: str, next_step_index: int):
        self.cadence_id = cadence_id
        self.next_step_index = next_step_index
        super().__init__(
            f"Unable to schedule step {next_step_index} of cadence {cadence_id}: no delayed requeue available"
        )
