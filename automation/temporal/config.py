"""
Configurações do Temporal.
"""
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from temporalio.common import RetryPolicy


@dataclass
class TemporalConfig:
    """Configurações do Temporal Server"""
    
    # Endereço do Temporal Server (gRPC)
    address: str = os.getenv('TEMPORAL_ADDRESS', 'localhost:7233')
    
    # Namespace (default para desenvolvimento)
    namespace: str = os.getenv('TEMPORAL_NAMESPACE', 'default')
    
    # Task Queue dos runs e cadências
    task_queue: str = os.getenv('TEMPORAL_TASK_QUEUE', 'automation-runs')
    
    # Timeout de um segmento síncrono do run (em segundos)
    segment_timeout_seconds: int = int(os.getenv('TEMPORAL_SEGMENT_TIMEOUT', '600'))  # 10 min
    cadence_step_timeout_seconds: int = int(os.getenv('TEMPORAL_CADENCE_STEP_TIMEOUT', '300'))  # 5 min
    
    # Retry policy defaults
    max_activity_retries: int = int(os.getenv('TEMPORAL_MAX_RETRIES', '3'))
    initial_retry_interval_seconds: int = 1
    max_retry_interval_seconds: int = 60
    retry_backoff_coefficient: float = 2.0
    
    # Cadências: 3 tentativas, backoff exponencial a partir de 2s
    cadence_initial_retry_interval_seconds: int = 2
    
    @classmethod
    def from_env(cls) -> 'TemporalConfig':
        """Cria config a partir de variáveis de ambiente"""
        return cls()


# Erros que nunca devem ser retentados
NON_RETRYABLE_ERROR_TYPES = [
    'NodeConfigError',
    'WorkflowGraphError',
    'WorkflowNotFoundError',
    'WorkflowInactiveError',
    'RunNotFoundError',
    'CadenceNotFoundError',
    'CadenceRequeueUnavailableError',
    'ValueError',
]


def build_retry_policy(config: 'TemporalConfig', initial_interval_seconds: Optional[int] = None) -> RetryPolicy:
    """Retry policy com backoff exponencial limitado"""
    return RetryPolicy(
        initial_interval=timedelta(seconds=initial_interval_seconds or config.initial_retry_interval_seconds),
        maximum_interval=timedelta(seconds=config.max_retry_interval_seconds),
        backoff_coefficient=config.retry_backoff_coefficient,
        maximum_attempts=config.max_activity_retries,
        non_retryable_error_types=NON_RETRYABLE_ERROR_TYPES,
    )


# Constantes para nomes de workflows
class WorkflowNames:
    """Nomes dos workflows"""
    RUN_WORKFLOW = 'RunWorkflow'
    CADENCE_STEP_WORKFLOW = 'CadenceStepWorkflow'


# Singleton da config
_config: Optional[TemporalConfig] = None


def get_config() -> TemporalConfig:
    """Retorna singleton da configuração"""
    global _config
    if _config is None:
        _config = TemporalConfig.from_env()
    return _config
