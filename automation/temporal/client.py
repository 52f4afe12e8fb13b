"""
Conexão com o Temporal Server.

- connect(): nova conexão, para chamadas síncronas da API (cada uma roda no
  seu próprio event loop)
- get_temporal_client(): conexão única do processo worker
"""
import logging
from typing import Optional

from temporalio.client import Client

from .config import TemporalConfig, get_config

logger = logging.getLogger(__name__)

# Cliente do worker (preso ao event loop do worker)
_client: Optional[Client] = None


async def connect(config: Optional[TemporalConfig] = None) -> Client:
    """Abre uma conexão com o namespace configurado"""
    config = config or get_config()
    logger.info(f"Conectando ao Temporal Server: {config.address} (namespace {config.namespace})")
    return await Client.connect(config.address, namespace=config.namespace)


async def get_temporal_client() -> Client:
    """Retorna o cliente do processo, conectando na primeira chamada"""
    global _client

    if _client is None:
        _client = await connect()
        logger.info("Conexão estabelecida com sucesso!")

    return _client
