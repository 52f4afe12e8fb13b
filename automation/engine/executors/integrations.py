"""
Executors de integração: HTTP, TOOL_CALL, ASSIGN_QUEUE.
"""

import logging

import httpx

from automation.engine.errors import CollaboratorError, NodeConfigError, TransientNodeError
from automation.engine.executors.base import NodeResult, idempotency_key, with_timeout
from automation.engine.variable_resolver import VariableResolver

logger = logging.getLogger(__name__)


async def execute_http(node, context, deps) -> NodeResult:
    """
    Faz uma chamada HTTP com método, URL, headers e body da config.

    Resposta 2xx é mesclada nas variáveis sob response_key. Não-2xx,
    timeout e erro de transporte são falhas recuperáveis. Métodos que
    alteram estado levam o header Idempotency-Key do step.

    Raises:
        TransientNodeError: resposta não-2xx (com status_code), timeout, rede
        NodeConfigError: URL vazia ou inválida
    """
    config = node.config
    resolver = VariableResolver(context.variables)

    url = resolver.render(config.url).strip()
    if not url:
        raise NodeConfigError(node.id, 'url resolved to an empty value')

    headers = {str(k): resolver.render(v) for k, v in config.headers.items()}
    # Retentativa do mesmo step reaproveita a chave; a config pode sobrescrever
    if config.method not in ('GET', 'HEAD') and not any(k.lower() == 'idempotency-key' for k in headers):
        headers['Idempotency-Key'] = idempotency_key(context, node.id)
    body = resolver.resolve(config.body)

    kwargs = {}
    if body is not None and config.method not in ('GET', 'HEAD'):
        if isinstance(body, (dict, list)):
            kwargs['json'] = body
        else:
            kwargs['content'] = str(body)

    timeout = config.timeout or deps.settings.http_timeout

    try:
        response = await deps.http.request(config.method, url, headers=headers, timeout=timeout, **kwargs)
    except httpx.InvalidURL as e:
        raise NodeConfigError(node.id, f"invalid url '{url}': {e}")
    except httpx.UnsupportedProtocol as e:
        raise NodeConfigError(node.id, f"unsupported url '{url}': {e}")
    except httpx.TimeoutException as e:
        raise TransientNodeError(node.id, f"HTTP {config.method} {url} timed out after {timeout}s") from e
    except httpx.TransportError as e:
        raise TransientNodeError(node.id, f"HTTP {config.method} {url} failed: {e}") from e

    if not response.is_success:
        logger.warning(f"Node {node.id}: HTTP {config.method} {url} returned {response.status_code}")
        raise TransientNodeError(
            node.id,
            f"HTTP {config.method} {url} returned {response.status_code}",
            status_code=response.status_code,
        )

    try:
        data = response.json()
    except ValueError:
        data = response.text

    return NodeResult(
        success=True,
        context_patch={config.response_key: data},
        output={'method': config.method, 'url': url, 'status_code': response.status_code},
    )


async def execute_tool_call(node, context, deps) -> NodeResult:
    """Delega ao executor de ferramentas e mescla o resultado sob result_key"""
    config = node.config
    params = VariableResolver(context.variables).resolve(config.parameters)

    try:
        result = await with_timeout(
            deps.tools.execute(config.tool_name, params),
            deps.settings.tool_timeout,
            node.id,
            f"tool '{config.tool_name}'",
        )
    except CollaboratorError as e:
        logger.warning(f"Node {node.id}: tool {config.tool_name} failed: {e}")
        return NodeResult(success=False, output={'tool_name': config.tool_name, 'error': str(e)})

    return NodeResult(
        success=True,
        context_patch={config.result_key: result},
        output={'tool_name': config.tool_name},
    )


async def execute_assign_queue(node, context, deps) -> NodeResult:
    """
    Atribui a conversa a uma fila.

    Sempre conclui com sucesso localmente; falha do colaborador fica
    registrada no output do step.
    """
    config = node.config
    target = VariableResolver(context.variables).resolve(config.target)
    conversation_id = context.correlation_key or context.run_id
    output = {'conversation_id': conversation_id, 'target': target}

    try:
        ack = await with_timeout(
            deps.assigner.assign(conversation_id, target),
            deps.settings.assign_timeout,
            node.id,
            'queue assignment',
        )
        output['ack'] = ack
    except (CollaboratorError, TransientNodeError) as e:
        logger.warning(f"Node {node.id}: queue assignment failed: {e}")
        output['error'] = str(e)

    return NodeResult(
        success=True,
        context_patch={'assignedQueueId': target.get('queue_id')},
        output=output,
    )
