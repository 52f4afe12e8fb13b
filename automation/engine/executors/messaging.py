"""
Executors de mensageria: CONTENT (envio de mensagem) e MENU (opções + espera).

Falha de envio não é erro do run: o step registra success=False e o run
segue. Timeouts propagam como TransientNodeError para retentativa.
"""

import logging
from typing import Optional

from automation.engine.errors import CollaboratorError, NodeConfigError
from automation.engine.executors.base import (
    NodeResult,
    Suspension,
    idempotency_key,
    resolve_recipient,
    with_timeout,
)
from automation.engine.variable_resolver import VariableResolver

logger = logging.getLogger(__name__)


async def _send(node, context, deps, channel: str, body: str) -> dict:
    """Envia body no canal e devolve o output do step"""
    sender = deps.senders.get(channel)
    if sender is None:
        raise NodeConfigError(node.id, f"no message sender registered for channel '{channel}'")

    resolver = VariableResolver(context.variables)
    recipient = resolve_recipient(node.config, context, channel, resolver)
    output = {'channel': channel, 'message': body}

    if recipient is None:
        logger.warning(f"Node {node.id}: no recipient for channel {channel}, message not sent")
        output['error'] = 'no recipient resolved'
        output['sent'] = False
        return output

    output['recipient'] = recipient.address

    try:
        receipt = await with_timeout(
            sender.send(recipient, body, idempotency_key=idempotency_key(context, node.id)),
            deps.settings.send_timeout,
            node.id,
            f"message send ({channel})",
        )
    except CollaboratorError as e:
        logger.warning(f"Node {node.id}: message send failed: {e}")
        output['error'] = str(e)
        output['sent'] = False
        return output

    output['message_id'] = (receipt or {}).get('message_id')
    output['sent'] = True
    return output


def _channel(node, deps) -> str:
    return (node.config.channel or deps.settings.default_channel).lower()


async def execute_content(node, context, deps) -> NodeResult:
    """Renderiza o template e delega o envio ao sender do canal"""
    resolver = VariableResolver(context.variables)
    body = resolver.render(node.config.message)
    output = await _send(node, context, deps, _channel(node, deps), body)

    unresolved = resolver.validate(node.config.message)
    if unresolved:
        logger.debug(f"Node {node.id}: variáveis sem valor no template: {unresolved}")
        output['unresolved'] = unresolved
    return NodeResult(success=output['sent'], output=output)


async def execute_menu(node, context, deps) -> NodeResult:
    """Apresenta as opções e suspende aguardando a resposta correlacionada"""
    config = node.config
    prompt = VariableResolver(context.variables).render(config.prompt)
    output = await _send(node, context, deps, _channel(node, deps), config.render_prompt(prompt))
    output['options'] = [option.key for option in config.options]

    return NodeResult(
        success=output['sent'],
        suspend=Suspension(kind=Suspension.INPUT),
        output=output,
    )


def menu_reply_result(node, reply: Optional[str]) -> NodeResult:
    """
    Converte a resposta do usuário no resultado de retomada do MENU.

    A opção casada vira o branch key; sem casamento, a resposta crua é
    usada e o Edge Resolver encerra o run se nenhuma edge tiver esse label.
    """
    config = node.config
    text = (reply or '').strip()
    matched = config.match_reply(text)

    return NodeResult(
        success=matched is not None,
        context_patch={config.response_key: text},
        branch_key=matched if matched is not None else text,
        output={'reply': text, 'matched_option': matched},
    )
