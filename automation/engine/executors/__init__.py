"""
Node Executors - uma função por NodeType.

O mapa é fechado: todo NodeType tem exatamente um executor.
"""
from automation.engine.flow.graph import NodeType

from .base import NodeResult, Suspension
from .control import execute_start, execute_condition, execute_delay
from .messaging import execute_content, execute_menu, menu_reply_result
from .integrations import execute_http, execute_tool_call, execute_assign_queue

NODE_EXECUTORS = {
    NodeType.START: execute_start,
    NodeType.CONTENT: execute_content,
    NodeType.CONDITION: execute_condition,
    NodeType.DELAY: execute_delay,
    NodeType.HTTP: execute_http,
    NodeType.TOOL_CALL: execute_tool_call,
    NodeType.ASSIGN_QUEUE: execute_assign_queue,
    NodeType.MENU: execute_menu,
}

__all__ = [
    'NODE_EXECUTORS',
    'NodeResult',
    'Suspension',
    'menu_reply_result',
]
