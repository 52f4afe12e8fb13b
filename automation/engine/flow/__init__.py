from .graph import (
    NodeType,
    Node,
    Edge,
    WorkflowDefinition,
    WorkflowGraph,
    compile_graph,
    parse_node_config,
)
from .branching import ConditionOperator, EdgeResolution, evaluate_condition, resolve_next_node
from .context import GraphStore, SqlAlchemyGraphStore, build_workflow_graph
from .normalization import normalize_graph_json

__all__ = [
    'NodeType',
    'Node',
    'Edge',
    'WorkflowDefinition',
    'WorkflowGraph',
    'compile_graph',
    'parse_node_config',
    'ConditionOperator',
    'EdgeResolution',
    'evaluate_condition',
    'resolve_next_node',
    'GraphStore',
    'SqlAlchemyGraphStore',
    'build_workflow_graph',
    'normalize_graph_json',
]
