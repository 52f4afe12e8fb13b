"""
Normalização de nodes JSONB (React Flow) para formato do engine.

Converte a estrutura visual do workflow (nodes/edges arrays) para o formato
esperado pelo engine de execução, mantendo agnóstico em relação à fonte dos dados.
"""
from typing import List, Dict, Any, Optional, Tuple


def normalize_graph_json(
    nodes_jsonb: List[Dict[str, Any]],
    edges_jsonb: List[Dict[str, Any]]
) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """
    Converte nodes e edges do formato React Flow para formato do engine.

    Input (React Flow format):
    {
        'id': 'node-abc123',
        'type': 'workflow',  # Tipo do componente React Flow
        'position': {'x': 100, 'y': 200},
        'data': {
            'type': 'CONDITION',    # Tipo do node
            'config': {...},        # Configuração do node
            'label': 'Idade > 18'
        }
    }

    Output (Engine format):
    {
        'id': 'node-abc123',
        'type': 'CONDITION',
        'config': {...},
        'label': 'Idade > 18'
    }

    Nodes que já estão no formato do engine (sem 'data') passam direto.

    Args:
        nodes_jsonb: Array de nodes do React Flow
        edges_jsonb: Array de edges do React Flow

    Returns:
        Tupla (nodes, edges) normalizados
    """
    nodes = [_normalize_node(vnode) for vnode in nodes_jsonb or []]
    edges = [
        edge for edge in (_normalize_edge(e) for e in edges_jsonb or [])
        if edge is not None
    ]
    return nodes, edges


def _normalize_node(vnode: Dict[str, Any]) -> Dict[str, Any]:
    data = vnode.get('data')
    if isinstance(data, dict):
        return {
            'id': str(vnode.get('id')),
            'type': data.get('type') or data.get('nodeType') or vnode.get('type'),
            'config': data.get('config') or {},
            'label': data.get('label'),
        }

    return {
        'id': str(vnode.get('id')),
        'type': vnode.get('type') or vnode.get('node_type'),
        'config': vnode.get('config') or {},
        'label': vnode.get('label'),
    }


def _normalize_edge(edge: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    source = edge.get('source')
    target = edge.get('target')
    if not source or not target:
        return None

    # Branch vem do label ou do handle de saída (ex: 'true'/'false', id da opção)
    label = edge.get('label')
    if label in (None, ''):
        label = edge.get('sourceHandle')
    if label in (None, ''):
        data = edge.get('data') or {}
        label = data.get('label') or data.get('condition')

    return {
        'source': str(source),
        'target': str(target),
        'label': label,
    }
