"""
Graph Store - carrega workflows persistidos para o engine.

O grafo é somente-leitura durante a execução: nenhuma operação do engine
altera nodes ou edges.
"""

from typing import Protocol
import logging

from automation.engine.errors import WorkflowNotFoundError
from automation.engine.flow.graph import WorkflowDefinition, WorkflowGraph, compile_graph
from automation.engine.flow.normalization import normalize_graph_json

logger = logging.getLogger(__name__)


class GraphStore(Protocol):
    def load_workflow(self, workflow_id: str) -> WorkflowDefinition:
        ...


class SqlAlchemyGraphStore:
    """Graph Store sobre o model Workflow (nodes/edges em JSONB)"""

    def load_workflow(self, workflow_id: str) -> WorkflowDefinition:
        """
        Carrega e normaliza um workflow.

        Args:
            workflow_id: ID do workflow

        Returns:
            WorkflowDefinition com nodes e edges no formato do engine

        Raises:
            WorkflowNotFoundError: workflow inexistente
        """
        from automation.models import Workflow

        workflow = Workflow.query.filter_by(id=workflow_id).first()
        if not workflow:
            raise WorkflowNotFoundError(workflow_id)

        nodes, edges = normalize_graph_json(workflow.nodes or [], workflow.edges or [])
        logger.debug(f"Workflow {workflow_id} carregado com {len(nodes)} nodes e {len(edges)} edges")

        return WorkflowDefinition(
            workflow_id=workflow.id,
            tenant_id=workflow.tenant_id,
            active=workflow.is_runnable(),
            nodes=nodes,
            edges=edges,
            entry_node_id=workflow.entry_node_id,
        )


def build_workflow_graph(definition: WorkflowDefinition) -> WorkflowGraph:
    """Compila o grafo tipado (valida configs em tempo de carga)"""
    return compile_graph(definition)
