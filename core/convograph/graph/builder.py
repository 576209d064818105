"""
GraphBuilder - declare nodes and transitions, then validate once.

    builder = GraphBuilder("agent")
    builder.add_node(input_node).add_node(model_node)
    builder.add_edge("InputConverter", "ChatModel")
    builder.add_branch("ChatModel", route_after_model, {"ToolsNode", "Human"})
    builder.set_entry("InputConverter").set_terminal("OutputConverter")
    graph = builder.build()  # raises GraphBuildError listing every problem
"""

import logging

from convograph.errors import GraphBuildError
from convograph.graph.edge import DEFAULT_MAX_STEPS, BranchSpec, EdgeSpec, GraphSpec, Predicate
from convograph.graph.node import NodeSpec

logger = logging.getLogger(__name__)


class GraphBuilder:
    """Collects a graph definition and validates it in ``build``."""

    def __init__(self, graph_id: str, description: str = ""):
        self.graph_id = graph_id
        self.description = description
        self._nodes: list[NodeSpec] = []
        self._edges: list[EdgeSpec] = []
        self._branches: list[BranchSpec] = []
        self._entry: str | None = None
        self._terminal: str | None = None
        self._max_steps = DEFAULT_MAX_STEPS

    def add_node(self, node: NodeSpec) -> "GraphBuilder":
        self._nodes.append(node)
        return self

    def add_edge(self, source: str, target: str, description: str = "") -> "GraphBuilder":
        self._edges.append(EdgeSpec(source=source, target=target, description=description))
        return self

    def add_branch(
        self,
        source: str,
        predicate: Predicate,
        targets: set[str],
        description: str = "",
    ) -> "GraphBuilder":
        self._branches.append(
            BranchSpec(
                source=source,
                predicate=predicate,
                targets=set(targets),
                description=description,
            )
        )
        return self

    def set_entry(self, node_id: str) -> "GraphBuilder":
        self._entry = node_id
        return self

    def set_terminal(self, node_id: str) -> "GraphBuilder":
        self._terminal = node_id
        return self

    def set_max_steps(self, max_steps: int) -> "GraphBuilder":
        self._max_steps = max_steps
        return self

    def build(self) -> GraphSpec:
        """
        Validate and freeze the graph.

        Raises:
            GraphBuildError: With every validation problem found
        """
        errors = []
        if self._entry is None:
            errors.append("No entry node declared")
        if self._terminal is None:
            errors.append("No terminal node declared")
        if self._max_steps < 1:
            errors.append(f"max_steps must be positive, got {self._max_steps}")
        if errors:
            raise GraphBuildError(errors)

        graph = GraphSpec(
            id=self.graph_id,
            entry_node=self._entry,
            terminal_node=self._terminal,
            nodes=list(self._nodes),
            edges=list(self._edges),
            branches=list(self._branches),
            max_steps=self._max_steps,
            description=self.description,
        )
        errors = graph.validate()
        if errors:
            logger.error(f"❌ Graph '{self.graph_id}' failed validation:")
            for err in errors:
                logger.error(f"   • {err}")
            raise GraphBuildError(errors)

        logger.info(
            f"✓ Built graph '{self.graph_id}' with {len(self._nodes)} nodes "
            f"(entry: {self._entry}, terminal: {self._terminal})"
        )
        return graph
