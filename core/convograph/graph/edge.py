"""
Edge Protocol - How nodes connect in a graph.

Two kinds of transition leave a node:

- EdgeSpec: unconditional, always go to ``target``
- BranchSpec: a predicate over the node's output picks one target out of a
  declared, finite candidate set

A node has at most one outgoing transition. The terminal node has none.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, Field

from convograph.graph.node import NodeSpec
from convograph.schemas.payload import Payload

Predicate = Callable[[Payload], str]

DEFAULT_MAX_STEPS = 20


class EdgeSpec(BaseModel):
    """
    Unconditional transition between two nodes.

    Example:
        EdgeSpec(source="ToolsNode", target="ChatModel")
    """

    source: str = Field(description="Source node ID")
    target: str = Field(description="Target node ID")
    description: str = ""

    model_config = {"extra": "allow"}


@dataclass
class BranchSpec:
    """
    Conditional transition: ``predicate(output)`` returns the next node ID.

    The predicate is a plain function of the source node's output, so it can
    be tested without an engine. Every value it may return must be listed in
    ``targets``.

    Example:
        BranchSpec(
            source="ChatModel",
            predicate=route_after_model,
            targets={"ToolsNode", "Human"},
        )
    """

    source: str
    predicate: Predicate
    targets: set[str] = field(default_factory=set)
    description: str = ""

    def select(self, output: Payload) -> str:
        """
        Evaluate the predicate.

        Raises:
            ValueError: If the predicate picks an undeclared target
        """
        target = self.predicate(output)
        if target not in self.targets:
            raise ValueError(
                f"Branch from '{self.source}' selected undeclared target '{target}' "
                f"(declared: {sorted(self.targets)})"
            )
        return target


class GraphSpec(BaseModel):
    """
    Complete, static specification of a conversation graph.

    Built once at startup (normally through ``GraphBuilder``) and shared by
    every run and every session.
    """

    id: str
    entry_node: str = Field(description="ID of the first node to execute")
    terminal_node: str = Field(description="ID of the node that ends a run")

    nodes: list[Any] = Field(default_factory=list, description="All NodeSpec objects")
    edges: list[EdgeSpec] = Field(default_factory=list)
    branches: list[Any] = Field(default_factory=list, description="All BranchSpec objects")

    max_steps: int = Field(
        default=DEFAULT_MAX_STEPS, description="Maximum node executions per run"
    )
    description: str = ""

    model_config = {"extra": "allow"}

    def get_node(self, node_id: str) -> NodeSpec | None:
        """Get a node by ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def get_edge(self, node_id: str) -> EdgeSpec | None:
        for edge in self.edges:
            if edge.source == node_id:
                return edge
        return None

    def get_branch(self, node_id: str) -> BranchSpec | None:
        for branch in self.branches:
            if branch.source == node_id:
                return branch
        return None

    @property
    def suspension_nodes(self) -> list[str]:
        return [n.id for n in self.nodes if n.is_suspension]

    def successors(self, node_id: str) -> set[str]:
        """All nodes a transition out of ``node_id`` may lead to."""
        targets = {e.target for e in self.edges if e.source == node_id}
        for branch in self.branches:
            if branch.source == node_id:
                targets |= branch.targets
        return targets

    def next_node(self, node_id: str, output: Payload) -> str | None:
        """
        Resolve the transition out of ``node_id`` for a given output.

        Returns:
            Next node ID, or None if ``node_id`` has no outgoing transition

        Raises:
            ValueError: If a branch predicate picks an undeclared target
        """
        edge = self.get_edge(node_id)
        if edge is not None:
            return edge.target
        branch = self.get_branch(node_id)
        if branch is not None:
            return branch.select(output)
        return None

    def validate(self) -> list[str]:
        """Validate the graph structure."""
        errors = []

        # Duplicate node names
        seen: set[str] = set()
        for node in self.nodes:
            if node.id in seen:
                errors.append(f"Duplicate node name: '{node.id}'")
            seen.add(node.id)

        # Entry and terminal exist
        entry = self.get_node(self.entry_node)
        if entry is None:
            errors.append(f"Entry node '{self.entry_node}' not found")
        elif entry.is_suspension:
            errors.append(f"Entry node '{self.entry_node}' cannot be a suspension node")
        if self.get_node(self.terminal_node) is None:
            errors.append(f"Terminal node '{self.terminal_node}' not found")

        # Edge and branch references
        for edge in self.edges:
            if self.get_node(edge.source) is None:
                errors.append(f"Edge '{edge.source}->{edge.target}' references missing source")
            if self.get_node(edge.target) is None:
                errors.append(
                    f"Edge '{edge.source}->{edge.target}' references missing target "
                    f"'{edge.target}'"
                )
        for branch in self.branches:
            if self.get_node(branch.source) is None:
                errors.append(f"Branch references missing source '{branch.source}'")
            if not branch.targets:
                errors.append(f"Branch from '{branch.source}' declares no targets")
            for target in sorted(branch.targets):
                if self.get_node(target) is None:
                    errors.append(
                        f"Branch from '{branch.source}' references undeclared target '{target}'"
                    )

        # One outgoing transition per node, none from the terminal
        outgoing: dict[str, int] = {}
        for source in [e.source for e in self.edges] + [b.source for b in self.branches]:
            outgoing[source] = outgoing.get(source, 0) + 1
        for source, count in outgoing.items():
            if count > 1:
                errors.append(f"Node '{source}' has {count} outgoing transitions, expected 1")
        if outgoing.get(self.terminal_node):
            errors.append(f"Terminal node '{self.terminal_node}' must not have outgoing edges")

        # Hooks only on state-coupled nodes
        for node in self.nodes:
            if not node.is_state_coupled and node.has_hooks:
                errors.append(f"Pure node '{node.id}' cannot declare state hooks")

        # Payload kinds agree across every transition
        for node in self.nodes:
            for target_id in sorted(self.successors(node.id)):
                target = self.get_node(target_id)
                if target is not None and target.input_kind != node.output_kind:
                    errors.append(
                        f"Node '{node.id}' produces {node.output_kind} but successor "
                        f"'{target_id}' expects {target.input_kind}"
                    )

        # Reachability from entry
        reachable: set[str] = set()
        to_visit = [self.entry_node]
        while to_visit:
            current = to_visit.pop()
            if current in reachable or self.get_node(current) is None:
                continue
            reachable.add(current)
            to_visit.extend(self.successors(current))

        for node_id in sorted(reachable):
            if node_id != self.terminal_node and not outgoing.get(node_id):
                errors.append(f"Node '{node_id}' has no outgoing edge or branch")

        if entry is not None and self.terminal_node not in reachable:
            errors.append(
                f"No path from entry '{self.entry_node}' to terminal '{self.terminal_node}'"
            )

        return errors
