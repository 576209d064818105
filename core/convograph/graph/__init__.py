"""Graph structures: nodes, transitions, the builder and the executor."""

from convograph.graph.agent_graph import (
    DEFAULT_SYSTEM_PROMPT,
    NODE_HUMAN,
    NODE_INPUT,
    NODE_MODEL,
    NODE_OUTPUT,
    NODE_TOOLS,
    build_agent_graph,
    route_after_human,
    route_after_model,
)
from convograph.graph.builder import GraphBuilder
from convograph.graph.edge import DEFAULT_MAX_STEPS, BranchSpec, EdgeSpec, GraphSpec
from convograph.graph.executor import ExecutionResult, GraphExecutor, InterruptInfo
from convograph.graph.node import NodeKind, NodeSpec

__all__ = [
    # Definition
    "NodeSpec",
    "NodeKind",
    "EdgeSpec",
    "BranchSpec",
    "GraphSpec",
    "GraphBuilder",
    "DEFAULT_MAX_STEPS",
    # Execution
    "GraphExecutor",
    "ExecutionResult",
    "InterruptInfo",
    # Reference graph
    "build_agent_graph",
    "route_after_model",
    "route_after_human",
    "DEFAULT_SYSTEM_PROMPT",
    "NODE_INPUT",
    "NODE_MODEL",
    "NODE_TOOLS",
    "NODE_HUMAN",
    "NODE_OUTPUT",
]
