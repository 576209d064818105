"""
Error kinds raised by the engine, the session layer and the tool layer.

Every error carries a ``kind`` tag. The agent facade turns any of them into a
tagged text reply (``"[StepLimitExceeded]: ..."``) so transports never have to
inspect exception types.
"""


class ConvographError(Exception):
    """Base class for all convograph errors."""

    kind = "ConvographError"


class GraphBuildError(ConvographError):
    """The static graph definition is invalid. Fatal at startup."""

    kind = "GraphBuildError"

    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Invalid graph: " + "; ".join(self.errors))


class StepLimitExceeded(ConvographError):
    """A run executed ``max_steps`` nodes without suspending or finishing."""

    kind = "StepLimitExceeded"
    retryable = False

    def __init__(self, max_steps: int, node_id: str | None = None):
        self.max_steps = max_steps
        self.node_id = node_id
        message = f"Step limit of {max_steps} exceeded"
        if node_id:
            message += f" before entering node '{node_id}'"
        super().__init__(message)


class NodeExecutionError(ConvographError):
    """A node body, hook or branch failed. Tagged with the node's id."""

    kind = "NodeExecutionError"

    def __init__(self, node_id: str, cause: BaseException | str):
        self.node_id = node_id
        self.cause = cause if isinstance(cause, BaseException) else None
        super().__init__(f"Node '{node_id}' failed: {cause}")


class StoreError(ConvographError):
    """Loading or saving a checkpoint failed. Not retried by the engine."""

    kind = "StoreError"

    def __init__(self, key: str, operation: str, cause: BaseException | str | None = None):
        self.key = key
        self.operation = operation
        message = f"Checkpoint {operation} failed for key '{key}'"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class UnknownSession(ConvographError):
    """No session is registered under the given identifier."""

    kind = "UnknownSession"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class ToolExecutionError(ConvographError):
    """A tool call could not be dispatched or its executor raised."""

    kind = "ToolExecutionError"

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' failed: {message}")
