# errors.py


class MindMapError(Exception):
    """Base class for every error raised by the mind map core."""


class UnknownNodeTypeError(MindMapError):
    """Raised when a persisted node cannot be rebuilt by any registered factory."""

    def __init__(self, node_type, node_id=None):
        self.node_type = node_type
        self.node_id = node_id
        super().__init__(f"No factory registered for node type '{node_type}' (node id: {node_id})")


class NodeNotFoundError(MindMapError):
    def __init__(self, node_id):
        self.node_id = node_id
        super().__init__(f"Node '{node_id}' does not exist")


class NodeLockedError(MindMapError):
    """Raised when a locked node is asked to accept new input."""


class CompletionError(MindMapError):
    """Raised when the completion backend fails or returns something unusable."""

    def __init__(self, message, provider=None, model=None):
        self.provider = provider
        self.model = model
        super().__init__(message)


class PersistenceError(MindMapError):
    def __init__(self, message, path=None):
        self.path = path
        super().__init__(f"{message} ({path})" if path else message)
