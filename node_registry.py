# node_registry.py

import copy
import logging
import uuid
from collections.abc import Mapping

from errors import UnknownNodeTypeError
from node_models import (
    BaseNodeData,
    ChatNodeData,
    FileNodeData,
    Node,
    NodeKind,
    SummaryNodeData,
    TextNodeData,
    kind_name,
)

logger = logging.getLogger(__name__)


def _build_node(kind, data_cls, node_input=None):
    """Create a node of `kind`; an id is generated when the input has none."""
    node_input = dict(node_input or {})
    data = node_input.pop("data", None)
    if not isinstance(data, BaseNodeData):
        data = copy.deepcopy(data)
    remaining = copy.deepcopy(node_input)

    node_id = remaining.pop("id", None) or str(uuid.uuid4())
    position = remaining.pop("position", None) or {"x": 0, "y": 0}
    selected = bool(remaining.pop("selected", False))
    remaining.pop("type", None)

    return Node(
        id=node_id,
        kind=kind,
        data=data_cls.from_dict(data),
        position=dict(position),
        selected=selected,
        extra=remaining
    )


def text_node_factory(node_input=None):
    return _build_node(NodeKind.TEXT, TextNodeData, node_input)


def file_node_factory(node_input=None):
    return _build_node(NodeKind.FILE, FileNodeData, node_input)


def llm_prompt_node_factory(node_input=None):
    return _build_node(NodeKind.CHAT, ChatNodeData, node_input)


def summary_node_factory(node_input=None):
    return _build_node(NodeKind.SUMMARY, SummaryNodeData, node_input)


class NodeRegistry:
    """
    Maps node type tags to the factories that build them.

    One registry is built at start-up and handed to whatever creates or
    restores nodes (graph store helpers, mind map loader).
    """

    def __init__(self):
        self._factories = {}

    def register(self, node_type, factory):
        name = kind_name(node_type)
        if name in self._factories:
            logger.debug("Replacing factory for node type '%s'", name)
        self._factories[name] = factory

    def kinds(self):
        return list(self._factories)

    def factory_for(self, node_type, node_id=None):
        factory = self._factories.get(kind_name(node_type)) if node_type else None
        if factory is None:
            raise UnknownNodeTypeError(node_type, node_id)
        return factory

    def create(self, node_type, **node_input):
        return self.factory_for(node_type, node_input.get("id"))(node_input)

    def restore_node(self, raw):
        """Rebuild a persisted node with the factory registered for its type."""
        if not isinstance(raw, Mapping):
            raise UnknownNodeTypeError(type(raw).__name__)
        factory = self.factory_for(raw.get("type"), raw.get("id"))
        return factory(raw)

    def restore_nodes(self, raw_nodes):
        return [self.restore_node(raw) for raw in raw_nodes]


def build_default_registry():
    registry = NodeRegistry()
    registry.register(NodeKind.TEXT, text_node_factory)
    registry.register(NodeKind.FILE, file_node_factory)
    registry.register(NodeKind.CHAT, llm_prompt_node_factory)
    registry.register(NodeKind.SUMMARY, summary_node_factory)
    logger.debug("Registered node types: %s", ", ".join(registry.kinds()))
    return registry
