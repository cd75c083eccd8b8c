# graph_store.py

import logging
import threading
from dataclasses import replace

from connectivity import connection_endpoints, is_valid_connection
from errors import NodeNotFoundError
from node_models import Edge, NodeKind

logger = logging.getLogger(__name__)


class GraphStore:
    """
    In-memory nodes and edges of one mind map.

    Readers get tuple snapshots. Node payloads are only ever replaced as a
    whole; every mutation swaps in a new Node record under the lock.
    """

    def __init__(self, nodes=(), edges=(), notify=None):
        self._lock = threading.RLock()
        self._nodes = list(nodes)
        self._edges = list(edges)
        self.notify = notify

    def get_nodes(self):
        with self._lock:
            return tuple(self._nodes)

    def get_edges(self):
        with self._lock:
            return tuple(self._edges)

    def find_node(self, node_id):
        with self._lock:
            return next((node for node in self._nodes if node.id == node_id), None)

    def get_node(self, node_id):
        node = self.find_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def _index_of(self, node_id):
        for index, node in enumerate(self._nodes):
            if node.id == node_id:
                return index
        raise NodeNotFoundError(node_id)

    def add_node(self, node):
        with self._lock:
            if self.find_node(node.id) is not None:
                raise ValueError(f"Node '{node.id}' already exists")
            self._nodes.append(node)
        logger.debug("Added %s node %s", node.kind, node.id)
        return node

    def connect(self, connection):
        """
        Add the edge if the connectivity rules accept it. Returns the edge, or None.

        Raises NodeNotFoundError when the source is not in the store.
        """
        with self._lock:
            source, _ = connection_endpoints(connection)
            self._index_of(source)
            if not is_valid_connection(connection, self._nodes, self._edges, notify=self.notify):
                return None
            if isinstance(connection, Edge):
                edge = connection
            else:
                source, target = connection_endpoints(connection)
                edge = Edge.from_dict({**connection, "source": source, "target": target})
            self._edges.append(edge)
        logger.debug("Connected %s -> %s", edge.source, edge.target)
        return edge

    def update_node_data(self, node_id, data, replace=True):
        if not replace:
            raise ValueError("Node data updates must replace the whole payload")
        with self._lock:
            index = self._index_of(node_id)
            self._nodes[index] = self._nodes[index].with_data(data)
            return self._nodes[index]

    def update_node(self, node_id, **changes):
        """Replace record-level fields such as `selected` or `position`."""
        with self._lock:
            index = self._index_of(node_id)
            self._nodes[index] = replace(self._nodes[index], **changes)
            return self._nodes[index]

    def delete_node(self, node_id):
        with self._lock:
            index = self._index_of(node_id)
            del self._nodes[index]
            self._edges = [
                edge for edge in self._edges
                if edge.source != node_id and edge.target != node_id
            ]
        logger.debug("Deleted node %s and its edges", node_id)

    def select_node(self, node_id):
        with self._lock:
            self._index_of(node_id)
            self._nodes = [
                node if node.selected == (node.id == node_id) else replace(node, selected=node.id == node_id)
                for node in self._nodes
            ]
            return self.find_node(node_id)

    def unselect_all(self):
        with self._lock:
            self._nodes = [replace(node, selected=False) if node.selected else node for node in self._nodes]

    def selected_node(self):
        with self._lock:
            return next((node for node in self._nodes if node.selected), None)

    def drop_connection(self, from_node_id, registry, position=None):
        """
        Handle an edge dragged from `from_node_id` and released on empty canvas:
        a new chat node is created there and connected as the child.
        """
        with self._lock:
            self.get_node(from_node_id)
            node = registry.create(NodeKind.CHAT, position=position or {"x": 0, "y": 0})
            edge = Edge(id=node.id, source=from_node_id, target=node.id)
            self._nodes.append(node)
            self._edges.append(edge)
        logger.debug("Created chat node %s from dropped connection on %s", node.id, from_node_id)
        return node, edge
