# connectivity.py

import logging
from collections.abc import Mapping

import networkx as nx

logger = logging.getLogger(__name__)

SELF_LOOP_WARNING = "A node cannot be connected to itself."
MULTIPLE_PARENTS_WARNING = (
    "This node already has a parent. Only Summary nodes can have more than one parent; "
    "connect the threads to a Summary node to merge them."
)


def connection_endpoints(connection):
    """Return (source, target) of an Edge or of a {"source", "target"} mapping."""
    if isinstance(connection, Mapping):
        return connection.get("source"), connection.get("target")
    return getattr(connection, "source", None), getattr(connection, "target", None)


def node_id_of(node):
    return node if isinstance(node, str) else node.id


def build_graph(nodes, edges):
    """
    Snapshot nodes and edges into a DiGraph.

    Each graph node carries its Node record under the "node" attribute.
    Edges pointing at unknown nodes are left out. Predecessors keep the
    enumeration order of `edges`.
    """
    graph = nx.DiGraph()
    for node in nodes:
        graph.add_node(node.id, node=node)
    for edge in edges:
        source, target = connection_endpoints(edge)
        if source in graph and target in graph:
            graph.add_edge(source, target)
    return graph


def incomers(graph, node_id):
    if node_id not in graph:
        return []
    return [graph.nodes[parent]["node"] for parent in graph.predecessors(node_id)]


def outgoers(graph, node_id):
    if node_id not in graph:
        return []
    return [graph.nodes[child]["node"] for child in graph.successors(node_id)]


def get_incomers(node, nodes, edges):
    """Parents of `node` (a Node or an id), in edge order."""
    return incomers(build_graph(nodes, edges), node_id_of(node))


def get_outgoers(node, nodes, edges):
    """Children of `node` (a Node or an id), in edge order."""
    return outgoers(build_graph(nodes, edges), node_id_of(node))


def _warn(notify, message):
    if notify is not None:
        notify(message, "warning")
    else:
        logger.warning(message)


def is_valid_connection(connection, nodes, edges, notify=None):
    """
    Decide whether the edge `connection` may be added to the graph.

    Checks run in order and stop at the first failure:
      1. the target node exists
      2. no self-loops (warns)
      3. a non-boundary target may not gain a second parent (warns)
      4. the source may not be a descendant of the target (cycle)
    """
    source, target = connection_endpoints(connection)
    nodes = list(nodes)
    edges = list(edges)

    target_node = next((node for node in nodes if node.id == target), None)
    if target_node is None:
        logger.debug("Rejected connection %s -> %s: unknown target", source, target)
        return False

    if source == target:
        _warn(notify, SELF_LOOP_WARNING)
        return False

    if not target_node.is_thread_boundary:
        if any(connection_endpoints(edge)[1] == target for edge in edges):
            _warn(notify, MULTIPLE_PARENTS_WARNING)
            return False

    graph = build_graph(nodes, edges)
    if source in nx.descendants(graph, target):
        logger.debug("Rejected connection %s -> %s: would create a cycle", source, target)
        return False

    return True
