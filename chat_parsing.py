"""
chat_parsing.py

Turns a node in the conversation graph into the ordered messages sent to
the language model.

A thread is the chain of ancestors feeding into a node, oldest first. The
walk upward stops at the first thread boundary (a Summary node): whatever
sits above a summary is represented by the summary's own content and is
never flattened into downstream context.

Every function here works on a snapshot of the nodes and edges it is
given and never changes them.
"""

import logging
from typing import List, NamedTuple

from connectivity import build_graph, incomers
from node_models import Node, is_chat_contributor

logger = logging.getLogger(__name__)


class ParentCategory(NamedTuple):
    is_thread: bool
    ancestors: List[Node]


def _ancestor_thread(graph, node):
    thread = [node]
    seen = {node.id}
    current = node

    while not current.is_thread_boundary:
        parents = incomers(graph, current.id)
        if not parents:
            break
        if len(parents) > 1:
            logger.debug("Node %s has %d parents; following the first", current.id, len(parents))
        parent = parents[0]
        if parent.id in seen:
            logger.debug("Stopped thread walk at %s: node already visited", parent.id)
            break
        thread.append(parent)
        seen.add(parent.id)
        current = parent

    thread.reverse()
    return thread


def collect_ancestor_thread(node, nodes, edges):
    """
    Return `node`'s thread: its ancestors oldest first, then `node` itself.

    A boundary node is its own thread. A root node is a thread of one.
    """
    return _ancestor_thread(build_graph(nodes, edges), node)


def select_node_and_parents(nodes, edges):
    """Thread of the currently selected node, or an empty list when nothing is selected."""
    nodes = list(nodes)
    selected = next((node for node in nodes if node.selected), None)
    if selected is None:
        return []
    return collect_ancestor_thread(selected, nodes, edges)


def categorize_parent(node, nodes, edges):
    """
    Classify `node` for presentation grouping.

    A non-boundary node with a grandparent is a thread; boundary nodes are
    folded threads and never count as one.
    """
    graph = build_graph(nodes, edges)
    ancestors = _ancestor_thread(graph, node)
    if node.is_thread_boundary:
        return ParentCategory(False, ancestors)

    has_grandparent = any(incomers(graph, parent.id) for parent in incomers(graph, node.id))
    return ParentCategory(has_grandparent, ancestors)


def collect_parent_threads(boundary_node, nodes, edges):
    """One thread per parent of `boundary_node`, in parent edge order."""
    graph = build_graph(nodes, edges)
    return [_ancestor_thread(graph, parent) for parent in incomers(graph, boundary_node.id)]


def thread_to_chat_messages(thread):
    messages = []
    for node in thread:
        if is_chat_contributor(node.data):
            messages.extend(node.data.to_chat_array())
    return messages


def node_thread_messages(node, nodes, edges):
    return thread_to_chat_messages(collect_ancestor_thread(node, nodes, edges))


def create_chat_history(target_node, target_node_messages, nodes, edges):
    """
    Messages to send when `target_node` submits `target_node_messages`.

    Each direct parent contributes its whole thread (up to the nearest
    boundary), followed by the target's own messages. Oldest first.
    """
    graph = build_graph(nodes, edges)

    history = []
    for parent in incomers(graph, target_node.id):
        history.extend(thread_to_chat_messages(_ancestor_thread(graph, parent)))
    history.extend(dict(message) for message in target_node_messages)
    return history
