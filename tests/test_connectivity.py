import sys
from pathlib import Path
import unittest
from unittest.mock import Mock

import networkx as nx

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from connectivity import (
    MULTIPLE_PARENTS_WARNING,
    SELF_LOOP_WARNING,
    build_graph,
    get_incomers,
    get_outgoers,
    is_valid_connection
)
from node_models import Edge, NodeKind
from node_registry import build_default_registry

REGISTRY = build_default_registry()


def text(node_id):
    return REGISTRY.create(NodeKind.TEXT, id=node_id, data={"content": node_id})


def summary(node_id):
    return REGISTRY.create(NodeKind.SUMMARY, id=node_id)


def edge(source, target):
    return Edge(id=f"{source}-{target}", source=source, target=target)


class IsValidConnectionTests(unittest.TestCase):
    def test_rejects_self_loop(self):
        notify = Mock()
        n1 = text("N1")
        self.assertFalse(is_valid_connection({"source": "N1", "target": "N1"}, [n1], [], notify=notify))
        notify.assert_called_once_with(SELF_LOOP_WARNING, "warning")

    def test_rejects_unknown_target(self):
        notify = Mock()
        self.assertFalse(is_valid_connection({"source": "N1", "target": "missing"}, [text("N1")], [], notify=notify))
        notify.assert_not_called()

    def test_rejects_second_parent_on_non_boundary(self):
        notify = Mock()
        nodes = [text("N1"), text("N2"), text("N3")]
        edges = [edge("N1", "N2")]
        self.assertFalse(is_valid_connection({"source": "N3", "target": "N2"}, nodes, edges, notify=notify))
        notify.assert_called_once_with(MULTIPLE_PARENTS_WARNING, "warning")

    def test_accepts_second_parent_on_boundary(self):
        nodes = [text("N1"), text("N2"), summary("S")]
        edges = [edge("N1", "S")]
        self.assertTrue(is_valid_connection({"source": "N2", "target": "S"}, nodes, edges))

    def test_rejects_cycle(self):
        nodes = [text("A"), text("B"), text("C")]
        edges = [edge("A", "B"), edge("B", "C")]
        # A already has no parent, so only the cycle check can reject this
        self.assertFalse(is_valid_connection(edge("C", "A"), nodes, edges))

    def test_rejects_cycle_through_boundary(self):
        nodes = [text("A"), summary("S"), text("C")]
        edges = [edge("A", "S"), edge("S", "C")]
        self.assertFalse(is_valid_connection(edge("C", "S"), nodes, edges))

    def test_accepts_plain_connection(self):
        nodes = [text("A"), text("B")]
        self.assertTrue(is_valid_connection(edge("A", "B"), nodes, []))

    def test_same_inputs_give_same_answer(self):
        nodes = [text("A"), text("B"), text("C")]
        edges = [edge("A", "B")]
        results = {is_valid_connection(edge("B", "C"), nodes, edges) for _ in range(3)}
        self.assertEqual(results, {True})
        self.assertEqual(len(edges), 1)

    def test_warning_is_logged_without_notifier(self):
        with self.assertLogs("connectivity", level="WARNING"):
            is_valid_connection({"source": "A", "target": "A"}, [text("A")], [])


class GraphPropertyTests(unittest.TestCase):
    def test_accepted_connections_keep_graph_acyclic_with_single_parents(self):
        nodes = [text(f"T{i}") for i in range(5)] + [summary("S1"), summary("S2")]
        ids = [node.id for node in nodes]
        edges = []
        for source in ids:
            for target in ids:
                candidate = edge(source, target)
                if is_valid_connection(candidate, nodes, edges, notify=Mock()):
                    edges.append(candidate)

        graph = build_graph(nodes, edges)
        self.assertTrue(nx.is_directed_acyclic_graph(graph))
        for node in nodes:
            if not node.is_thread_boundary:
                self.assertLessEqual(graph.in_degree(node.id), 1)
        self.assertGreater(len(edges), 0)


class NeighbourTests(unittest.TestCase):
    def test_incomers_follow_edge_order(self):
        nodes = [text("P2"), text("P1"), summary("S")]
        edges = [edge("P1", "S"), edge("P2", "S")]
        self.assertEqual([node.id for node in get_incomers("S", nodes, edges)], ["P1", "P2"])

    def test_outgoers(self):
        nodes = [text("A"), text("B"), text("C")]
        edges = [edge("A", "C"), edge("A", "B")]
        self.assertEqual([node.id for node in get_outgoers(nodes[0], nodes, edges)], ["C", "B"])

    def test_dangling_edges_are_ignored(self):
        nodes = [text("A")]
        self.assertEqual(get_incomers("A", nodes, [edge("ghost", "A")]), [])


if __name__ == "__main__":
    unittest.main()
