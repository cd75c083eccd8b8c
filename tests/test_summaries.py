import sys
from pathlib import Path
import unittest
from unittest.mock import Mock, patch

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import shared_utils
from errors import CompletionError
from node_models import Edge, NodeKind
from node_registry import build_default_registry
from summaries import format_conversation, generate_summary

REGISTRY = build_default_registry()


def chat(node_id, prompt, reply):
    return REGISTRY.create(NodeKind.CHAT, id=node_id, data={
        "content": prompt,
        "locked": True,
        "aiResponse": {"role": "assistant", "content": reply}
    })


def edge(source, target):
    return Edge(id=f"{source}-{target}", source=source, target=target)


class GenerateSummaryTests(unittest.TestCase):
    def setUp(self):
        self.summary_node = REGISTRY.create(NodeKind.SUMMARY, id="S")

    def test_no_parents_returns_none_without_calling_model(self):
        generate = Mock()
        self.assertIsNone(generate_summary(self.summary_node, [self.summary_node], [], "mistral:7b", generate))
        generate.assert_not_called()

    def test_empty_parent_threads_return_none(self):
        empty = REGISTRY.create(NodeKind.TEXT, id="E")
        generate = Mock()
        result = generate_summary(self.summary_node, [empty, self.summary_node], [edge("E", "S")], "m", generate)
        self.assertIsNone(result)
        generate.assert_not_called()

    def test_single_thread_is_not_consolidated(self):
        a = chat("A", "What is Rust?", "A systems language.")
        generate = Mock(return_value="  Rust is a systems language.  ")

        result = generate_summary(self.summary_node, [a, self.summary_node], [edge("A", "S")], "mistral:7b", generate)

        self.assertEqual(result, "Rust is a systems language.")
        generate.assert_called_once()
        model, prompt = generate.call_args.args
        self.assertEqual(model, "mistral:7b")
        self.assertIn("User: What is Rust?", prompt)
        self.assertIn("Assistant: A systems language.", prompt)

    def test_threads_are_summarized_in_order_then_consolidated(self):
        root, a = chat("R", "root question", "root answer"), chat("A", "first", "one")
        b = chat("B", "second", "two")
        nodes = [self.summary_node, b, a, root]
        edges = [edge("R", "A"), edge("A", "S"), edge("B", "S")]
        generate = Mock(side_effect=["summary A", "summary B", "combined"])

        result = generate_summary(self.summary_node, nodes, edges, "m", generate)

        self.assertEqual(result, "combined")
        self.assertEqual(generate.call_count, 3)
        first_prompt = generate.call_args_list[0].args[1]
        self.assertIn("root question", first_prompt)
        self.assertNotIn("second", first_prompt)
        self.assertIn("second", generate.call_args_list[1].args[1])

        consolidation = generate.call_args_list[2].args[1]
        self.assertIn("Thread 1:\nsummary A", consolidation)
        self.assertIn("Thread 2:\nsummary B", consolidation)
        self.assertLess(consolidation.index("summary A"), consolidation.index("summary B"))

    def test_defaults_to_shared_generate(self):
        a = chat("A", "q", "a")
        with patch.object(shared_utils, "generate", return_value="done") as mock_generate:
            result = generate_summary(self.summary_node, [a, self.summary_node], [edge("A", "S")], "m")
        self.assertEqual(result, "done")
        mock_generate.assert_called_once()

    def test_backend_failure_propagates(self):
        a = chat("A", "q", "a")
        generate = Mock(side_effect=CompletionError("offline", provider="ollama"))
        with self.assertRaises(CompletionError):
            generate_summary(self.summary_node, [a, self.summary_node], [edge("A", "S")], "m", generate)


class FormatConversationTests(unittest.TestCase):
    def test_transcript_layout(self):
        messages = [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]
        self.assertEqual(format_conversation(messages), "User: hi\n\nAssistant: hello")


if __name__ == "__main__":
    unittest.main()
