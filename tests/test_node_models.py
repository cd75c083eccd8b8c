import sys
import tempfile
from pathlib import Path
import unittest

ROOT_DIR = Path(__file__).resolve().parent.parent
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from errors import NodeLockedError
from node_models import (
    ChatNodeData,
    Edge,
    FileNodeData,
    SummaryNodeData,
    TextNodeData,
    is_chat_contributor,
    make_message
)


class ChatNodeDataTests(unittest.TestCase):
    def test_submitted_message_locks_without_touching_original(self):
        original = ChatNodeData(content="draft")
        submitted = original.add_user_message("What is a monad?")

        self.assertTrue(submitted.locked)
        self.assertEqual(submitted.content, "What is a monad?")
        self.assertFalse(original.locked)
        self.assertEqual(original.content, "draft")

    def test_locked_node_rejects_second_submission(self):
        submitted = ChatNodeData().add_user_message("hello")
        with self.assertRaises(NodeLockedError):
            submitted.add_user_message("again")

    def test_chat_array_is_user_then_assistant(self):
        data = ChatNodeData().add_user_message("hi").add_ai_message("hello there")
        self.assertEqual(data.to_chat_array(), [
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello there"}
        ])

    def test_chat_array_without_response_has_only_user_message(self):
        data = ChatNodeData().add_user_message("hi")
        self.assertEqual(data.to_chat_array(), [{"role": "user", "content": "hi"}])

    def test_edit_unlocks_and_drops_response(self):
        data = ChatNodeData().add_user_message("hi").add_ai_message("hello")
        edited = data.edit_user_message()

        self.assertFalse(edited.locked)
        self.assertIsNone(edited.ai_response)
        self.assertEqual(edited.content, "hi")
        self.assertIsNotNone(data.ai_response)

    def test_from_dict_deep_copies_nested_fields(self):
        raw = {"content": "q", "locked": True, "aiResponse": {"role": "assistant", "content": "a"}}
        data = ChatNodeData.from_dict(raw)
        raw["aiResponse"]["content"] = "changed"

        self.assertEqual(data.ai_response["content"], "a")

    def test_evolve_does_not_share_nested_state(self):
        data = ChatNodeData(content="q", locked=True, ai_response={"role": "assistant", "content": "a"})
        copy = data.evolve(show_debug=True)
        copy.ai_response["content"] = "mutated"

        self.assertEqual(data.ai_response["content"], "a")
        self.assertTrue(copy.show_debug)
        self.assertFalse(data.show_debug)

    def test_round_trip_keeps_camel_case_and_unknown_keys(self):
        raw = {
            "content": "q",
            "showDebug": True,
            "locked": True,
            "aiResponse": {"role": "assistant", "content": "a"},
            "model": "llama3:latest",
            "direction": "TB"
        }
        data = ChatNodeData.from_dict(raw)
        persisted = data.to_dict()

        self.assertEqual(persisted["showDebug"], True)
        self.assertEqual(persisted["aiResponse"], {"role": "assistant", "content": "a"})
        self.assertEqual(persisted["model"], "llama3:latest")
        self.assertEqual(persisted["direction"], "TB")
        self.assertFalse(persisted["isThreadBoundary"])


class PayloadVariantTests(unittest.TestCase):
    def test_text_node_contributes_one_user_message(self):
        self.assertEqual(TextNodeData(content="hi").to_chat_array(), [{"role": "user", "content": "hi"}])

    def test_empty_content_contributes_nothing(self):
        self.assertEqual(TextNodeData().to_chat_array(), [])
        self.assertEqual(ChatNodeData(content="   ").to_chat_array(), [])
        self.assertFalse(is_chat_contributor(SummaryNodeData()))

    def test_summary_is_always_a_boundary(self):
        data = SummaryNodeData.from_dict({"content": "s", "isThreadBoundary": False})
        self.assertTrue(data.is_thread_boundary)
        self.assertTrue(data.to_dict()["isThreadBoundary"])
        self.assertFalse(TextNodeData.from_dict({"isThreadBoundary": True}).is_thread_boundary)

    def test_summary_contributes_its_content(self):
        self.assertEqual(SummaryNodeData(content="recap").to_chat_array(), [{"role": "user", "content": "recap"}])

    def test_file_load_locks_and_clear_unlocks(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "notes.md"
            path.write_text("# Notes\nremember this", encoding="utf-8")

            loaded = FileNodeData().load_file(path)
            self.assertTrue(loaded.locked)
            self.assertEqual(loaded.file_name, "notes.md")
            self.assertEqual(loaded.content, "# Notes\nremember this")
            self.assertTrue(loaded.mime_type)
            self.assertEqual(loaded.to_chat_array(), [{"role": "user", "content": "# Notes\nremember this"}])

            with self.assertRaises(NodeLockedError):
                loaded.load_file(path)

            cleared = loaded.clear_file()
            self.assertFalse(cleared.locked)
            self.assertEqual(cleared.content, "")
            self.assertIsNone(cleared.file_name)

    def test_file_node_accepts_legacy_file_key(self):
        data = FileNodeData.from_dict({"file": "old.txt", "content": "x"})
        self.assertEqual(data.file_name, "old.txt")


class MessageAndEdgeTests(unittest.TestCase):
    def test_only_user_and_assistant_roles(self):
        with self.assertRaises(ValueError):
            make_message("system", "nope")

    def test_edge_round_trip(self):
        edge = Edge.from_dict({"source": "a", "target": "b", "animated": True})
        self.assertEqual(edge.id, "a->b")
        self.assertEqual(edge.to_dict(), {"id": "a->b", "source": "a", "target": "b", "animated": True})


if __name__ == "__main__":
    unittest.main()
