# main.py

import argparse
import logging
import sys

from dotenv import load_dotenv
from PyQt6.QtCore import QObject, QRunnable, pyqtSignal, pyqtSlot

# Load environment variables from .env file
load_dotenv()

import shared_utils
from chat_parsing import create_chat_history, node_thread_messages, select_node_and_parents
from config import setup_logging
from errors import MindMapError, NodeLockedError
from graph_store import GraphStore
from mind_map_store import (
    clone_mind_map,
    load_active_file_state,
    load_mind_map,
    remember_file,
    save_active_file_state,
    save_mind_map
)
from node_models import ChatNodeData, NodeKind
from node_registry import build_default_registry
from summaries import generate_summary

logger = logging.getLogger(__name__)

NO_THREADS_MESSAGE = (
    "No parent threads found to summarize. "
    "Connect some conversation nodes to this Summary Node first."
)


def log_notification(message, level="info"):
    """Default notifier: user-facing messages go to the log."""
    logger.log(getattr(logging, level.upper(), logging.INFO), message)


def chat_turn(node, nodes, edges, model=None):
    """Build the chat history for a submitted node and ask the model for a reply"""
    history = create_chat_history(node, node.data.to_chat_array(), nodes, edges)
    model = model or node.data.model
    logger.info("Starting %s turn for node %s (%d messages in history)", model, node.id, len(history))
    return shared_utils.chat(model, history)


class WorkerSignals(QObject):
    """Defines the signals available from a running worker thread"""
    result = pyqtSignal(str, object)  # node id, task result
    error = pyqtSignal(str, object)  # node id, exception
    finished = pyqtSignal(str)  # node id


class Worker(QRunnable):
    """Runs one backend call for a node using QThreadPool"""

    def __init__(self, node_id, task, *args, **kwargs):
        super().__init__()
        self.node_id = node_id
        self.task = task
        self.args = args
        self.kwargs = kwargs

        # Create signals object
        self.signals = WorkerSignals()

    @pyqtSlot()
    def run(self):
        try:
            result = self.task(*self.args, **self.kwargs)
        except Exception as e:
            logger.error("Task for node %s failed: %s", self.node_id, e)
            self.signals.error.emit(self.node_id, e)
        else:
            self.signals.result.emit(self.node_id, result)
        finally:
            self.signals.finished.emit(self.node_id)


class ConversationManager:
    """
    Runs chat and summary requests for nodes in a GraphStore.

    A node with a request in flight is locked: it cannot be resubmitted or
    edited until the request finishes. Without a thread pool requests run
    on the caller's thread.
    """

    def __init__(self, store, registry=None, thread_pool=None, notify=None):
        self.store = store
        self.registry = registry or build_default_registry()
        self.thread_pool = thread_pool
        self.notify = notify or log_notification
        self.workers = {}  # node id -> in-flight worker

    def is_busy(self, node_id):
        return node_id in self.workers

    def _start(self, worker):
        self.workers[worker.node_id] = worker
        worker.signals.finished.connect(self.on_worker_finished)
        if self.thread_pool is None:
            worker.run()
        else:
            self.thread_pool.start(worker)
        return worker

    def on_worker_finished(self, node_id):
        self.workers.pop(node_id, None)

    def submit_message(self, node_id, text, model=None):
        """Lock the chat node with `text`, then request the assistant's reply."""
        node = self.store.get_node(node_id)
        if not isinstance(node.data, ChatNodeData):
            raise MindMapError(f"Node '{node_id}' is not a chat node")
        if self.is_busy(node_id):
            raise NodeLockedError(f"Node '{node_id}' is waiting for a response")

        next_state = node.data.add_user_message(text)
        if model:
            next_state = next_state.evolve(model=model)
        locked_node = self.store.update_node_data(node_id, next_state, replace=True)

        worker = Worker(
            node_id,
            chat_turn,
            locked_node,
            self.store.get_nodes(),
            self.store.get_edges(),
            next_state.model
        )
        worker.signals.result.connect(self.on_chat_result)
        worker.signals.error.connect(self.on_chat_error)
        return self._start(worker)

    def on_chat_result(self, node_id, message):
        node = self.store.find_node(node_id)
        if node is None:
            logger.warning("Node %s was deleted before its response arrived", node_id)
            return
        self.store.update_node_data(node_id, node.data.add_ai_message(message), replace=True)

    def on_chat_error(self, node_id, error):
        node = self.store.find_node(node_id)
        if node is not None:
            self.store.update_node_data(node_id, node.data.edit_user_message(), replace=True)
        self.notify(f"Failed to get a response: {error}", "error")

    def edit_message(self, node_id):
        """Unlock a chat node so its prompt can be changed; the reply is dropped."""
        if self.is_busy(node_id):
            raise NodeLockedError(f"Node '{node_id}' is waiting for a response")
        node = self.store.get_node(node_id)
        return self.store.update_node_data(node_id, node.data.edit_user_message(), replace=True)

    def toggle_debug(self, node_id):
        node = self.store.get_node(node_id)
        next_state = node.data.evolve(show_debug=not node.data.show_debug)
        return self.store.update_node_data(node_id, next_state, replace=True)

    def summarize(self, node_id, model=None):
        """Generate the content of a Summary node from the threads feeding into it."""
        node = self.store.get_node(node_id)
        if not node.is_thread_boundary:
            raise MindMapError(f"Node '{node_id}' is not a summary node")
        if self.is_busy(node_id):
            raise NodeLockedError(f"Node '{node_id}' is already being summarized")

        worker = Worker(
            node_id,
            generate_summary,
            node,
            self.store.get_nodes(),
            self.store.get_edges(),
            model or node.data.model
        )
        worker.signals.result.connect(self.on_summary_result)
        worker.signals.error.connect(self.on_summary_error)
        return self._start(worker)

    def on_summary_result(self, node_id, summary):
        if summary is None:
            self.notify(NO_THREADS_MESSAGE, "warning")
            return
        node = self.store.find_node(node_id)
        if node is None:
            logger.warning("Node %s was deleted before its summary arrived", node_id)
            return
        self.store.update_node_data(node_id, node.data.evolve(content=summary), replace=True)
        self.notify("Summary generated successfully!", "info")

    def on_summary_error(self, node_id, error):
        self.notify(f"Failed to generate summary: {error}", "error")

    def zen_thread(self):
        """The selected node's thread, oldest first."""
        return select_node_and_parents(self.store.get_nodes(), self.store.get_edges())

    def add_text_to_thread(self, text):
        """Add a text node below the selection and make it the new selection."""
        selected = self.store.selected_node()
        node = self.registry.create(NodeKind.TEXT, data={"content": text})
        self.store.add_node(node)
        if selected is not None:
            self.store.connect({"source": selected.id, "target": node.id})
        return self.store.select_node(node.id)


def build_parser():
    parser = argparse.ArgumentParser(description="Chat with a conversation mind map from the command line.")
    parser.add_argument("mind_map", help="Path to a mind map JSON file")
    parser.add_argument("--node", help="Id of the node to act on (defaults to the selected node)")
    parser.add_argument("--model", help="Model name, AI_MODELS display name or provider::model")
    parser.add_argument("--save", action="store_true", help="Write the updated mind map back to its file")

    action = parser.add_mutually_exclusive_group()
    action.add_argument("--message", help="Submit a message on a chat node")
    action.add_argument("--summarize", action="store_true", help="Generate the summary of a summary node")
    action.add_argument("--show-thread", action="store_true", help="Print the node's thread (default)")
    return parser


def print_thread(nodes, edges, node):
    for message in node_thread_messages(node, nodes, edges):
        print(f"[{message['role']}]\n{message['content']}\n")


def run_cli(argv=None):
    args = build_parser().parse_args(argv)
    setup_logging()

    registry = build_default_registry()
    try:
        mind_map = load_mind_map(args.mind_map, registry)
    except MindMapError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    store = GraphStore(mind_map.nodes, mind_map.edges)
    manager = ConversationManager(store, registry)

    node = store.find_node(args.node) if args.node else store.selected_node()
    if node is None:
        print("Error: no such node, and no node is selected", file=sys.stderr)
        return 1
    store.select_node(node.id)

    try:
        if args.message:
            manager.submit_message(node.id, args.message, args.model)
            node = store.get_node(node.id)
            if not node.data.ai_response:
                return 1
            print(node.data.ai_response["content"])
        elif args.summarize:
            manager.summarize(node.id, args.model)
            print(store.get_node(node.id).data.content)
        else:
            print_thread(store.get_nodes(), store.get_edges(), node)
    except MindMapError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.save:
        updated = clone_mind_map(mind_map, store.get_nodes(), store.get_edges(), mind_map.viewport)
        path = save_mind_map(updated, args.mind_map)
        save_active_file_state(remember_file(load_active_file_state(), path.resolve()))
    return 0


if __name__ == "__main__":
    sys.exit(run_cli())
