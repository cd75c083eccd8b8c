# summaries.py

import logging

import shared_utils
from chat_parsing import collect_parent_threads, thread_to_chat_messages
from config import CONSOLIDATION_PROMPT, THREAD_SUMMARY_PROMPT

logger = logging.getLogger(__name__)


def format_conversation(messages):
    """Render messages as a plain transcript for a single-shot prompt."""
    return "\n\n".join(
        f"{message['role'].capitalize()}: {message['content']}" for message in messages
    )


def summarize_thread(messages, model, generate):
    prompt = THREAD_SUMMARY_PROMPT.format(conversation=format_conversation(messages))
    return generate(model, prompt).strip()


def consolidate_summaries(summaries, model, generate):
    sections = "\n\n".join(
        f"Thread {index}:\n{summary}" for index, summary in enumerate(summaries, start=1)
    )
    prompt = CONSOLIDATION_PROMPT.format(count=len(summaries), summaries=sections)
    return generate(model, prompt).strip()


def generate_summary(boundary_node, nodes, edges, model, generate=None):
    """
    Summarize every thread that feeds into `boundary_node`.

    Each thread is summarized on its own, one call per thread in parent
    edge order, then the summaries are merged by one more call. Returns None
    when there is nothing to summarize; that is not an error.
    """
    generate = generate or shared_utils.generate

    threads = collect_parent_threads(boundary_node, nodes, edges)
    conversations = [thread_to_chat_messages(thread) for thread in threads]
    conversations = [messages for messages in conversations if messages]
    if not conversations:
        logger.info("No parent threads to summarize for node %s", boundary_node.id)
        return None

    summaries = []
    for index, messages in enumerate(conversations, start=1):
        logger.info("Summarizing thread %d of %d for node %s", index, len(conversations), boundary_node.id)
        summaries.append(summarize_thread(messages, model, generate))

    if len(summaries) == 1:
        return summaries[0]
    return consolidate_summaries(summaries, model, generate)
