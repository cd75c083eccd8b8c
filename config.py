# config.py
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Ollama server connection
OLLAMA_DOMAIN = os.getenv("OLLAMA_DOMAIN", "http://localhost")
OLLAMA_PORT = int(os.getenv("OLLAMA_PORT", "11434"))

# Runtime configuration
REQUEST_TIMEOUT = float(os.getenv("MIND_MAP_REQUEST_TIMEOUT", "120"))  # Seconds to wait on a chat/generate call
HEALTH_CHECK_TIMEOUT = 5  # Seconds to wait when listing local models
DEFAULT_MODEL = os.getenv("MIND_MAP_DEFAULT_MODEL", "mistral:7b")
LOG_LEVEL = os.getenv("MIND_MAP_LOG_LEVEL", "INFO")

# Where mind maps and the active file state live
DATA_DIR = Path(os.getenv("MIND_MAP_DATA_DIR", Path.home() / ".ai-mind-map" / "maps"))
CONFIG_DIR = Path(os.getenv("MIND_MAP_CONFIG_DIR", Path.home() / ".ai-mind-map"))
ACTIVE_FILE_STATE_NAME = "active_file_state.json"
MAX_RECENT_FILES = 10

# Available AI models
# Bare model names (e.g. "llama3:latest") are sent to Ollama.
# "provider::model" strings pick a provider explicitly (e.g. "openai::gpt-4.1").
AI_MODELS = {
    "Mistral 7B (Ollama)": {
        "provider": "ollama",
        "model": "mistral:7b",
        "options": {"temperature": 0.8}
    },
    "Llama 3.1 8B (Ollama)": {
        "provider": "ollama",
        "model": "llama3.1:8b",
        "options": {"temperature": 0.8}
    },
    "Qwen 2.5 14B (Ollama)": {
        "provider": "ollama",
        "model": "qwen2.5:14b",
        "options": {}
    },
    "GPT 4.1 (OpenAI API)": {
        "provider": "openai",
        "model": "gpt-4.1",
        "options": {"temperature": 1}
    },
    "Claude 4.5 Sonnet (Anthropic API)": {
        "provider": "anthropic",
        "model": "claude-sonnet-4-5-20250929",
        "options": {"temperature": 1, "max_tokens": 4000}
    },
    "gemma3:12b": "gemma3:12b",
    "deepseek-r1:8b": "deepseek-r1:8b",
}

# Summarization prompts. Each thread is summarized on its own, then the
# per-thread summaries are merged in thread order.
THREAD_SUMMARY_PROMPT = """Summarize the following conversation thread. Keep every fact, decision and open question that a reader would need to continue the conversation. Do not add commentary.

{conversation}

Summary:"""

CONSOLIDATION_PROMPT = """The following are summaries of {count} separate conversation threads that are being merged into one. Combine them into a single summary that keeps the important details of every thread and notes where they agree or differ.

{summaries}

Combined summary:"""


def ollama_base_url():
    """Return the Ollama API base URL built from the configured domain and port."""
    return f"{OLLAMA_DOMAIN.rstrip('/')}:{OLLAMA_PORT}"


def setup_logging(level=None):
    """Configure console logging for the application."""
    logging.basicConfig(
        level=getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S"
    )
