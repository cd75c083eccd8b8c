# shared_utils.py

import logging
import os
import re
from datetime import datetime, timezone

import requests
from anthropic import Anthropic
from dotenv import load_dotenv
from openai import OpenAI

from config import (
    AI_MODELS,
    DEFAULT_MODEL,
    HEALTH_CHECK_TIMEOUT,
    REQUEST_TIMEOUT,
    ollama_base_url
)
from errors import CompletionError
from node_models import ASSISTANT_ROLE, USER_ROLE, make_message

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "ollama"

# Cached SDK clients, created on first use
_openai_client = None
_anthropic_client = None


def get_openai_client():
    """Return a cached OpenAI client, or None when no API key is configured."""
    global _openai_client

    if _openai_client is not None:
        return _openai_client

    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        return None

    base_url = os.getenv("OPENAI_BASE_URL") or None
    _openai_client = OpenAI(api_key=api_key, base_url=base_url)
    return _openai_client


def get_anthropic_client():
    """Return a cached Anthropic client, or None when no API key is configured."""
    global _anthropic_client

    if _anthropic_client is not None:
        return _anthropic_client

    api_key = os.getenv("ANTHROPIC_API_KEY")
    if not api_key:
        return None

    _anthropic_client = Anthropic(api_key=api_key)
    return _anthropic_client


def format_reasoning_response(content):
    """Split <think> blocks emitted by reasoning models away from the final answer."""
    cleaned_content = content or ""
    if not isinstance(cleaned_content, str):
        cleaned_content = str(cleaned_content)

    reasoning = [
        match.strip()
        for _, match in re.findall(
            r'<(think|thinking)>(.*?)</\1>',
            cleaned_content,
            flags=re.DOTALL | re.IGNORECASE
        )
        if match and match.strip()
    ]
    cleaned_content = re.sub(
        r'<(think|thinking)>.*?</\1>',
        '',
        cleaned_content,
        flags=re.DOTALL | re.IGNORECASE
    ).strip()

    reasoning_text = "\n".join(reasoning) or None
    # Never hand back an empty answer when the model only produced reasoning
    result = {"role": ASSISTANT_ROLE, "content": cleaned_content or reasoning_text or ""}
    if reasoning_text:
        result["reasoning"] = reasoning_text
    return result


def build_error_response(message):
    """Return a standardized error response payload."""
    return {
        "role": "system",
        "content": str(message) if message else "An unknown error occurred"
    }


def normalize_response(response):
    """Normalize provider responses to a standard dict structure."""
    if response is None:
        return build_error_response("Error: Provider returned no response")

    if isinstance(response, dict):
        normalized = dict(response)
        role = normalized.get("role", ASSISTANT_ROLE) or ASSISTANT_ROLE
        content = normalized.get("content")

        if content is None and "error" in normalized:
            content = normalized["error"]
            role = "system"
        if role != "system" and (not isinstance(content, str) or not content.strip()):
            return build_error_response("Error: Provider returned no response")

        normalized["role"] = role
        normalized["content"] = content
        return normalized

    if isinstance(response, str):
        stripped = response.strip()
        if not stripped:
            return build_error_response("Error: Provider returned no response")
        # Handlers report failures as {"error": ...}; text is always a reply
        return format_reasoning_response(response)

    return build_error_response(f"Error: Unexpected response type {type(response).__name__}")


def call_ollama_chat(messages, model, options=None):
    """Call Ollama's /api/chat endpoint with the full message history."""
    payload = {
        "model": model,
        "messages": messages,
        "stream": False
    }
    if options:
        payload["options"] = options

    data = _post_ollama("/api/chat", payload)
    if "error" in data:
        return data

    message = data.get("message")
    if not isinstance(message, dict) or not isinstance(message.get("content"), str):
        return build_error_response("Error: Unexpected response structure from Ollama chat")
    return message["content"]


def call_ollama_generate(prompt, model, options=None):
    """Call Ollama's /api/generate endpoint: a single prompt, no message history."""
    payload = {
        "model": model,
        "prompt": prompt,
        "stream": False
    }
    if options:
        payload["options"] = options

    data = _post_ollama("/api/generate", payload)
    if "error" in data:
        return data

    generated = data.get("response")
    if not isinstance(generated, str):
        return build_error_response("Error: Unexpected response structure from Ollama generate")
    return generated


def _post_ollama(path, payload):
    url = f"{ollama_base_url()}{path}"
    logger.info("Sending to Ollama %s (model: %s)", path, payload.get("model"))

    try:
        response = requests.post(url, json=payload, timeout=REQUEST_TIMEOUT)
    except requests.exceptions.Timeout:
        logger.error("Request to Ollama timed out after %ss", REQUEST_TIMEOUT)
        return {"error": "Error: Request to Ollama timed out"}
    except requests.exceptions.RequestException as e:
        logger.error("Network error talking to Ollama: %s", e)
        return {"error": f"Error: Network error - {e}"}

    if response.status_code != 200:
        error_msg = f"Error: Ollama API error {response.status_code}: {response.text}"
        logger.error(error_msg)
        if response.status_code == 404:
            logger.error("Model not found. Pull it with `ollama pull %s`.", payload.get("model"))
        return {"error": error_msg}

    try:
        data = response.json()
    except ValueError:
        return {"error": "Error: Ollama returned a response that is not JSON"}
    if not isinstance(data, dict):
        return {"error": "Error: Unexpected response structure from Ollama"}
    return data


def call_openai_api(messages, model, options=None):
    """Call an OpenAI-compatible chat completions endpoint."""
    client = get_openai_client()
    if not client:
        return {"error": "Error: OPENAI_API_KEY not found in environment variables"}

    options = options or {}
    request_kwargs = {
        "model": model,
        "messages": messages
    }
    for key in ("temperature", "top_p", "max_tokens"):
        if key in options:
            request_kwargs[key] = options[key]

    try:
        response = client.chat.completions.create(**request_kwargs)
    except Exception as e:
        logger.error("Error calling OpenAI API: %s", e)
        return {"error": f"Error calling OpenAI API: {e}"}

    if not response.choices:
        return {"error": "Error: OpenAI returned no choices"}
    return response.choices[0].message.content


def call_claude_api(messages, model, options=None):
    """Call the Anthropic Messages API."""
    client = get_anthropic_client()
    if not client:
        return {"error": "Error: ANTHROPIC_API_KEY not found in environment variables"}

    options = options or {}
    request_kwargs = {
        "model": model,
        "max_tokens": options.get("max_tokens", 4000),
        "messages": messages
    }
    if "temperature" in options:
        request_kwargs["temperature"] = options["temperature"]

    try:
        response = client.messages.create(**request_kwargs)
    except Exception as e:
        logger.error("Error calling Claude API: %s", e)
        return {"error": f"Error calling Claude API: {e}"}

    text_blocks = [
        getattr(block, "text", "")
        for block in response.content
        if getattr(block, "type", None) == "text"
    ]
    return "\n".join(text_blocks).strip()


def _payload_messages(payload):
    """Chat handlers receive the history; generate requests become one user message."""
    if payload.get("mode") == "generate":
        return [make_message(USER_ROLE, payload["prompt"])]
    return payload["messages"]


def _ollama_provider(payload):
    if payload.get("mode") == "generate":
        return call_ollama_generate(payload["prompt"], payload["model_id"], payload.get("options"))
    return call_ollama_chat(payload["messages"], payload["model_id"], payload.get("options"))


def _openai_provider(payload):
    return call_openai_api(_payload_messages(payload), payload["model_id"], payload.get("options"))


def _anthropic_provider(payload):
    return call_claude_api(_payload_messages(payload), payload["model_id"], payload.get("options"))


PROVIDER_REGISTRY = {
    "ollama": {
        "handler": _ollama_provider
    },
    "openai": {
        "handler": _openai_provider
    },
    "anthropic": {
        "handler": _anthropic_provider
    }
}


def resolve_model(model):
    """
    Resolve a model selection into provider, model id and options.

    Accepts a display name from AI_MODELS, a "provider::model" string, or a
    bare model name (sent to Ollama).
    """
    model = model or DEFAULT_MODEL
    model_entry = AI_MODELS.get(model, model)
    provider = None
    options = {}
    fallback_provider = None
    fallback_model = None

    if isinstance(model_entry, dict):
        provider = model_entry.get("provider")
        model_id = model_entry.get("model", model)
        options = dict(model_entry.get("options", {}))
        fallback_provider = model_entry.get("fallback_provider")
        fallback_model = model_entry.get("fallback_model")
    else:
        model_id = model_entry if model_entry else model
        if isinstance(model_id, str) and "::" in model_id:
            provider, model_id = model_id.split("::", 1)
            provider = provider.lower()

    return {
        "provider": provider or DEFAULT_PROVIDER,
        "model_id": model_id,
        "options": options,
        "fallback_provider": fallback_provider,
        "fallback_model": fallback_model
    }


def invoke_provider(provider_name, payload):
    """Invoke the appropriate provider based on configuration."""
    provider_key = provider_name.lower() if provider_name else DEFAULT_PROVIDER
    attempted = payload.setdefault("attempted_providers", [])
    if provider_key not in attempted:
        attempted.append(provider_key)

    handler_entry = PROVIDER_REGISTRY.get(provider_key)
    if not handler_entry:
        return build_error_response(f"Error: Unknown provider '{provider_key}'")

    try:
        raw_result = handler_entry["handler"](payload)
    except Exception as exc:
        logger.exception("Error while invoking provider '%s'", provider_key)
        return build_error_response(f"Error: Provider '{provider_key}' failed: {exc}")

    if isinstance(raw_result, dict) and "error" in raw_result and "content" not in raw_result:
        raw_result = build_error_response(raw_result["error"])
    normalized = normalize_response(raw_result)
    normalized.setdefault("provider", provider_key)

    fallback_key = payload.get("fallback_provider")
    if fallback_key and normalized.get("role") == "system":
        fallback_key = fallback_key.lower()
        if fallback_key not in attempted:
            logger.warning("Provider '%s' failed, falling back to '%s'", provider_key, fallback_key)
            fallback_payload = dict(payload)
            fallback_payload["model_id"] = payload.get("fallback_model") or payload["model_id"]
            return invoke_provider(fallback_key, fallback_payload)

    return normalized


def _request(mode, model, messages=None, prompt=None):
    resolved = resolve_model(model)
    payload = dict(resolved, mode=mode, messages=messages, prompt=prompt)
    response = invoke_provider(resolved["provider"], payload)

    if response.get("role") == "system":
        raise CompletionError(
            response.get("content") or "Completion failed",
            provider=response.get("provider", resolved["provider"]),
            model=resolved["model_id"]
        )
    return response


def chat(model, messages):
    """Send the message history to `model` and return the assistant's reply message."""
    messages = [make_message(message["role"], message["content"]) for message in messages]
    logger.info("Chat request to %s with %d messages", model, len(messages))
    response = _request("chat", model, messages=messages)
    return make_message(ASSISTANT_ROLE, response["content"])


def generate(model, prompt):
    """Single-shot completion of `prompt`, without any message history."""
    logger.info("Generate request to %s (%d characters)", model, len(prompt))
    response = _request("generate", model, prompt=prompt)
    return response["content"]


def list_ollama_models():
    response = requests.get(f"{ollama_base_url()}/api/tags", timeout=HEALTH_CHECK_TIMEOUT)
    response.raise_for_status()
    models = []
    for item in response.json().get("models", []):
        name = item.get("name")
        if isinstance(name, str) and name.strip():
            models.append({
                "name": name.strip(),
                "size": item.get("size", 0),
                "modified_at": item.get("modified_at", "")
            })
    return models


def check_ollama_health():
    """Report whether the Ollama server answers and which models it has. Never raises."""
    checked_at = datetime.now(timezone.utc).isoformat()
    try:
        models = list_ollama_models()
    except (requests.exceptions.RequestException, ValueError, AttributeError) as exc:
        logger.warning("Ollama is unavailable: %s", exc)
        return {
            "isAvailable": False,
            "models": [],
            "lastChecked": checked_at,
            "errorMessage": str(exc)
        }

    logger.info("Ollama is available (%d models)", len(models))
    return {
        "isAvailable": True,
        "models": models,
        "lastChecked": checked_at,
        "errorMessage": None
    }
