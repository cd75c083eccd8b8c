"""
node_models.py

Data shapes for the conversation mind map.

- Node payloads ("node data"), one class per node kind.
- Node and Edge records as stored in the graph.
- Chat messages, which are plain {"role", "content"} dicts.

Payloads follow replace semantics: the helpers below never change the
instance they are called on. They return a new, deep-copied payload which
the caller hands to the graph store as a full replacement.

Persisted field names are camelCase ("showDebug", "aiResponse", ...) so
files written by earlier versions load unchanged.
"""

from __future__ import annotations

import copy
import mimetypes
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import DEFAULT_MODEL
from errors import NodeLockedError

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
MESSAGE_ROLES = (USER_ROLE, ASSISTANT_ROLE)


def make_message(role, content):
    """Build a chat message. Only user and assistant roles exist in the core."""
    if role not in MESSAGE_ROLES:
        raise ValueError(f"Unsupported message role: {role!r}")
    return {"role": role, "content": "" if content is None else str(content)}


def _coerce_message(message, default_role):
    if isinstance(message, str):
        return make_message(default_role, message)
    return make_message(message.get("role") or default_role, message.get("content", ""))


class NodeKind(str, Enum):
    """Type tags of the built-in node kinds, as persisted in the "type" field."""

    TEXT = "text-node"
    FILE = "file-node"
    CHAT = "llm-prompt"
    SUMMARY = "summary-node"


def kind_name(kind):
    return kind.value if isinstance(kind, Enum) else str(kind)


@dataclass
class BaseNodeData:
    """
    Contract shared by every payload.

    content:
      - the text of the node (prompt, note, file contents or summary)
    show_debug:
      - UI toggle, carried through untouched
    extra:
      - persisted keys this class does not know about, kept for round-trip
    """

    content: str = ""
    show_debug: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)

    label = "Node"
    is_thread_boundary = False

    # (attribute, persisted key) pairs
    PERSISTED_FIELDS = (("content", "content"), ("show_debug", "showDebug"))

    def __post_init__(self):
        self.content = "" if self.content is None else str(self.content)
        self.show_debug = bool(self.show_debug)
        self.extra = dict(self.extra or {})

    @classmethod
    def from_dict(cls, data=None):
        """Build a payload from persisted or partial input. Nested values are deep-copied."""
        if isinstance(data, BaseNodeData):
            data = data.to_dict()
        remaining = copy.deepcopy(dict(data or {}))

        kwargs = {}
        for attr, key in cls.PERSISTED_FIELDS:
            if key in remaining:
                kwargs[attr] = remaining.pop(key)
            elif attr in remaining:
                kwargs[attr] = remaining.pop(attr)

        # Derived from the class, never trusted from input
        remaining.pop("isThreadBoundary", None)
        remaining.pop("is_thread_boundary", None)
        remaining.pop("extra", None)

        kwargs["extra"] = remaining
        return cls(**kwargs)

    def to_dict(self):
        data = copy.deepcopy(self.extra)
        for attr, key in self.PERSISTED_FIELDS:
            data[key] = copy.deepcopy(getattr(self, attr))
        data["isThreadBoundary"] = self.is_thread_boundary
        return data

    def evolve(self, **changes):
        """Return a new payload with `changes` applied; this instance is left as is."""
        return replace(copy.deepcopy(self), **copy.deepcopy(changes))


@dataclass
class BaseChatNodeData(BaseNodeData):
    """
    Payload which contributes messages when building chat history
    or calling the chat endpoint of the completion backend.
    """

    model: str = DEFAULT_MODEL

    PERSISTED_FIELDS = BaseNodeData.PERSISTED_FIELDS + (("model", "model"),)

    def __post_init__(self):
        super().__post_init__()
        self.model = self.model or DEFAULT_MODEL

    def has_chat_content(self):
        return bool(self.content.strip())

    def to_chat_message(self):
        return make_message(USER_ROLE, self.content)

    def to_chat_array(self) -> List[Dict[str, str]]:
        if not self.has_chat_content():
            return []
        return [self.to_chat_message()]


def is_chat_contributor(data):
    """True when `data` can produce messages and currently has something to say."""
    return isinstance(data, BaseChatNodeData) and data.has_chat_content()


@dataclass
class TextNodeData(BaseChatNodeData):
    label = "Text Node"


@dataclass
class FileNodeData(BaseChatNodeData):
    """
    A text file loaded into the graph. Once a file is loaded the node is
    locked and its content stays fixed until the file is cleared.
    """

    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    locked: bool = False

    label = "File Node"

    PERSISTED_FIELDS = BaseChatNodeData.PERSISTED_FIELDS + (
        ("file_name", "fileName"),
        ("mime_type", "mimeType"),
        ("locked", "locked"),
    )

    def __post_init__(self):
        super().__post_init__()
        self.locked = bool(self.locked)

    @classmethod
    def from_dict(cls, data=None):
        if isinstance(data, dict) and "file" in data and "fileName" not in data:
            data = dict(data)
            data["fileName"] = data.pop("file")
        return super().from_dict(data)

    def load_file(self, path, encoding="utf-8"):
        if self.locked:
            raise NodeLockedError(f"File '{self.file_name}' is already loaded; clear it first")
        path = Path(path)
        content = path.read_text(encoding=encoding)
        mime_type = mimetypes.guess_type(path.name)[0] or "text/plain"
        return self.evolve(content=content, file_name=path.name, mime_type=mime_type, locked=True)

    def clear_file(self):
        return self.evolve(content="", file_name=None, mime_type=None, locked=False)


@dataclass
class ChatNodeData(BaseChatNodeData):
    """
    A user prompt and, once generated, the assistant's reply.

    locked:
      - set when the user submits the prompt, so the reply stays aligned
        with the message that produced it. Unlocking drops the reply.
    ai_response:
      - the assistant message, only meaningful while locked
    """

    locked: bool = False
    ai_response: Optional[Dict[str, str]] = None

    label = "Chat Message"

    PERSISTED_FIELDS = BaseChatNodeData.PERSISTED_FIELDS + (
        ("locked", "locked"),
        ("ai_response", "aiResponse"),
    )

    def __post_init__(self):
        super().__post_init__()
        self.locked = bool(self.locked)
        if self.ai_response is not None:
            self.ai_response = _coerce_message(self.ai_response, ASSISTANT_ROLE)

    @property
    def user_message(self):
        return self.to_chat_message()

    def add_user_message(self, message):
        if self.locked:
            raise NodeLockedError("Message already submitted; edit it before sending again")
        content = message if isinstance(message, str) else message.get("content", "")
        return self.evolve(content=content, locked=True, ai_response=None)

    def add_ai_message(self, message):
        return self.evolve(ai_response=_coerce_message(message, ASSISTANT_ROLE))

    def edit_user_message(self):
        return self.evolve(locked=False, ai_response=None)

    def to_chat_array(self):
        if not self.has_chat_content():
            return []
        messages = [self.to_chat_message()]
        if self.ai_response:
            messages.append(dict(self.ai_response))
        return messages


@dataclass
class SummaryNodeData(BaseChatNodeData):
    """Stands in for every thread feeding into it. Empty until generated or typed."""

    label = "Summary Node"
    is_thread_boundary = True


@dataclass
class Node:
    id: str
    kind: str
    data: BaseNodeData
    position: Dict[str, Any] = field(default_factory=lambda: {"x": 0, "y": 0})
    selected: bool = False
    # UI fields (measured size, drag handle, ...) kept for round-trip only
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_thread_boundary(self):
        return bool(self.data.is_thread_boundary)

    def with_data(self, data):
        return replace(self, data=data)

    def to_dict(self):
        node = copy.deepcopy(self.extra)
        node.update({
            "id": self.id,
            "type": kind_name(self.kind),
            "position": copy.deepcopy(self.position),
            "data": self.data.to_dict(),
        })
        if self.selected:
            node["selected"] = True
        return node


@dataclass
class Edge:
    """Directed parent -> child relation. `source` is the earlier turn."""

    id: str
    source: str
    target: str
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw):
        raw = copy.deepcopy(dict(raw))
        source = raw.pop("source")
        target = raw.pop("target")
        edge_id = raw.pop("id", None) or f"{source}->{target}"
        return cls(id=edge_id, source=source, target=target, extra=raw)

    def to_dict(self):
        edge = copy.deepcopy(self.extra)
        edge.update({"id": self.id, "source": self.source, "target": self.target})
        return edge
