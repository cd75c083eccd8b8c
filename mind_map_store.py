"""
mind_map_store.py

Loads and saves mind maps as JSON files, plus the small "active file"
state that remembers which map was open last.

File format (one mind map):

{
  "id": 1718000000000,
  "name": "Untitled",
  "description": "No description",
  "fileName": "untitled.json",
  "nodes": [...],          # Node.to_dict()
  "edges": [...],          # Edge.to_dict()
  "viewport": {"x": 0, "y": 0, "zoom": 1},
  "created_at": "...",     # ISO-8601, UTC
  "updated_at": "..."
}

Nodes are rebuilt through the NodeRegistry. A node whose type has no
factory stops the load with UnknownNodeTypeError instead of being dropped.
"""

from __future__ import annotations

import copy
import json
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import config
from errors import PersistenceError
from node_models import Edge, Node

logger = logging.getLogger(__name__)


def _now():
    return datetime.now(timezone.utc).isoformat()


def _default_viewport():
    return {"x": 0, "y": 0, "zoom": 1}


@dataclass
class MindMap:
    id: int
    name: str = "Untitled"
    description: str = "No description"
    file_name: str = ""
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    viewport: Dict[str, Any] = field(default_factory=_default_viewport)
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)


def new_mind_map(name="Untitled"):
    return MindMap(id=int(time.time() * 1000), name=name)


def clone_mind_map(mind_map, nodes, edges, viewport=None):
    """Copy `mind_map` (or start a new one) with the given graph contents."""
    next_map = copy.deepcopy(mind_map) if mind_map is not None else new_mind_map()
    next_map.nodes = list(nodes)
    next_map.edges = list(edges)
    if viewport is not None:
        next_map.viewport = dict(viewport)
    next_map.updated_at = _now()
    return next_map


def mind_map_to_dict(mind_map):
    return {
        "id": mind_map.id,
        "name": mind_map.name,
        "description": mind_map.description,
        "fileName": mind_map.file_name,
        "nodes": [node.to_dict() for node in mind_map.nodes],
        "edges": [edge.to_dict() for edge in mind_map.edges],
        "viewport": dict(mind_map.viewport),
        "created_at": mind_map.created_at,
        "updated_at": mind_map.updated_at,
    }


def mind_map_from_dict(raw, registry):
    if not isinstance(raw, Mapping):
        raise PersistenceError("Mind map must be a JSON object")

    try:
        nodes = registry.restore_nodes(raw.get("nodes") or [])
    except (TypeError, ValueError) as exc:
        raise PersistenceError(f"Malformed node in mind map: {exc}") from exc
    try:
        edges = [Edge.from_dict(edge) for edge in raw.get("edges") or []]
    except (KeyError, TypeError, ValueError) as exc:
        raise PersistenceError(f"Malformed edge in mind map: {exc}") from exc

    return MindMap(
        id=raw.get("id") or int(time.time() * 1000),
        name=raw.get("name") or "Untitled",
        description=raw.get("description") or "",
        file_name=raw.get("fileName") or "",
        nodes=nodes,
        edges=edges,
        viewport=dict(raw.get("viewport") or _default_viewport()),
        created_at=raw.get("created_at") or _now(),
        updated_at=raw.get("updated_at") or _now(),
    )


def _read_json(path):
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise PersistenceError(f"Failed to read file: {exc}", path) from exc
    except json.JSONDecodeError as exc:
        raise PersistenceError(f"Failed to parse JSON: {exc}", path) from exc


def _write_json(path, data):
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as exc:
        raise PersistenceError(f"Failed to write file: {exc}", path) from exc


def load_mind_map(path, registry):
    path = Path(path)
    mind_map = mind_map_from_dict(_read_json(path), registry)
    if not mind_map.file_name:
        mind_map.file_name = path.name
    logger.info("Mind map loaded from: %s (%d nodes, %d edges)", path, len(mind_map.nodes), len(mind_map.edges))
    return mind_map


def save_mind_map(mind_map, path=None):
    """Write `mind_map` to `path`, or to DATA_DIR under its file name. Returns the path used."""
    if path is None:
        path = Path(config.DATA_DIR) / (mind_map.file_name or f"{mind_map.id}.json")
    path = Path(path)
    _write_json(path, mind_map_to_dict(mind_map))
    logger.info("Mind map saved to: %s", path)
    return path


@dataclass
class ActiveFileState:
    current_mind_map_path: Optional[str] = None
    recent_files: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            "currentMindMapPath": self.current_mind_map_path,
            "recentFiles": list(self.recent_files),
        }

    @classmethod
    def from_dict(cls, raw):
        if not isinstance(raw, Mapping):
            raise PersistenceError("Active file state must be a JSON object")
        recent = raw.get("recentFiles") or []
        return cls(
            current_mind_map_path=raw.get("currentMindMapPath"),
            recent_files=[str(item) for item in recent],
        )


def remember_file(state, path):
    """Make `path` the current map and move it to the front of the recent files."""
    path = str(path)
    recent = [path] + [item for item in state.recent_files if item != path]
    return ActiveFileState(current_mind_map_path=path, recent_files=recent[:config.MAX_RECENT_FILES])


def _active_file_state_path(config_dir=None):
    return Path(config_dir or config.CONFIG_DIR) / config.ACTIVE_FILE_STATE_NAME


def load_active_file_state(config_dir=None):
    path = _active_file_state_path(config_dir)
    if not path.exists():
        logger.info("No existing active file state found, using default")
        return ActiveFileState()
    state = ActiveFileState.from_dict(_read_json(path))
    logger.debug("Active file state loaded from: %s", path)
    return state


def save_active_file_state(state, config_dir=None):
    path = _active_file_state_path(config_dir)
    _write_json(path, state.to_dict())
    logger.debug("Active file state saved to: %s", path)
    return path
