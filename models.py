# models.py
"""Canvas entities: nodes, edges, attachments, personas and canvases.

Nodes form a tagged union (``PromptNode | ResponseNode | MergeNode``) keyed by
their ``kind``. Every entity round-trips through plain dicts using the
camelCase keys of the persisted snapshot.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from config import DEFAULT_SETTINGS


class NodeStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    COMPLETE = "complete"
    ERROR = "error"


_clock_lock = threading.Lock()
_last_timestamp = 0


def timestamp_ms():
    """Milliseconds since the epoch, strictly increasing within the process."""
    global _last_timestamp
    with _clock_lock:
        now = int(time.time() * 1000)
        if now <= _last_timestamp:
            now = _last_timestamp + 1
        _last_timestamp = now
        return now


def new_id():
    return uuid.uuid4().hex


@dataclass
class Position:
    x: float = 0.0
    y: float = 0.0

    def offset(self, dx, dy):
        return Position(self.x + dx, self.y + dy)

    def to_dict(self):
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(x=data.get("x", 0.0), y=data.get("y", 0.0))


def as_position(value):
    """Accept a Position, an ``{"x", "y"}`` dict or an ``(x, y)`` pair."""
    if isinstance(value, Position):
        return Position(value.x, value.y)
    if isinstance(value, dict):
        return Position.from_dict(value)
    x, y = value
    return Position(x, y)


@dataclass
class Attachment:
    id: str
    kind: str  # "image" or "file"
    name: str
    mime_type: str
    payload: str  # base64 data URL

    @property
    def is_image(self):
        return self.kind == "image"

    def to_dict(self):
        return {
            "id": self.id,
            "kind": self.kind,
            "name": self.name,
            "mimeType": self.mime_type,
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data["id"],
            kind=data.get("kind", "file"),
            name=data.get("name", ""),
            mime_type=data.get("mimeType", ""),
            payload=data.get("payload", ""),
        )


@dataclass
class Persona:
    id: str
    name: str
    content: str
    description: Optional[str] = None
    color: Optional[str] = None

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "content": self.content,
            "description": self.description,
            "color": self.color,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            content=data.get("content", ""),
            description=data.get("description"),
            color=data.get("color"),
        )


@dataclass(kw_only=True)
class BaseNode:
    id: str
    content: str = ""
    status: NodeStatus = NodeStatus.IDLE
    hidden: bool = False
    created_at: int = field(default_factory=timestamp_ms)
    position: Position = field(default_factory=Position)

    kind = "base"

    def _common_dict(self):
        return {
            "id": self.id,
            "kind": self.kind,
            "content": self.content,
            "status": self.status.value,
            "hidden": self.hidden,
            "createdAt": self.created_at,
            "position": self.position.to_dict(),
        }

    @staticmethod
    def _common_kwargs(data):
        return {
            "id": data["id"],
            "content": data.get("content", ""),
            "status": NodeStatus(data.get("status", NodeStatus.IDLE.value)),
            "hidden": bool(data.get("hidden", False)),
            "created_at": data.get("createdAt", 0),
            "position": Position.from_dict(data.get("position")),
        }


@dataclass(kw_only=True)
class PromptNode(BaseNode):
    model_id: str
    attachments: List[Attachment] = field(default_factory=list)
    persona_id: Optional[str] = None

    kind = "prompt"

    @property
    def image_attachments(self):
        return [attachment for attachment in self.attachments if attachment.is_image]

    def to_dict(self):
        data = self._common_dict()
        data.update({
            "modelId": self.model_id,
            "attachments": [attachment.to_dict() for attachment in self.attachments],
            "personaId": self.persona_id,
        })
        return data

    @classmethod
    def from_dict(cls, data):
        return cls(
            model_id=data.get("modelId", ""),
            attachments=[Attachment.from_dict(item) for item in data.get("attachments") or []],
            persona_id=data.get("personaId"),
            **cls._common_kwargs(data),
        )


@dataclass(kw_only=True)
class ResponseNode(BaseNode):
    model_id: str
    prompt_id: str
    status: NodeStatus = NodeStatus.COMPLETE

    kind = "response"

    def to_dict(self):
        data = self._common_dict()
        data.update({"modelId": self.model_id, "promptId": self.prompt_id})
        return data

    @classmethod
    def from_dict(cls, data):
        return cls(
            model_id=data.get("modelId", ""),
            prompt_id=data.get("promptId", ""),
            **cls._common_kwargs(data),
        )


@dataclass(kw_only=True)
class MergeNode(BaseNode):
    source_ids: List[str] = field(default_factory=list)
    status: NodeStatus = NodeStatus.COMPLETE

    kind = "merge"

    def to_dict(self):
        data = self._common_dict()
        data["sourceIds"] = list(self.source_ids)
        return data

    @classmethod
    def from_dict(cls, data):
        return cls(source_ids=list(data.get("sourceIds") or []), **cls._common_kwargs(data))


Node = Union[PromptNode, ResponseNode, MergeNode]

NODE_TYPES = {
    PromptNode.kind: PromptNode,
    ResponseNode.kind: ResponseNode,
    MergeNode.kind: MergeNode,
}


def node_from_dict(data):
    node_type = NODE_TYPES.get(data.get("kind"))
    if node_type is None:
        raise ValueError(f"Unknown node kind: {data.get('kind')!r}")
    return node_type.from_dict(data)


@dataclass
class Edge:
    source: str
    target: str
    id: str = ""

    def __post_init__(self):
        if not self.id:
            self.id = edge_id(self.source, self.target)

    def to_dict(self):
        return {"id": self.id, "source": self.source, "target": self.target}

    @classmethod
    def from_dict(cls, data):
        return cls(source=data["source"], target=data["target"], id=data.get("id", ""))


def edge_id(source, target):
    return f"e-{source}-{target}"


@dataclass
class Canvas:
    id: str
    name: str
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    created_at: int = field(default_factory=timestamp_ms)
    updated_at: int = 0

    def __post_init__(self):
        if not self.updated_at:
            self.updated_at = self.created_at

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            nodes=[node_from_dict(item) for item in data.get("nodes") or []],
            edges=[Edge.from_dict(item) for item in data.get("edges") or []],
            created_at=data.get("createdAt", 0),
            updated_at=data.get("updatedAt", 0),
        )


@dataclass
class AppSettings:
    theme: str = DEFAULT_SETTINGS["theme"]
    show_all_models: bool = DEFAULT_SETTINGS["showAllModels"]
    llm_council: bool = DEFAULT_SETTINGS["llmCouncil"]
    memory_search: bool = DEFAULT_SETTINGS["memorySearch"]
    panning_speed: float = DEFAULT_SETTINGS["panningSpeed"]

    _KEYS = {
        "theme": "theme",
        "showAllModels": "show_all_models",
        "llmCouncil": "llm_council",
        "memorySearch": "memory_search",
        "panningSpeed": "panning_speed",
    }

    def to_dict(self) -> Dict[str, Any]:
        return {key: getattr(self, attr) for key, attr in self._KEYS.items()}

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(**{attr: data[key] for key, attr in cls._KEYS.items() if key in data})
