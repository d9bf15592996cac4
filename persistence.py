# persistence.py
"""Snapshot storage for the persisted part of the workspace.

Only five keys are ever written: ``canvases``, ``apiKeys``, ``settings``,
``personas`` and ``lastUsedModelId``. Working copies and the selection stay
in memory.
"""

import copy
import json
import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

PERSISTED_KEYS = ("canvases", "apiKeys", "settings", "personas", "lastUsedModelId")


def empty_state():
    return {
        "canvases": [],
        "apiKeys": {},
        "settings": {},
        "personas": [],
        "lastUsedModelId": None,
    }


def _partialize(state):
    snapshot = empty_state()
    for key in PERSISTED_KEYS:
        if key in state:
            snapshot[key] = state[key]
    return snapshot


class MemoryStorage:
    """Keeps the last saved snapshot in memory."""

    def __init__(self, state=None):
        self._state = _partialize(copy.deepcopy(state)) if state else empty_state()
        self.save_count = 0

    def load_all(self):
        return copy.deepcopy(self._state)

    def save_all(self, state):
        self._state = _partialize(copy.deepcopy(state))
        self.save_count += 1


class JsonFileStorage:
    """Stores the snapshot as a single UTF-8 JSON document."""

    def __init__(self, path):
        self.path = Path(path)

    def load_all(self):
        if not self.path.exists():
            return empty_state()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("Could not read %s, starting empty: %s", self.path, e)
            return empty_state()
        if not isinstance(data, dict):
            logger.error("Unexpected snapshot format in %s, starting empty", self.path)
            return empty_state()
        return _partialize(data)

    def save_all(self, state):
        snapshot = _partialize(state)
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)

        # Readers only ever see a complete file
        fd, tmp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.debug("Saved %d canvases to %s", len(snapshot["canvases"]), self.path)
