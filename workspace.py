# workspace.py
"""The repository object that owns every piece of canvas state.

A single ``Workspace`` is shared by the graph store, the orchestrator and the
canvas manager. The active canvas is edited through a working copy of its
nodes and edges; ``commit`` snapshots that copy back into the canvas record
and hands the persisted fields to the storage collaborator.
"""

import copy
import logging

from models import AppSettings, Canvas, Persona, new_id, timestamp_ms

logger = logging.getLogger(__name__)


class Workspace:
    def __init__(self, storage):
        self.storage = storage

        self.canvases = []
        self.current_canvas_id = None
        self.nodes = []
        self.edges = []

        self.api_keys = {}
        self.env_api_keys = {}  # never persisted
        self.settings = AppSettings()
        self.personas = []
        self.last_used_model_id = None

        # Transient state, never persisted
        self.selected_node_ids = []
        self.generation = 0
        self.dirty = False

    @classmethod
    def from_storage(cls, storage):
        workspace = cls(storage)
        workspace.load()
        return workspace

    def load(self):
        """Replace persisted state with whatever the storage holds."""
        state = self.storage.load_all()
        self.canvases = [Canvas.from_dict(item) for item in state.get("canvases") or []]
        self.api_keys = dict(state.get("apiKeys") or {})
        self.settings = AppSettings.from_dict(state.get("settings"))
        self.personas = [Persona.from_dict(item) for item in state.get("personas") or []]
        self.last_used_model_id = state.get("lastUsedModelId")
        self.switch_canvas(None)
        logger.info("Loaded %d canvases, %d personas", len(self.canvases), len(self.personas))

    def to_state(self):
        return {
            "canvases": [canvas.to_dict() for canvas in self.canvases],
            "apiKeys": dict(self.api_keys),
            "settings": self.settings.to_dict(),
            "personas": [persona.to_dict() for persona in self.personas],
            "lastUsedModelId": self.last_used_model_id,
        }

    # Canvas bookkeeping

    def find_canvas(self, canvas_id):
        for canvas in self.canvases:
            if canvas.id == canvas_id:
                return canvas
        return None

    @property
    def current_canvas(self):
        if self.current_canvas_id is None:
            return None
        return self.find_canvas(self.current_canvas_id)

    def switch_canvas(self, canvas):
        """Make ``canvas`` (or nothing) active and start a new generation.

        Results of requests dispatched under an older generation are stale.
        """
        if canvas is None:
            self.current_canvas_id = None
            self.nodes = []
            self.edges = []
        else:
            self.current_canvas_id = canvas.id
            self.nodes = copy.deepcopy(canvas.nodes)
            self.edges = copy.deepcopy(canvas.edges)
        self.selected_node_ids = []
        self.generation += 1
        self.dirty = False

    def commit(self):
        """Write the working copy through to its canvas record and persist."""
        canvas = self.current_canvas
        if canvas is not None:
            canvas.nodes = copy.deepcopy(self.nodes)
            canvas.edges = copy.deepcopy(self.edges)
            canvas.updated_at = timestamp_ms()
        self.dirty = False
        self.save()

    def mark_dirty(self):
        self.dirty = True

    def flush(self):
        """Persist pending layout-only changes, if any."""
        if self.dirty:
            self.commit()

    def save(self):
        """Persist canvas records as they stand; pending working-copy moves stay dirty."""
        self.storage.save_all(self.to_state())

    def set_stored_node_status(self, canvas_id, node_id, status):
        """Update a node in a canvas record that is not the working copy."""
        canvas = self.find_canvas(canvas_id)
        if canvas is None:
            return False
        for node in canvas.nodes:
            if node.id == node_id:
                node.status = status
                self.save()
                return True
        return False

    # Personas, settings and credentials

    def find_persona(self, persona_id):
        for persona in self.personas:
            if persona.id == persona_id:
                return persona
        return None

    def add_persona(self, name, content, description=None, color=None):
        persona = Persona(id=new_id(), name=name, content=content, description=description, color=color)
        self.personas.append(persona)
        self.save()
        return persona.id

    def update_persona(self, persona_id, **changes):
        persona = self.find_persona(persona_id)
        if persona is None:
            logger.debug("update_persona: unknown persona %s", persona_id)
            return
        for key, value in changes.items():
            if key == "id" or not hasattr(persona, key):
                continue
            setattr(persona, key, value)
        self.save()

    def delete_persona(self, persona_id):
        self.personas = [persona for persona in self.personas if persona.id != persona_id]
        self.save()

    def update_settings(self, **changes):
        for key, value in changes.items():
            if key.startswith("_") or not hasattr(self.settings, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self.settings, key, value)
        self.save()

    @property
    def credentials(self):
        """Saved keys, falling back to keys from the environment."""
        credentials = dict(self.env_api_keys)
        credentials.update({provider: key for provider, key in self.api_keys.items() if key})
        return credentials

    def set_api_keys(self, keys):
        self.api_keys = dict(keys)
        self.save()

    def set_last_used_model_id(self, model_id):
        self.last_used_model_id = model_id
        self.save()
