# canvas_manager.py
"""Canvas selection and naming glue around the graph store."""

import logging

from config import DEFAULT_CANVAS_NAME
from orchestrator import SubmissionResult, is_blank

logger = logging.getLogger(__name__)

TITLE_WORDS = 4
TITLE_ELLIPSIS_AFTER = 30


def title_from_prompt(text):
    """First four words of a prompt, with an ellipsis for long prompts."""
    title = " ".join(text.split(" ")[:TITLE_WORDS])
    if len(text) > TITLE_ELLIPSIS_AFTER:
        title += "..."
    return title


class CanvasLifecycleManager:
    def __init__(self, store, workspace, orchestrator):
        self.store = store
        self.workspace = workspace
        self.orchestrator = orchestrator

    def list_canvases(self):
        """All canvases, most recently updated first."""
        return sorted(self.workspace.canvases, key=lambda canvas: canvas.updated_at, reverse=True)

    def new_canvas(self, name=DEFAULT_CANVAS_NAME):
        return self.store.create_canvas(name)

    def open_canvas(self, canvas_id):
        self.store.load_canvas(canvas_id)
        return self.workspace.current_canvas_id == canvas_id

    def close_canvas(self):
        self.store.unload_canvas()

    def rename_canvas(self, canvas_id, name):
        self.store.rename_canvas(canvas_id, name)

    def delete_canvas(self, canvas_id):
        self.store.delete_canvas(canvas_id)

    def ensure_canvas_for_prompt(self, content):
        """Return the canvas a first prompt lands on, naming it after the prompt.

        A fresh canvas is created when none is active. An active canvas that is
        still empty and carries the default name is renamed; any other canvas
        keeps its name.
        """
        canvas = self.workspace.current_canvas
        if canvas is None:
            return self.store.create_canvas(title_from_prompt(content) or DEFAULT_CANVAS_NAME)

        if canvas.name == DEFAULT_CANVAS_NAME and not self.workspace.nodes:
            title = title_from_prompt(content)
            if title:
                self.store.rename_canvas(canvas.id, title)
                logger.info("Named canvas %s '%s'", canvas.id, title)
        return canvas.id

    async def submit_first_prompt(self, content, model_ids, origin, attachments=None):
        """Floating-input submission: pick a canvas, then fan the prompt out."""
        model_ids = list(model_ids)
        if is_blank(content, attachments):
            return SubmissionResult()
        self.orchestrator.check_vision_support(attachments or [], model_ids)
        self.ensure_canvas_for_prompt(content)
        if model_ids:
            self.workspace.set_last_used_model_id(model_ids[-1])
        return await self.orchestrator.start_conversation(content, model_ids, origin, attachments=attachments)
