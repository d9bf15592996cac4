# orchestrator.py
"""Concurrent multi-model dispatch for prompt nodes.

A turn is sent to every targeted model at once. In parallel mode each model
answer becomes its own Response node and failures stay local to that model.
In council mode the answers are buffered until every call has settled and then
folded into a single Response node.

Graph mutations only happen on the event loop thread, between awaits, so they
never interleave.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from config import PARALLEL_X_SPACING, RESPONSE_Y_OFFSET, get_model_name, supports_vision
from context_assembler import build_turn_message
from errors import AllModelsFailedError, ProviderError, VisionUnsupportedError
from models import NodeStatus, PromptNode, as_position, timestamp_ms

logger = logging.getLogger(__name__)

COUNCIL_SEPARATOR = "\n\n---\n\n"


@dataclass
class SubmissionResult:
    response_ids: List[str] = field(default_factory=list)
    failures: Dict[str, Exception] = field(default_factory=dict)
    error: Optional[AllModelsFailedError] = None
    dropped: bool = False

    @classmethod
    def combine(cls, results):
        combined = cls()
        for result in results:
            combined.response_ids.extend(result.response_ids)
            combined.failures.update(result.failures)
            combined.error = combined.error or result.error
            combined.dropped = combined.dropped or result.dropped
        return combined


def reduce_statuses(statuses):
    """Collapse per-dispatch statuses into the status shown on the node."""
    statuses = list(statuses)
    if not statuses:
        return NodeStatus.IDLE
    if any(status == NodeStatus.LOADING for status in statuses):
        return NodeStatus.LOADING
    if any(status == NodeStatus.ERROR for status in statuses):
        return NodeStatus.ERROR
    return NodeStatus.COMPLETE


class DispatchTracker:
    """Status of every dispatch of the latest submission cycle, per node."""

    def __init__(self):
        self._cycles = {}
        self._counter = 0

    def start(self, node_id, dispatch_keys):
        self._counter += 1
        self._cycles[node_id] = (self._counter, {key: NodeStatus.LOADING for key in dispatch_keys})
        return self._counter

    def settle(self, node_id, cycle, dispatch_key, status):
        """Record an outcome; returns the node's reduced status, or None if superseded."""
        current = self._cycles.get(node_id)
        if current is None or current[0] != cycle:
            return None
        dispatches = current[1]
        dispatches[dispatch_key] = status
        reduced = reduce_statuses(dispatches.values())
        if reduced != NodeStatus.LOADING:
            del self._cycles[node_id]
        return reduced

    def pending(self, node_id):
        current = self._cycles.get(node_id)
        if current is None:
            return []
        return [key for key, status in current[1].items() if status == NodeStatus.LOADING]


def aggregate_council_responses(successes):
    """Join ``(model_id, content)`` pairs into one markdown document."""
    return COUNCIL_SEPARATOR.join(
        f"### {get_model_name(model_id)}\n{content}" for model_id, content in successes
    )


def is_blank(content, attachments):
    """A turn with no text and no attachments is never sent."""
    return not (content or "").strip() and not attachments


def _is_async_callable(func):
    return inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(getattr(func, "__call__", None))


class FanOutOrchestrator:
    def __init__(self, store, assembler, workspace, complete):
        self.store = store
        self.assembler = assembler
        self.workspace = workspace
        self.complete = complete
        self.tracker = DispatchTracker()

    def check_vision_support(self, attachments, model_ids):
        if not any(attachment.is_image for attachment in attachments):
            return
        unsupported = [model_id for model_id in model_ids if not supports_vision(model_id)]
        if unsupported:
            raise VisionUnsupportedError([get_model_name(model_id) for model_id in unsupported])

    def is_council(self, model_ids):
        return bool(self.workspace.settings.llm_council) and len(model_ids) > 1

    async def submit(self, node_id, model_ids, content=None):
        """Send the prompt ``node_id`` to every model in ``model_ids``."""
        prompt = self.store.get_node(node_id)
        if not isinstance(prompt, PromptNode):
            logger.debug("submit: %s is not a prompt node on the active canvas", node_id)
            return SubmissionResult()
        model_ids = list(dict.fromkeys(model_ids))
        if not model_ids:
            return SubmissionResult()
        if is_blank(prompt.content if content is None else content, prompt.attachments):
            logger.debug("submit: nothing to send for %s", node_id)
            return SubmissionResult()

        self.check_vision_support(prompt.attachments, model_ids)

        if content is not None:
            self.store.update_node_content(node_id, content)

        messages = self.assembler.build_context_for_node(node_id, include_target=False)
        messages.append(build_turn_message(prompt))

        if self.is_council(model_ids):
            return await self._run_council(prompt, model_ids, messages)
        return await self._run_parallel(prompt, model_ids, messages)

    async def start_conversation(self, content, model_ids, origin, attachments=None):
        """Create root prompt node(s) for a fresh question and submit them."""
        model_ids = list(dict.fromkeys(model_ids))
        if not model_ids:
            return SubmissionResult()
        attachments = list(attachments or [])
        if is_blank(content, attachments):
            return SubmissionResult()
        self.check_vision_support(attachments, model_ids)
        origin = as_position(origin)

        if self.is_council(model_ids):
            prompt_id = self.store.add_prompt_node(content, model_ids[0], origin, attachments=attachments)
            return await self.submit(prompt_id, model_ids)

        count = len(model_ids)
        prompt_ids = []
        for index, model_id in enumerate(model_ids):
            offset_x = (index - (count - 1) / 2) * PARALLEL_X_SPACING if count > 1 else 0
            prompt_ids.append(self.store.add_prompt_node(
                content, model_id, origin.offset(offset_x, 0), attachments=attachments
            ))

        results = await asyncio.gather(*(
            self.submit(prompt_id, [model_id]) for prompt_id, model_id in zip(prompt_ids, model_ids)
        ))
        return SubmissionResult.combine(results)

    async def _call(self, model_id, messages, credentials):
        if _is_async_callable(self.complete):
            result = await self.complete(messages, model_id, credentials)
        else:
            result = await asyncio.to_thread(self.complete, messages, model_id, credentials)
        return result["content"]

    def _is_stale(self, generation, prompt_id):
        if generation != self.workspace.generation:
            return True
        return self.store.get_node(prompt_id) is None

    def _settle_dropped(self, canvas_id, prompt_id, cycle, dispatch_key):
        """Take a prompt out of ``loading`` after its results were discarded.

        A discarded dispatch counts as failed. The prompt may sit in the
        working copy again (its canvas was reopened) or only in its record.
        """
        status = self.tracker.settle(prompt_id, cycle, dispatch_key, NodeStatus.ERROR)
        if status is None or status == NodeStatus.LOADING:
            return
        if canvas_id == self.workspace.current_canvas_id:
            self.store.update_node_status(prompt_id, status)
        elif canvas_id is not None:
            self.workspace.set_stored_node_status(canvas_id, prompt_id, status)

    async def _run_parallel(self, prompt, model_ids, messages):
        generation = self.workspace.generation
        canvas_id = self.workspace.current_canvas_id
        credentials = self.workspace.credentials
        cycle = self.tracker.start(prompt.id, range(len(model_ids)))
        self.store.update_node_status(prompt.id, NodeStatus.LOADING)

        # Layout and timestamps are fixed now, whatever order answers arrive in
        plans = [
            (index, model_id, prompt.position.offset(index * PARALLEL_X_SPACING, RESPONSE_Y_OFFSET), timestamp_ms())
            for index, model_id in enumerate(model_ids)
        ]

        result = SubmissionResult()
        created = {}

        async def dispatch(index, model_id, position, created_at):
            logger.info("Dispatching %s for prompt %s", model_id, prompt.id)
            try:
                content = await self._call(model_id, messages, credentials)
            except ProviderError as exc:
                logger.warning("%s failed for prompt %s: %s", model_id, prompt.id, exc)
                result.failures[model_id] = exc
                outcome = NodeStatus.ERROR
            except Exception as exc:
                logger.exception("Unexpected error from %s for prompt %s", model_id, prompt.id)
                result.failures[model_id] = exc
                outcome = NodeStatus.ERROR
            else:
                outcome = NodeStatus.COMPLETE

            if self._is_stale(generation, prompt.id):
                logger.info("Dropping %s result for prompt %s: canvas changed", model_id, prompt.id)
                result.dropped = True
                self._settle_dropped(canvas_id, prompt.id, cycle, index)
                return

            if outcome == NodeStatus.COMPLETE:
                created[index] = self.store.add_response_node(
                    prompt.id, content, model_id, position, created_at=created_at
                )
            status = self.tracker.settle(prompt.id, cycle, index, outcome)
            if status is not None:
                self.store.update_node_status(prompt.id, status)

        await asyncio.gather(*(dispatch(*plan) for plan in plans))
        result.response_ids = [created[index] for index in sorted(created)]
        return result

    async def _run_council(self, prompt, model_ids, messages):
        generation = self.workspace.generation
        canvas_id = self.workspace.current_canvas_id
        credentials = self.workspace.credentials
        cycle = self.tracker.start(prompt.id, ["council"])
        self.store.update_node_status(prompt.id, NodeStatus.LOADING)
        position = prompt.position.offset(0, RESPONSE_Y_OFFSET)
        created_at = timestamp_ms()

        logger.info("Council of %d models for prompt %s", len(model_ids), prompt.id)
        outcomes = await asyncio.gather(
            *(self._call(model_id, messages, credentials) for model_id in model_ids),
            return_exceptions=True,
        )

        result = SubmissionResult()
        successes = []
        for model_id, outcome in zip(model_ids, outcomes):
            if not isinstance(outcome, BaseException):
                successes.append((model_id, outcome))
                continue
            if not isinstance(outcome, Exception):
                raise outcome
            if isinstance(outcome, ProviderError):
                logger.warning("%s failed in council for prompt %s: %s", model_id, prompt.id, outcome)
            else:
                logger.error("Unexpected error from %s in council for prompt %s: %r", model_id, prompt.id, outcome)
            result.failures[model_id] = outcome

        if self._is_stale(generation, prompt.id):
            logger.info("Dropping council result for prompt %s: canvas changed", prompt.id)
            result.dropped = True
            self._settle_dropped(canvas_id, prompt.id, cycle, "council")
            return result

        if not successes:
            result.error = AllModelsFailedError(result.failures)
            logger.warning("%s", result.error)
            status = self.tracker.settle(prompt.id, cycle, "council", NodeStatus.ERROR)
        else:
            result.response_ids.append(self.store.add_response_node(
                prompt.id, aggregate_council_responses(successes), model_ids[0], position, created_at=created_at
            ))
            status = self.tracker.settle(prompt.id, cycle, "council", NodeStatus.COMPLETE)
        if status is not None:
            self.store.update_node_status(prompt.id, status)
        return result
