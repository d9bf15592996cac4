# main.py

import asyncio
import logging
import os
import sys
from dataclasses import dataclass

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from config import API_KEY_ENV_VARS, AI_MODELS, LOG_LEVEL, STORAGE_PATH
from canvas_manager import CanvasLifecycleManager
from context_assembler import ContextAssembler
from graph_store import GraphStore
from orchestrator import FanOutOrchestrator
from persistence import JsonFileStorage
from shared_utils import complete as provider_complete
from workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass
class TrailsApp:
    """Everything a front end needs, wired around one workspace."""
    workspace: Workspace
    store: GraphStore
    assembler: ContextAssembler
    orchestrator: FanOutOrchestrator
    manager: CanvasLifecycleManager


def credentials_from_env():
    """Provider credentials found in the environment."""
    credentials = {}
    for provider, env_var in API_KEY_ENV_VARS.items():
        value = os.getenv(env_var)
        if value:
            credentials[provider] = value
    return credentials


def create_app(storage=None, complete=None):
    """Create the application objects"""
    storage = storage if storage is not None else JsonFileStorage(STORAGE_PATH)
    workspace = Workspace.from_storage(storage)

    workspace.env_api_keys = credentials_from_env()

    store = GraphStore(workspace)
    assembler = ContextAssembler(store, workspace)
    orchestrator = FanOutOrchestrator(store, assembler, workspace, complete or provider_complete)
    manager = CanvasLifecycleManager(store, workspace, orchestrator)
    return TrailsApp(workspace, store, assembler, orchestrator, manager)


async def run_prompt(app, content, model_ids):
    """Send one question to the given models on a fresh canvas and return the answers."""
    result = await app.manager.submit_first_prompt(content, model_ids, (0, 0))
    answers = []
    for response_id in result.response_ids:
        node = app.store.get_node(response_id)
        if node is not None:
            answers.append((node.model_id, node.content))
    return answers, result


def main(argv=None):
    argv = list(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    if not argv:
        print("Usage: python main.py \"<prompt>\" [model-id ...]")
        print(f"Known models: {', '.join(AI_MODELS)}")
        return 2

    content, model_ids = argv[0], argv[1:] or [next(iter(AI_MODELS))]
    app = create_app()
    answers, result = asyncio.run(run_prompt(app, content, model_ids))

    for model_id, answer in answers:
        print(f"\n=== {model_id} ===\n{answer}")
    for model_id, error in result.failures.items():
        print(f"\n!!! {model_id} failed: {error}")
    return 0 if answers else 1


if __name__ == "__main__":
    sys.exit(main())
