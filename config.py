# config.py
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Runtime configuration
STORAGE_PATH = os.getenv("TRAILS_STORAGE_PATH", "trails-storage.json")
REQUEST_TIMEOUT = float(os.getenv("TRAILS_REQUEST_TIMEOUT", "120"))  # Provider HTTP timeout (seconds)
MAX_TOKENS = int(os.getenv("TRAILS_MAX_TOKENS", "4000"))
LOG_LEVEL = os.getenv("TRAILS_LOG_LEVEL", "INFO")

DEFAULT_CANVAS_NAME = "New Exploration"

DEFAULT_SETTINGS = {
    "theme": "acrylic",
    "showAllModels": False,
    "llmCouncil": False,
    "memorySearch": False,
    "panningSpeed": 1.0,
}

# Canvas layout offsets
FORK_OFFSET = (400, 100)
MERGE_Y_OFFSET = 200
RESPONSE_Y_OFFSET = 250
PARALLEL_X_SPACING = 450

# Available AI models
AI_MODELS = {
    # OpenAI
    "gpt-4o": {
        "name": "GPT-4o",
        "provider": "openai",
        "description": "Most capable OpenAI model"
    },
    "gpt-4o-mini": {
        "name": "GPT-4o Mini",
        "provider": "openai",
        "description": "Fast and affordable"
    },

    # Anthropic
    "claude-3-5-sonnet-20241022": {
        "name": "Claude 3.5 Sonnet",
        "provider": "anthropic",
        "description": "Best for coding"
    },
    "claude-3-opus-20240229": {
        "name": "Claude 3 Opus",
        "provider": "anthropic",
        "description": "Most powerful Claude"
    },

    # Google
    "gemini-2.0-flash": {
        "name": "Gemini 2.0 Flash",
        "provider": "google",
        "description": "Fast Gemini model"
    },
    "gemini-1.5-pro": {
        "name": "Gemini 1.5 Pro",
        "provider": "google",
        "description": "Advanced reasoning"
    },

    # Cerebras
    "llama-3.3-70b": {
        "name": "Llama 3.3 70B (Cerebras)",
        "provider": "cerebras",
        "description": "Fastest Llama 3.3 inference"
    },
    "llama-3.1-70b": {
        "name": "Llama 3.1 70B (Cerebras)",
        "provider": "cerebras",
        "description": "Fast Llama 3.1 inference"
    },
    "llama-3.1-8b": {
        "name": "Llama 3.1 8B (Cerebras)",
        "provider": "cerebras",
        "description": "Extremely fast small model"
    },

    # Groq
    "llama-3.1-70b-versatile": {
        "name": "Llama 3.1 70B",
        "provider": "groq",
        "description": "Fast open source on Groq"
    },
    "mixtral-8x7b-32768": {
        "name": "Mixtral 8x7B",
        "provider": "groq",
        "description": "High performance mixture"
    },

    # Mistral
    "mistral-large-latest": {
        "name": "Mistral Large",
        "provider": "mistral",
        "description": "Flagship Mistral model"
    },
    "mistral-small-latest": {
        "name": "Mistral Small",
        "provider": "mistral",
        "description": "Cost-efficient"
    },

    # Ollama (local) - common defaults, any pulled model id also works
    "llama3": {
        "name": "Llama 3 (Local)",
        "provider": "ollama",
        "description": "Local Llama 3"
    },
    "mistral": {
        "name": "Mistral (Local)",
        "provider": "ollama",
        "description": "Local Mistral"
    },
    "phi3": {
        "name": "Phi 3 (Local)",
        "provider": "ollama",
        "description": "Microsoft Phi 3"
    },

    # OpenRouter
    "anthropic/claude-3-opus": {
        "name": "Claude 3 Opus (OR)",
        "provider": "openrouter",
        "description": "Via OpenRouter"
    },
    "google/gemini-pro-1.5": {
        "name": "Gemini 1.5 Pro (OR)",
        "provider": "openrouter",
        "description": "Via OpenRouter"
    },
}

# Models that accept image parts, matched exactly or by provider-family prefix
VISION_MODELS = [
    "gpt-4o",
    "gpt-4o-mini",
    "claude-3-5-sonnet-20241022",
    "claude-3-opus-20240229",
    "gemini-2.0-flash",
    "gemini-1.5-pro",
    "google/gemini-pro-1.5",
    "anthropic/claude-3-opus",
]
VISION_MODEL_PREFIXES = ("claude-3", "gemini")

# OpenAI-compatible endpoints. None means the SDK default.
PROVIDER_BASE_URLS = {
    "openai": None,
    "groq": "https://api.groq.com/openai/v1",
    "cerebras": "https://api.cerebras.ai/v1",
    "openrouter": "https://openrouter.ai/api/v1",
    "mistral": "https://api.mistral.ai/v1",
    "ollama": "http://localhost:11434/v1",
}

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

# Environment variables used to seed credentials that were never saved
API_KEY_ENV_VARS = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "google": "GOOGLE_API_KEY",
    "groq": "GROQ_API_KEY",
    "mistral": "MISTRAL_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "cerebras": "CEREBRAS_API_KEY",
    "ollama": "OLLAMA_BASE_URL",
}


def get_model_name(model_id):
    """Human-readable name for a model id, falling back to the id itself."""
    entry = AI_MODELS.get(model_id)
    if isinstance(entry, dict):
        return entry.get("name", model_id)
    return model_id


def supports_vision(model_id):
    return model_id in VISION_MODELS or model_id.startswith(VISION_MODEL_PREFIXES)
