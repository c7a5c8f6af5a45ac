"""
LLM (Large Language Model) Configuration

Selects the chat model used to turn composed analysis prompts into feedback.

Supported Providers:
- OpenAI (gpt-4o, gpt-4o-mini, gpt-4)
- Groq (llama-3.3-70b-versatile and other OpenAI-compatible Groq models)

Usage:
    Set LLM_PROVIDER environment variable to "openai" or "groq"
    Set corresponding API key: OPENAI_API_KEY or GROQ_API_KEY
"""

import os
import logging
from typing import Any, Dict, Optional

from config import FEEDBACK_TEMPERATURE

logger = logging.getLogger(__name__)

PROVIDERS: Dict[str, Dict[str, Any]] = {
    "openai": {
        "name": "OpenAI",
        "api_key_env": "OPENAI_API_KEY",
        "model_env": "OPENAI_MODEL",
        "default_model": "gpt-4o",
        "base_url": None,
        "get_key_url": "https://platform.openai.com/",
    },
    "groq": {
        "name": "Groq",
        "api_key_env": "GROQ_API_KEY",
        "model_env": "GROQ_MODEL",
        "default_model": "llama-3.3-70b-versatile",
        "base_url": "https://api.groq.com/openai/v1",
        "get_key_url": "https://console.groq.com/",
    },
}


def _provider_name() -> str:
    return os.getenv("LLM_PROVIDER", "openai").lower()


def get_llm_model(temperature: Optional[float] = None):
    """
    Get the feedback chat model for the configured LLM_PROVIDER.

    Returns:
        LangChain chat model instance

    Raises:
        ValueError: If provider is not supported or API key is missing
    """
    provider = _provider_name()
    settings = PROVIDERS.get(provider)
    if not settings:
        raise ValueError(
            f"Unknown LLM_PROVIDER: {provider}\n"
            f"Supported providers: {', '.join(PROVIDERS)}"
        )

    api_key = os.getenv(settings["api_key_env"])
    if not api_key:
        raise ValueError(
            f"{settings['api_key_env']} environment variable not set!\n"
            f"Get your API key from: {settings['get_key_url']}"
        )

    from langchain_openai import ChatOpenAI

    model_name = os.getenv(settings["model_env"], settings["default_model"])
    logger.info(f"Using {settings['name']} LLM for feedback: {model_name}")

    kwargs: Dict[str, Any] = {
        "model": model_name,
        "temperature": FEEDBACK_TEMPERATURE if temperature is None else temperature,
        "api_key": api_key,
    }
    if settings["base_url"]:
        kwargs["base_url"] = settings["base_url"]
    return ChatOpenAI(**kwargs)


def get_llm_provider_info() -> Dict[str, Any]:
    """Describe the configured provider without creating a model."""
    provider = _provider_name()
    settings = PROVIDERS.get(provider)
    if not settings:
        return {"provider": provider, "name": "Unknown", "api_key_env": "UNKNOWN", "configured": False}
    return {
        "provider": provider,
        "name": settings["name"],
        "model": os.getenv(settings["model_env"], settings["default_model"]),
        "api_key_env": settings["api_key_env"],
        "configured": bool(os.getenv(settings["api_key_env"])),
    }
