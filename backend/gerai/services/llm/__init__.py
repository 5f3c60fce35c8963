"""Model backend factory."""

from gerai.services.llm.base import BaseModelBackend

BACKEND_IDS = ("openai", "gemini", "mock")


def get_backend(provider_id: str) -> BaseModelBackend:
    """Return the backend variant serving the given provider."""
    if provider_id == "openai":
        from gerai.services.llm.openai_backend import OpenAIResponsesBackend
        return OpenAIResponsesBackend()
    elif provider_id == "gemini":
        from gerai.services.llm.gemini import GeminiBackend
        return GeminiBackend()
    elif provider_id == "mock":
        from gerai.services.llm.mock import MockBackend
        return MockBackend()
    else:
        raise ValueError(f"Unknown model provider: {provider_id}")
