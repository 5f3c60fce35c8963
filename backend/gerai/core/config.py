from pathlib import Path

from pydantic_settings import BaseSettings

_BACKEND_DIR = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    app_name: str = "Gerai"
    debug: bool = False

    # Paths
    data_dir: Path = _BACKEND_DIR / "data"
    db_path: Path = _BACKEND_DIR / "gerai.db"
    vault_key_path: Path = _BACKEND_DIR / "data" / "vault.key"

    # Conversations
    default_model: str = "gpt-5-nano"
    default_system_prompt: str = "You are a helpful assistant."
    default_title: str = "New Chat"
    title_max_length: int = 30
    title_message_limit: int = 4  # auto-title only while the chat is this short

    # Backends
    openai_base_url: str = ""
    mock_chunk_interval: float = 0.05
    stream_timeout: float | None = None  # seconds, routed through cancellation

    # Memory
    memory_extraction_enabled: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: list[str] = ["*"]

    model_config = {
        "env_file": str(_BACKEND_DIR / ".env"),
        "env_prefix": "GERAI_",
    }


settings = Settings()
