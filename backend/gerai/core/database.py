import logging

from sqlmodel import Session, SQLModel, create_engine, select

from gerai.core.config import settings

logger = logging.getLogger(__name__)

engine = create_engine(
    f"sqlite:///{settings.db_path}",
    echo=settings.debug,
    connect_args={"check_same_thread": False},
)

DEFAULT_PROVIDERS = [
    ("openai", "OpenAI"),
    ("gemini", "Google Gemini"),
    ("mock", "Mock Model (Development)"),
]

DEFAULT_MODELS = [
    ("mock", "mock", "Mock Model"),
    ("gpt-5-nano", "openai", "gpt-5-nano"),
    ("gpt-5-mini", "openai", "gpt-5-mini"),
    ("gpt-5", "openai", "gpt-5"),
    ("gemini-2.0-flash", "gemini", "Gemini 2.0 Flash"),
]


def init_db(target=None) -> None:
    import gerai.models  # noqa: F401 - ensure models are registered
    target = target or engine
    SQLModel.metadata.create_all(target)
    with Session(target) as session:
        seed_defaults(session)


def seed_defaults(session: Session) -> None:
    """Insert the built-in providers and models. Existing rows are left alone."""
    from gerai.models.provider import ModelProvider, ProviderModel

    known_providers = set(session.exec(select(ModelProvider.id)).all())
    for provider_id, name in DEFAULT_PROVIDERS:
        if provider_id not in known_providers:
            session.add(ModelProvider(id=provider_id, name=name, is_active=provider_id == "mock"))

    known_models = set(session.exec(select(ProviderModel.id)).all())
    for model_id, provider_id, name in DEFAULT_MODELS:
        if model_id not in known_models:
            session.add(ProviderModel(id=model_id, provider_id=provider_id, name=name, is_enabled=True))

    session.commit()
    logger.debug("Seeded default providers and models")


def get_session():
    with Session(engine) as session:
        yield session
