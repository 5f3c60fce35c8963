"""REST API for model providers, their credentials, and their models."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from gerai.api.chat import get_orchestrator
from gerai.core.database import get_session
from gerai.core.vault import SecretVault, VaultError
from gerai.models.provider import ModelProvider, ProviderModel
from gerai.services.llm import get_backend
from gerai.services.llm.base import BackendError
from gerai.services.orchestrator import ConversationOrchestrator

router = APIRouter()
logger = logging.getLogger(__name__)


class ProviderUpdate(BaseModel):
    api_key: Optional[str] = None
    clear_api_key: bool = False
    is_active: Optional[bool] = None


class ModelToggle(BaseModel):
    is_enabled: bool


def get_vault(orchestrator: ConversationOrchestrator = Depends(get_orchestrator)) -> SecretVault:
    return orchestrator.vault


def _provider_dict(p: ModelProvider) -> dict:
    # The key itself never leaves the backend
    return {"id": p.id, "name": p.name, "is_active": p.is_active, "has_api_key": bool(p.api_key)}


def _model_dict(m: ProviderModel) -> dict:
    return {"id": m.id, "provider_id": m.provider_id, "name": m.name, "is_enabled": m.is_enabled}


def _get_provider(session: Session, provider_id: str) -> ModelProvider:
    provider = session.get(ModelProvider, provider_id)
    if not provider:
        raise HTTPException(status_code=404, detail="Provider not found")
    return provider


@router.get("/")
async def list_providers(session: Session = Depends(get_session)):
    providers = session.exec(select(ModelProvider).order_by(ModelProvider.name)).all()
    return [_provider_dict(p) for p in providers]


@router.patch("/{provider_id}")
async def update_provider(
    provider_id: str,
    body: ProviderUpdate,
    session: Session = Depends(get_session),
    vault: SecretVault = Depends(get_vault),
):
    provider = _get_provider(session, provider_id)

    if body.clear_api_key:
        provider.api_key = None
    elif body.api_key is not None:
        if not body.api_key.strip():
            raise HTTPException(status_code=400, detail="API key cannot be empty")
        provider.api_key = vault.encrypt(body.api_key.strip())
    if body.is_active is not None:
        provider.is_active = body.is_active

    provider.updated_at = datetime.now(timezone.utc)
    session.add(provider)
    session.commit()
    session.refresh(provider)
    logger.info(f"Updated provider {provider_id} (active={provider.is_active})")
    return _provider_dict(provider)


@router.get("/{provider_id}/models")
async def list_provider_models(provider_id: str, session: Session = Depends(get_session)):
    _get_provider(session, provider_id)
    models = session.exec(
        select(ProviderModel).where(ProviderModel.provider_id == provider_id).order_by(ProviderModel.id)
    ).all()
    return [_model_dict(m) for m in models]


@router.patch("/models/{model_id}")
async def toggle_model(model_id: str, body: ModelToggle, session: Session = Depends(get_session)):
    model = session.get(ProviderModel, model_id)
    if not model:
        raise HTTPException(status_code=404, detail="Model not found")
    model.is_enabled = body.is_enabled
    session.add(model)
    session.commit()
    return _model_dict(model)


@router.post("/{provider_id}/refresh-models")
async def refresh_models(
    provider_id: str,
    session: Session = Depends(get_session),
    vault: SecretVault = Depends(get_vault),
):
    """Fetch the provider's remote model list. New models are added disabled."""
    provider = _get_provider(session, provider_id)
    try:
        backend = get_backend(provider_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    credential = None
    if backend.requires_credential:
        if not provider.api_key:
            raise HTTPException(status_code=400, detail="Provider has no API key")
        try:
            credential = vault.decrypt(provider.api_key)
        except VaultError as e:
            raise HTTPException(status_code=400, detail=str(e))

    try:
        remote_ids = await backend.list_models(credential)
    except BackendError as e:
        logger.warning(f"Refreshing models for {provider_id} failed: {e}")
        raise HTTPException(status_code=502, detail=str(e))

    known = set(session.exec(select(ProviderModel.id)).all())
    added = [model_id for model_id in remote_ids if model_id not in known]
    for model_id in added:
        session.add(ProviderModel(id=model_id, provider_id=provider_id, name=model_id, is_enabled=False))
    session.commit()
    return {"provider_id": provider_id, "added": added, "total": len(remote_ids)}
