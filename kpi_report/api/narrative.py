"""
FastAPI router module for the AI narrative feature.

Key Endpoints:
- GET /narrative/api-key: Whether an Anthropic API key is available
- PUT /narrative/api-key: Save an API key to the key-value store
- DELETE /narrative/api-key: Forget the saved API key
- POST /narrative/generate: Prompt (or insights) -> model narrative
- POST /narrative/cached: Previously generated narrative for a prompt
- POST /narrative/parse: Classify narrative lines for rendering

Error mapping:
- no prompt and no insights -> 400
- MissingApiKeyError -> 400
- NarrativeServiceError -> 502
"""

import logging
from typing import Annotated, Callable, List

from fastapi import APIRouter, Depends, HTTPException

from kpi_report.core.config import Settings
from kpi_report.core.dependencies import SettingsDep, StoreDep, get_settings_dependency, get_store_dependency
from kpi_report.core.storage import (
    API_KEY_STORAGE_KEY,
    KeyValueStore,
    load_cached_narrative,
    save_api_key,
)
from kpi_report.models import (
    ApiKeyRequest,
    ApiKeyStatus,
    NarrativeLine,
    NarrativeParseRequest,
    NarrativeRequest,
    NarrativeResponse,
)
from kpi_report.services.narrative import (
    MissingApiKeyError,
    NarrativeClient,
    NarrativeServiceError,
    generate_narrative,
    parse_narrative,
    resolve_api_key,
)
from kpi_report.services.reporting import build_insights_prompt

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/narrative", tags=["narrative"])


# =============================================================================
# Dependencies
# =============================================================================

NarrativeClientFactory = Callable[[], NarrativeClient]


def get_narrative_client_factory(
    settings: Annotated[Settings, Depends(get_settings_dependency)],
    store: Annotated[KeyValueStore, Depends(get_store_dependency)],
) -> NarrativeClientFactory:
    """
    Return a factory building the narrative client on demand.

    The client is only built when a narrative actually has to be generated,
    so cache hits work without an API key. Tests override this dependency
    with a factory returning a stub client.
    """
    def build() -> NarrativeClient:
        return NarrativeClient.from_settings(settings, resolve_api_key(store, settings))
    return build


NarrativeClientDep = Annotated[NarrativeClientFactory, Depends(get_narrative_client_factory)]


def _prompt_for(request: NarrativeRequest) -> str:
    if request.prompt:
        return request.prompt
    if request.insights is not None:
        return build_insights_prompt(request.insights)
    raise HTTPException(status_code=400, detail="Either prompt or insights is required")


# =============================================================================
# API Key
# =============================================================================


@router.get("/api-key", response_model=ApiKeyStatus)
def api_key_status(settings: SettingsDep, store: StoreDep) -> ApiKeyStatus:
    return ApiKeyStatus(configured=bool(resolve_api_key(store, settings)))


@router.put("/api-key", response_model=ApiKeyStatus)
def set_api_key(request: ApiKeyRequest, store: StoreDep) -> ApiKeyStatus:
    save_api_key(store, request.apiKey)
    logger.info("Anthropic API key saved")
    return ApiKeyStatus(configured=True)


@router.delete("/api-key", response_model=ApiKeyStatus)
def delete_api_key(settings: SettingsDep, store: StoreDep) -> ApiKeyStatus:
    store.delete(API_KEY_STORAGE_KEY)
    logger.info("Anthropic API key removed")
    return ApiKeyStatus(configured=bool(settings.anthropic_api_key))


# =============================================================================
# Narrative
# =============================================================================


@router.post("/generate", response_model=NarrativeResponse)
def generate(
    request: NarrativeRequest,
    store: StoreDep,
    client_factory: NarrativeClientDep,
) -> NarrativeResponse:
    """
    Generate (or replay from cache) the narrative for a prompt.

    Raises:
        HTTPException 400: Missing prompt/insights or no API key.
        HTTPException 502: The AI service failed.
    """
    prompt = _prompt_for(request)
    try:
        text, was_cached = generate_narrative(prompt, store, client_factory, refresh=request.refresh)
    except MissingApiKeyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except NarrativeServiceError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return NarrativeResponse(text=text, lines=parse_narrative(text), cached=was_cached)


@router.post("/cached", response_model=NarrativeResponse)
def cached_narrative(request: NarrativeRequest, store: StoreDep) -> NarrativeResponse:
    prompt = _prompt_for(request)
    text = load_cached_narrative(store, prompt)
    if not text:
        raise HTTPException(status_code=404, detail="No cached narrative for this prompt")
    return NarrativeResponse(text=text, lines=parse_narrative(text), cached=True)


@router.post("/parse", response_model=List[NarrativeLine])
def parse(request: NarrativeParseRequest) -> List[NarrativeLine]:
    return parse_narrative(request.text)
