"""
AI narrative collaborator boundary.

The narrative step is decoupled from aggregation: it receives a precomputed
prompt string and returns the model's prose, or fails with one readable
NarrativeServiceError. Generated text is cached in the key-value store keyed
by the prompt, so a narrative can be replayed without calling the model
again or re-running the aggregation.

Key Components:
- NarrativeClient: wraps anthropic.Anthropic with model, token and timeout
  settings
- generate_narrative: cache-aware generation for a prompt
- parse_narrative: classifies response lines as heading / bullet /
  paragraph / blank for rendering

Usage:
    client = NarrativeClient.from_settings(settings, api_key)
    text, cached = generate_narrative(prompt, store, client)
    lines = parse_narrative(text)
"""

import logging
from typing import Callable, List, Optional, Tuple, Union

import anthropic

from kpi_report.core.config import Settings, get_settings
from kpi_report.core.storage import (
    KeyValueStore,
    load_api_key,
    load_cached_narrative,
    save_cached_narrative,
)
from kpi_report.models import LineKind, NarrativeLine

logger = logging.getLogger(__name__)


class NarrativeServiceError(RuntimeError):
    """The external text-generation call failed."""


class MissingApiKeyError(NarrativeServiceError):
    """No Anthropic API key is configured or saved."""


# =============================================================================
# Client
# =============================================================================


class NarrativeClient:
    """
    Thin wrapper over the Anthropic Messages API.

    Attributes:
        model: Model identifier.
        max_tokens: Response token cap.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        api_key: str,
        model: str = 'claude-sonnet-4-20250514',
        max_tokens: int = 800,
        timeout: float = 60.0,
        client: Optional[anthropic.Anthropic] = None,
    ):
        if not api_key and client is None:
            raise MissingApiKeyError(
                "No Anthropic API key configured. Save one via /narrative/api-key "
                "or set ANTHROPIC_API_KEY."
            )
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._client = client or anthropic.Anthropic(api_key=api_key, timeout=timeout)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        api_key: Optional[str] = None,
    ) -> 'NarrativeClient':
        settings = settings or get_settings()
        return cls(
            api_key=api_key or settings.anthropic_api_key or '',
            model=settings.anthropic_model,
            max_tokens=settings.narrative_max_tokens,
            timeout=settings.narrative_timeout_seconds,
        )

    def generate(self, prompt: str) -> str:
        """
        Send one user prompt and return the first text block of the reply.

        Raises:
            NarrativeServiceError: On any API, network or timeout failure,
                or when the reply carries no text.
        """
        try:
            message = self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APITimeoutError as e:
            logger.error(f"Narrative request timed out after {self.timeout}s: {e}")
            raise NarrativeServiceError(
                f"The AI service did not respond within {self.timeout:.0f} seconds"
            ) from e
        except anthropic.APIStatusError as e:
            logger.error(f"Narrative request rejected ({e.status_code}): {e}")
            raise NarrativeServiceError(
                f"The AI service rejected the request (HTTP {e.status_code})"
            ) from e
        except anthropic.APIError as e:
            logger.error(f"Narrative request failed: {e}")
            raise NarrativeServiceError(f"Failed to reach the AI service: {e}") from e

        for block in message.content:
            if getattr(block, 'type', None) == 'text' and block.text:
                return block.text
        raise NarrativeServiceError("The AI service returned an empty response")


# =============================================================================
# Cache-Aware Generation
# =============================================================================


def resolve_api_key(store: KeyValueStore, settings: Optional[Settings] = None) -> str:
    """Saved key first, then ANTHROPIC_API_KEY; '' when neither exists."""
    settings = settings or get_settings()
    return load_api_key(store) or settings.anthropic_api_key or ''


# A ready client, or a zero-argument factory called only on a cache miss.
ClientSource = Union[NarrativeClient, Callable[[], NarrativeClient]]


def generate_narrative(
    prompt: str,
    store: KeyValueStore,
    client: ClientSource,
    refresh: bool = False,
) -> Tuple[str, bool]:
    """
    Return (text, cached) for a prompt.

    A cached narrative is returned unless refresh is set; fresh text is
    written back to the cache. Failures are not cached. When `client` is a
    factory it is only invoked on a miss, so replaying a cached narrative
    needs no API key.

    Raises:
        MissingApiKeyError: The factory could not build a client.
        NarrativeServiceError: The model call failed.
    """
    if not refresh:
        cached = load_cached_narrative(store, prompt)
        if cached:
            logger.info("Serving cached narrative")
            return cached, True

    if not isinstance(client, NarrativeClient):
        client = client()
    text = client.generate(prompt)
    save_cached_narrative(store, prompt, text)
    logger.info(f"Generated narrative ({len(text)} chars)")
    return text, False


# =============================================================================
# Line Classification
# =============================================================================


def classify_line(line: str) -> NarrativeLine:
    text = line.rstrip()
    if not text.strip():
        return NarrativeLine(kind=LineKind.BLANK, text='')
    if len(text) >= 4 and text.startswith('**') and text.endswith('**'):
        return NarrativeLine(kind=LineKind.HEADING, text=text.replace('**', '').strip())
    if text.startswith('- '):
        return NarrativeLine(kind=LineKind.BULLET, text=text[2:])
    return NarrativeLine(kind=LineKind.PARAGRAPH, text=text)


def parse_narrative(text: str) -> List[NarrativeLine]:
    """Classify every line of a narrative response, in order."""
    return [classify_line(line) for line in text.split('\n')]
