"""
Oracle dispatcher with model-selection fallback.

A backend may reject the requested model identifier (retired preview
models, typos, region gating). Those rejections are retried against the
backend's fallback pool; every other failure ends the dispatch.
"""

import logging
from typing import Callable

from .base import ModelSelectionError, OracleClient, OracleError, ProviderConfig

logger = logging.getLogger(__name__)


# Failure text fragments that mean "this model id is the problem"
SELECTION_ERROR_MARKERS = ("not found", "unsupported", "invalid model", "404")

MODEL_PREFIX = "models/"


def normalize_model(model: str | None, default: str) -> str:
    """Trim, drop a ``models/`` prefix, and fall back to the default."""
    trimmed = (model or "").strip()
    if trimmed.startswith(MODEL_PREFIX):
        trimmed = trimmed[len(MODEL_PREFIX):].strip()
    return trimmed or default


def is_model_selection_error(error: Exception) -> bool:
    if isinstance(error, ModelSelectionError):
        return True
    text = str(error).lower()
    return any(marker in text for marker in SELECTION_ERROR_MARKERS)


def candidate_models(client: OracleClient, preferred: str | None) -> list[str]:
    """Preferred model first, then the backend pool, without duplicates."""
    first = normalize_model(preferred, client.default_model)
    return list(dict.fromkeys([first, *client.fallback_models]))


class OracleDispatcher:
    """
    Routes a prompt to the configured backend.

    Stateless between calls; the client factory is injectable so tests
    can substitute mock backends.
    """

    def __init__(self, client_factory: Callable[..., OracleClient] | None = None):
        if client_factory is None:
            from . import create_oracle_client
            client_factory = create_oracle_client
        self.client_factory = client_factory

    def dispatch(
        self,
        config: ProviderConfig,
        prompt: str,
        system_prompt: str | None = None,
    ) -> str:
        """
        Send one prompt and return the raw response text.

        Raises:
            ConfigurationError: Credentialed provider without an API key
            ModelSelectionError: Every candidate model was rejected
            OracleError: Any other backend failure
        """
        client = self.client_factory(config.provider, api_key=config.api_key)

        last_error: ModelSelectionError | None = None
        for model in candidate_models(client, config.model):
            logger.debug("Dispatching to %s model %s", config.provider, model)
            try:
                return client.complete(prompt, system_prompt=system_prompt, model_hint=model)
            except Exception as e:
                if not is_model_selection_error(e):
                    raise
                logger.warning("Model %s rejected by %s, trying next: %s", model, config.provider, e)
                if isinstance(e, ModelSelectionError):
                    last_error = e
                else:
                    last_error = ModelSelectionError(str(e), status=getattr(e, "status", None))
                    last_error.__cause__ = e

        if last_error is None:
            raise OracleError(f"No candidate models for provider '{config.provider}'")
        raise last_error
