"""Oracle backend clients for the Historia engine."""

from .base import (
    ConfigurationError,
    ModelSelectionError,
    OracleClient,
    OracleError,
    ProviderConfig,
)
from .claude import AnthropicClient
from .dispatch import (
    SELECTION_ERROR_MARKERS,
    OracleDispatcher,
    candidate_models,
    is_model_selection_error,
    normalize_model,
)
from .gemini import GeminiClient
from .local_bridge import LocalBridgeClient, SSEDecoder, collect_stream_text
from .openai_compat import DeepSeekClient, OpenAIClient

__all__ = [
    "OracleClient",
    "OracleError",
    "ModelSelectionError",
    "ConfigurationError",
    "ProviderConfig",
    "LocalBridgeClient",
    "GeminiClient",
    "OpenAIClient",
    "DeepSeekClient",
    "AnthropicClient",
    "MockOracleClient",
    "OracleDispatcher",
    "SSEDecoder",
    "collect_stream_text",
    "create_oracle_client",
    "candidate_models",
    "is_model_selection_error",
    "normalize_model",
    "SELECTION_ERROR_MARKERS",
    # Provider registry
    "PROVIDERS",
    "CREDENTIALED_PROVIDERS",
]


# -----------------------------------------------------------------------------
# Mock Client for Testing
# -----------------------------------------------------------------------------

class MockOracleClient(OracleClient):
    """
    Mock oracle client for testing.

    Allows configuring responses without actual network calls.
    """

    provider = "mock"
    default_model = "mock-model"
    requires_credential = False

    def __init__(
        self,
        responses: list[str] | None = None,
        errors: dict[str, Exception] | None = None,
        fallback_models: tuple[str, ...] = (),
        **kwargs,
    ):
        """
        Initialize mock client.

        Args:
            responses: List of responses to return in order.
                       Cycles through if more calls than responses.
            errors: Model id -> exception raised when that model is requested.
            fallback_models: Pool the dispatcher walks after the preferred model.
        """
        super().__init__(api_key=kwargs.get("api_key"))
        self._responses = responses or ['{"message": "Mock response", "updates": []}']
        self._errors = errors or {}
        self._call_count = 0
        self.fallback_models = fallback_models
        self.calls: list[dict] = []  # Record of all calls made

    def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        model_hint: str | None = None,
    ) -> str:
        """Return next mock response, or raise the error mapped to the model."""
        self.calls.append({
            "prompt": prompt,
            "system_prompt": system_prompt,
            "model": model_hint,
        })
        if model_hint in self._errors:
            raise self._errors[model_hint]
        response = self._responses[self._call_count % len(self._responses)]
        self._call_count += 1
        return response

    def set_responses(self, responses: list[str]) -> None:
        """Update the list of responses."""
        self._responses = responses
        self._call_count = 0

    def reset(self) -> None:
        """Reset call count and recorded calls."""
        self._call_count = 0
        self.calls.clear()


# -----------------------------------------------------------------------------
# Provider Factory
# -----------------------------------------------------------------------------

PROVIDERS: dict[str, type[OracleClient]] = {
    "local": LocalBridgeClient,
    "google": GeminiClient,
    "openai": OpenAIClient,
    "anthropic": AnthropicClient,
    "deepseek": DeepSeekClient,
}

# Providers that refuse to run without an API key
CREDENTIALED_PROVIDERS = frozenset(
    name for name, cls in PROVIDERS.items() if cls.requires_credential
)


def create_oracle_client(provider: str, api_key: str | None = None, **kwargs) -> OracleClient:
    """
    Create an oracle client for the named provider.

    Args:
        provider: One of "local", "google", "openai", "anthropic", "deepseek"
        api_key: Credential for the provider (ignored by "local")
        **kwargs: Passed through to the client constructor

    Raises:
        OracleError: Unknown provider
        ConfigurationError: Credentialed provider without an API key
    """
    try:
        client_cls = PROVIDERS[provider]
    except KeyError:
        raise OracleError(f"Unsupported provider: {provider}") from None
    return client_cls(api_key=api_key, **kwargs)
