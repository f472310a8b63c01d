"""
Claude API client.

Wraps the Anthropic SDK in our OracleClient interface.
"""

import anthropic

from .base import OracleClient, OracleError


class AnthropicClient(OracleClient):
    """
    Client for Claude via the Anthropic SDK.

    The system prompt travels in the dedicated ``system`` parameter.
    """

    provider = "anthropic"
    default_model = "claude-3-5-sonnet-20240620"
    fallback_models = (
        "claude-3-5-sonnet-20240620",
        "claude-3-5-haiku-20241022",
    )

    def __init__(
        self,
        api_key: str | None = None,
        timeout: int = 120,
        max_tokens: int = 2048,
    ):
        super().__init__(api_key=api_key, timeout=timeout)
        self.max_tokens = max_tokens
        self.client = anthropic.Anthropic(api_key=api_key, timeout=timeout)

    def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        model_hint: str | None = None,
    ) -> str:
        kwargs = {
            "model": model_hint or self.default_model,
            "max_tokens": self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            kwargs["system"] = system_prompt

        try:
            response = self.client.messages.create(**kwargs)
        except anthropic.APIStatusError as e:
            raise OracleError(f"anthropic API error {e.status_code}: {e.message}", status=e.status_code) from e
        except anthropic.APIError as e:
            raise OracleError(f"anthropic API error: {e}") from e

        # Only the leading text block carries the answer
        if response.content and response.content[0].type == "text":
            return response.content[0].text
        return "{}"
