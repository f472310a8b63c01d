"""
OpenAI-compatible chat completion clients.

OpenAI and DeepSeek share the same wire format; they differ only in how
the system prompt and JSON mode are shaped.
"""

from .base import OracleClient, OracleError


class OpenAICompatibleClient(OracleClient):
    """Shared request/response handling for /chat/completions backends."""

    BASE_URL = ""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: int = 120,
    ):
        super().__init__(api_key=api_key, timeout=timeout)
        self.base_url = (base_url or self.BASE_URL).rstrip("/")

    def build_messages(self, prompt: str, system_prompt: str | None, model: str) -> list[dict]:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    def response_format(self, model: str) -> dict | None:
        return None

    def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        model_hint: str | None = None,
    ) -> str:
        model = model_hint or self.default_model

        request_data: dict = {
            "model": model,
            "messages": self.build_messages(prompt, system_prompt, model),
        }
        response_format = self.response_format(model)
        if response_format:
            request_data["response_format"] = response_format

        response = self._post_json(
            f"{self.base_url}/chat/completions",
            request_data,
            {"Authorization": f"Bearer {self.api_key}"},
        )

        choices = response.get("choices") or []
        if not choices:
            raise OracleError(f"{self.provider} returned no choices")
        return choices[0].get("message", {}).get("content") or "{}"


class OpenAIClient(OpenAICompatibleClient):
    """
    Client for the OpenAI API.

    The o-series reasoning models take no system role, so the system
    prompt is folded into the user turn for them. JSON mode is only
    requested from models known to support it.
    """

    provider = "openai"
    default_model = "gpt-4o"
    fallback_models = ("gpt-4o",)

    BASE_URL = "https://api.openai.com/v1"

    # Substrings of model ids that accept response_format=json_object
    JSON_MODE_MODELS = ("gpt-4o", "o3")

    @staticmethod
    def lacks_system_role(model: str) -> bool:
        return model.startswith("o")

    def build_messages(self, prompt: str, system_prompt: str | None, model: str) -> list[dict]:
        if system_prompt and self.lacks_system_role(model):
            return [{"role": "user", "content": f"{system_prompt}\n\n{prompt}"}]
        return super().build_messages(prompt, system_prompt, model)

    def response_format(self, model: str) -> dict | None:
        if any(marker in model for marker in self.JSON_MODE_MODELS):
            return {"type": "json_object"}
        return None


class DeepSeekClient(OpenAICompatibleClient):
    """Client for DeepSeek's OpenAI-compatible endpoint."""

    provider = "deepseek"
    default_model = "deepseek-chat"
    fallback_models = ("deepseek-chat",)

    BASE_URL = "https://api.deepseek.com"
