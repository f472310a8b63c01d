"""
Google Gemini client.

Talks to the Generative Language REST API and always asks for a JSON
response body.
"""

from urllib.parse import quote

from .base import OracleClient, OracleError


class GeminiClient(OracleClient):
    """
    Client for Gemini models.

    Requires an API key from Google AI Studio.
    """

    provider = "google"
    default_model = "gemini-3-flash-preview"
    fallback_models = (
        "gemini-3-flash-preview",
        "gemini-2.5-flash",
        "gemini-flash-latest",
    )

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = BASE_URL,
        timeout: int = 120,
    ):
        super().__init__(api_key=api_key, timeout=timeout)
        self.base_url = base_url.rstrip("/")

    def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        model_hint: str | None = None,
    ) -> str:
        model = model_hint or self.default_model
        url = f"{self.base_url}/models/{quote(model, safe='-._')}:generateContent"

        # Single user content; the system prompt rides in front of it
        text = f"{system_prompt}\n\n{prompt}" if system_prompt else prompt
        request_data = {
            "contents": [{"role": "user", "parts": [{"text": text}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }

        response = self._post_json(url, request_data, {"x-goog-api-key": self.api_key})

        candidates = response.get("candidates") or []
        if not candidates:
            feedback = response.get("promptFeedback", {})
            raise OracleError(f"Gemini returned no candidates: {feedback}")

        parts = candidates[0].get("content", {}).get("parts", [])
        return "".join(p.get("text", "") for p in parts if isinstance(p, dict))
