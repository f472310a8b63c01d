"""
Base oracle client abstraction.

Defines the capability every backend implements and the errors the
dispatcher classifies.
"""

import json
import urllib.error
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import ClassVar


class OracleError(Exception):
    """Any failure talking to an oracle backend."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ModelSelectionError(OracleError):
    """The backend rejected a specific model identifier."""


class ConfigurationError(Exception):
    """Provider cannot be used as configured (missing credential)."""


@dataclass
class ProviderConfig:
    """Which backend to call and how."""
    provider: str
    api_key: str | None = None
    model: str = ""


class OracleClient(ABC):
    """
    Abstract base class for oracle backends.

    All backends must implement:
    - complete(): send one prompt and return the raw response text

    Class attributes describe the model fallback pool the dispatcher
    walks when a model identifier is rejected.
    """

    provider: ClassVar[str] = ""
    default_model: ClassVar[str] = ""
    fallback_models: ClassVar[tuple[str, ...]] = ()
    requires_credential: ClassVar[bool] = True

    def __init__(self, api_key: str | None = None, timeout: int = 120):
        if self.requires_credential and not (api_key and api_key.strip()):
            raise ConfigurationError(f"API key missing for provider '{self.provider}'")
        self.api_key = api_key
        self.timeout = timeout

    @abstractmethod
    def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        model_hint: str | None = None,
    ) -> str:
        """
        Send a single-turn completion request.

        Args:
            prompt: User-turn content
            system_prompt: System instruction, shaped per backend
            model_hint: Model identifier to request

        Returns:
            Raw response text (untrusted)
        """
        pass

    def _post_json(self, url: str, data: dict, headers: dict[str, str]) -> dict:
        """POST a JSON body and decode the JSON reply."""
        req = urllib.request.Request(
            url,
            data=json.dumps(data).encode("utf-8"),
            headers={"Content-Type": "application/json", **headers},
            method="POST",
        )

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            body = e.read().decode("utf-8", errors="replace")
            raise OracleError(
                f"{self.provider} API error {e.code}: {body}",
                status=e.code,
            ) from e
        except urllib.error.URLError as e:
            raise OracleError(f"Cannot connect to {self.provider}: {e.reason}") from e
        except json.JSONDecodeError as e:
            raise OracleError(f"{self.provider} returned a non-JSON body") from e
