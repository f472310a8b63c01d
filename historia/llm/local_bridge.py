"""
Local CLI bridge client.

The bridge is a small local server that shells out to installed CLI
tools (claude, codex, gemini) and streams their output back as
server-sent events. No API key is needed.
"""

import codecs
import json
import os
import urllib.error
import urllib.request
from typing import Iterable, Iterator

from .base import OracleClient, OracleError


DEFAULT_BRIDGE_URL = "http://localhost:3456"


class SSEDecoder:
    """
    Incremental decoder for ``data:`` frames.

    Bytes arrive in arbitrary chunks; an incomplete trailing line (or a
    split multi-byte character) is held until the next chunk completes it.
    """

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""

    def feed(self, chunk: bytes) -> list[str]:
        """Return the payloads of every frame completed by this chunk."""
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return [p for p in (self._payload(line) for line in lines) if p is not None]

    def flush(self) -> list[str]:
        """Drain whatever is left once the stream ends."""
        self._buffer += self._decoder.decode(b"", final=True)
        line, self._buffer = self._buffer, ""
        payload = self._payload(line)
        return [payload] if payload is not None else []

    @staticmethod
    def _payload(line: str) -> str | None:
        line = line.rstrip("\r")
        if not line.startswith("data: "):
            return None
        return line[6:].strip()


def collect_stream_text(chunks: Iterable[bytes]) -> str:
    """
    Fold a bridge event stream into the final response text.

    ``[DONE]`` and non-JSON frames are skipped; a frame carrying ``error``
    aborts the stream.
    """
    decoder = SSEDecoder()
    collected = []

    def frames() -> Iterator[str]:
        for chunk in chunks:
            yield from decoder.feed(chunk)
        yield from decoder.flush()

    for payload in frames():
        if payload == "[DONE]":
            continue
        try:
            frame = json.loads(payload)
        except json.JSONDecodeError:
            continue
        if not isinstance(frame, dict):
            continue
        if frame.get("error"):
            raise OracleError(f"cli-bridge error: {frame['error']}")
        if frame.get("text"):
            collected.append(str(frame["text"]))

    return "".join(collected).strip()


class LocalBridgeClient(OracleClient):
    """
    Client for the local CLI bridge.

    The model hint selects which CLI tool the bridge runs.
    """

    provider = "local"
    default_model = "claude"
    requires_credential = False

    CHUNK_SIZE = 4096

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: int = 300,
    ):
        super().__init__(api_key=api_key, timeout=timeout)
        self.base_url = (
            base_url or os.environ.get("HISTORIA_BRIDGE_URL", DEFAULT_BRIDGE_URL)
        ).rstrip("/")

    def complete(
        self,
        prompt: str,
        system_prompt: str | None = None,
        model_hint: str | None = None,
    ) -> str:
        body = {
            "provider": model_hint or self.default_model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_prompt:
            body["systemPrompt"] = system_prompt

        req = urllib.request.Request(
            f"{self.base_url}/api/chat",
            data=json.dumps(body).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return collect_stream_text(self._iter_chunks(resp))
        except urllib.error.HTTPError as e:
            detail = e.read().decode("utf-8", errors="replace")
            raise OracleError(f"cli-bridge error ({e.code}): {detail}", status=e.code) from e
        except urllib.error.URLError as e:
            raise OracleError(f"Cannot connect to cli-bridge at {self.base_url}: {e.reason}") from e

    def _iter_chunks(self, resp) -> Iterator[bytes]:
        while True:
            chunk = resp.read(self.CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
