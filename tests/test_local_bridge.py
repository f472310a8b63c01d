"""Tests for the local CLI bridge client and its stream decoder."""

import io
import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from historia.llm import LocalBridgeClient, OracleError, SSEDecoder, collect_stream_text


def frame(payload) -> bytes:
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {text}\n\n".encode("utf-8")


class TestSSEDecoder:

    def test_complete_frames(self):
        decoder = SSEDecoder()
        assert decoder.feed(frame({"text": "a"}) + frame({"text": "b"})) == ['{"text": "a"}', '{"text": "b"}']

    def test_incomplete_line_held_until_next_chunk(self):
        decoder = SSEDecoder()
        data = frame({"text": "hello"})

        assert decoder.feed(data[:9]) == []
        assert decoder.feed(data[9:]) == ['{"text": "hello"}']

    def test_split_multibyte_character(self):
        decoder = SSEDecoder()
        data = frame({"text": "Zürich"}).replace(b"\\u00fc", "ü".encode("utf-8"))
        split = data.index("ü".encode("utf-8")) + 1

        assert decoder.feed(data[:split]) == []
        assert decoder.feed(data[split:]) == ['{"text": "Zürich"}']

    def test_non_data_lines_ignored(self):
        decoder = SSEDecoder()
        assert decoder.feed(b": keepalive\nevent: chunk\ndata: x\n") == ["x"]

    def test_flush_returns_unterminated_frame(self):
        decoder = SSEDecoder()
        assert decoder.feed(b"data: tail") == []
        assert decoder.flush() == ["tail"]


class TestCollectStreamText:

    def test_concatenates_and_trims(self):
        chunks = [frame({"text": "  {\"message\":"}), frame({"text": " \"hi\"}  "}), frame("[DONE]")]
        assert collect_stream_text(chunks) == '{"message": "hi"}'

    def test_skips_non_json_frames(self):
        chunks = [frame("not json"), frame({"text": "ok"}), frame("[1, 2]")]
        assert collect_stream_text(chunks) == "ok"

    def test_error_frame_raises(self):
        chunks = [frame({"text": "partial"}), frame({"error": "claude CLI exited 1"})]
        with pytest.raises(OracleError, match="claude CLI exited 1"):
            collect_stream_text(chunks)

    def test_byte_at_a_time(self):
        data = frame({"text": "slow"}) + frame({"text": " drip"})
        chunks = [data[i:i + 1] for i in range(len(data))]
        assert collect_stream_text(chunks) == "slow drip"


class TestLocalBridgeClient:

    def test_default_url_from_env(self, monkeypatch):
        monkeypatch.setenv("HISTORIA_BRIDGE_URL", "http://bridge:9999/")
        assert LocalBridgeClient().base_url == "http://bridge:9999"

    @patch("urllib.request.urlopen")
    def test_request_and_stream(self, mock_urlopen):
        response = MagicMock()
        response.read.side_effect = [frame({"text": '{"message":'}), frame({"text": '"ok"}'}), b""]
        cm = MagicMock()
        cm.__enter__.return_value = response
        mock_urlopen.return_value = cm

        client = LocalBridgeClient(base_url="http://localhost:3456")
        text = client.complete("PROMPT", system_prompt="SYSTEM", model_hint="codex")

        assert text == '{"message":"ok"}'
        req = mock_urlopen.call_args[0][0]
        body = json.loads(req.data.decode("utf-8"))
        assert req.full_url == "http://localhost:3456/api/chat"
        assert body == {
            "provider": "codex",
            "messages": [{"role": "user", "content": "PROMPT"}],
            "systemPrompt": "SYSTEM",
        }

    @patch("urllib.request.urlopen")
    def test_http_error(self, mock_urlopen):
        mock_urlopen.side_effect = urllib.error.HTTPError(
            "http://localhost:3456/api/chat", 503, "Unavailable", {}, io.BytesIO(b"no CLI installed"),
        )
        with pytest.raises(OracleError, match=r"cli-bridge error \(503\): no CLI installed"):
            LocalBridgeClient().complete("p")
