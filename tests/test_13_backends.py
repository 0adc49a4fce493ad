"""Tests for the vendor backends, using httpx.MockTransport instead of the network."""
from __future__ import annotations

import asyncio
import base64
import json

import httpx
import pytest

from tts_gateway.core.config import GatewayConfig, Settings
from tts_gateway.core.errors import ConfigurationError, SynthesisFailed
from tts_gateway.tts.backend import BackendDispatcher
from tts_gateway.tts.backends import build_backends
from tts_gateway.tts.backends._http import parse_speed
from tts_gateway.tts.backends.azure import AzureBackend
from tts_gateway.tts.backends.elevenlabs import ElevenLabsBackend, alignment_to_marks
from tts_gateway.tts.backends.openai import OpenAIBackend
from tts_gateway.tts.models import SpeechMark, SynthesisRequest

SSML = '<speak version="1.0"><voice name="v"><prosody rate="1.0">Hi there</prosody></voice></speak>'


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("OPENAI_API_KEY", "AZURE_SPEECH_KEY", "AZURE_SPEECH_REGION", "ELEVENLABS_API_KEY"):
        monkeypatch.delenv(name, raising=False)


class Recorder:
    """MockTransport handler that remembers requests and answers with a fixed response."""

    def __init__(self, status=200, content=b"", json_body=None):
        self.requests = []
        self.status = status
        self.content = content
        self.json_body = json_body

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.json_body is not None:
            return httpx.Response(self.status, json=self.json_body)
        return httpx.Response(self.status, content=self.content)


class CollectingSink:
    def __init__(self):
        self.data = b""

    async def write(self, chunk):
        self.data += chunk


def _run(backend, request, sink=None):
    async def go():
        try:
            return await backend.synthesize(request, sink)
        finally:
            await backend.aclose()
    return asyncio.run(go())


class TestParseSpeed:
    @pytest.mark.parametrize("rate, expected", [
        (None, 1.0),
        ("1.25", 1.25),
        ("fast", 1.25),
        ("x-slow", 0.5),
        ("+20%", 1.2),
        ("-50%", 0.5),
        ("weird", 1.0),
    ])
    def test_values(self, rate, expected):
        assert parse_speed(rate) == pytest.approx(expected)


class TestOpenAIBackend:
    def test_supports_prefixed_voices(self):
        backend = OpenAIBackend(api_key="k")
        assert backend.supports(SynthesisRequest(text="x", voice="openai-nova"))
        assert not backend.supports(SynthesisRequest(text="x", voice="en-US-JennyNeural"))
        assert not backend.supports(SynthesisRequest(text="x"))

    def test_request_and_streaming(self):
        handler = Recorder(content=b"ID3-openai")
        backend = OpenAIBackend(api_key="sk-test", transport=httpx.MockTransport(handler))
        sink = CollectingSink()

        result = _run(backend, SynthesisRequest(text=SSML, voice="openai-nova", rate="1.5", plain_text="Hi there"), sink)

        assert result.audio == b"ID3-openai"
        assert result.speech_marks == []
        assert sink.data == b"ID3-openai"
        sent = handler.requests[0]
        assert str(sent.url) == "https://api.openai.com/v1/audio/speech"
        assert sent.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(sent.content)
        assert body == {
            "model": "tts-1",
            "input": "Hi there",
            "voice": "nova",
            "response_format": "mp3",
            "speed": 1.5,
        }

    def test_http_error_raises(self):
        backend = OpenAIBackend(api_key="k", transport=httpx.MockTransport(Recorder(status=500)))
        with pytest.raises(httpx.HTTPStatusError):
            _run(backend, SynthesisRequest(text="x", voice="openai-alloy"))

    def test_from_options_without_key(self):
        assert OpenAIBackend.from_options({}, timeout_s=5) is None

    def test_from_options_env_key(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "env-key")
        backend = OpenAIBackend.from_options({"model": "tts-1-hd"}, timeout_s=5)
        assert backend.api_key == "env-key"
        assert backend.model == "tts-1-hd"


class TestAzureBackend:
    def test_supports_standard_only(self):
        backend = AzureBackend(api_key="k", region="westeurope")
        assert backend.supports(SynthesisRequest(text="x"))
        assert not backend.supports(SynthesisRequest(text="x", is_high_fidelity=True))

    def test_posts_ssml(self):
        handler = Recorder(content=b"ID3-azure")
        backend = AzureBackend(api_key="az", region="westeurope", transport=httpx.MockTransport(handler))

        result = _run(backend, SynthesisRequest(text=SSML, plain_text="Hi there"))

        assert result.audio == b"ID3-azure"
        sent = handler.requests[0]
        assert sent.url.host == "westeurope.tts.speech.microsoft.com"
        assert sent.headers["Ocp-Apim-Subscription-Key"] == "az"
        assert sent.headers["Content-Type"] == "application/ssml+xml"
        assert sent.headers["X-Microsoft-OutputFormat"] == "audio-24khz-48kbitrate-mono-mp3"
        assert sent.content.decode("utf-8") == SSML

    def test_requires_region(self, monkeypatch):
        monkeypatch.setenv("AZURE_SPEECH_KEY", "k")
        assert AzureBackend.from_options({}, timeout_s=5) is None
        assert AzureBackend.from_options({"region": "eastus"}, timeout_s=5).region == "eastus"


class TestElevenLabsBackend:
    def test_alignment_to_marks(self):
        alignment = {
            "characters": list("Hi there"),
            "character_start_times_seconds": [0.0, 0.1, 0.2, 0.3, 0.35, 0.4, 0.45, 0.5],
        }
        assert alignment_to_marks(alignment) == [
            SpeechMark(type="word", time=0, value="Hi", start=0, end=2),
            SpeechMark(type="word", time=300, value="there", start=3, end=8),
        ]

    def test_alignment_missing(self):
        assert alignment_to_marks(None) == []

    def test_request_and_decode(self):
        handler = Recorder(json_body={
            "audio_base64": base64.b64encode(b"ID3-eleven").decode("ascii"),
            "alignment": {"characters": list("Hi"), "character_start_times_seconds": [0.0, 0.1]},
        })
        backend = ElevenLabsBackend(api_key="xi", transport=httpx.MockTransport(handler))
        sink = CollectingSink()

        result = _run(backend, SynthesisRequest(text=SSML, voice="voice123", is_high_fidelity=True, plain_text="Hi"), sink)

        assert result.audio == b"ID3-eleven"
        assert sink.data == b"ID3-eleven"
        assert [m.value for m in result.speech_marks] == ["Hi"]
        sent = handler.requests[0]
        assert sent.url.path == "/v1/text-to-speech/voice123/with-timestamps"
        assert sent.url.params["output_format"] == "mp3_44100_128"
        assert sent.headers["xi-api-key"] == "xi"
        assert json.loads(sent.content) == {"text": "Hi", "model_id": "eleven_multilingual_v2"}

    def test_supports_high_fidelity_only(self):
        backend = ElevenLabsBackend(api_key="xi")
        assert backend.supports(SynthesisRequest(text="x", is_high_fidelity=True))
        assert not backend.supports(SynthesisRequest(text="x"))


class TestRegistry:
    def test_backends_without_credentials_skipped(self, monkeypatch):
        monkeypatch.setenv("AZURE_SPEECH_KEY", "k")
        monkeypatch.setenv("AZURE_SPEECH_REGION", "westeurope")
        backends = build_backends(GatewayConfig.from_settings(Settings(raw={})))
        assert [b.name for b in backends] == ["azure"]

    def test_order_respected(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "k")
        monkeypatch.setenv("ELEVENLABS_API_KEY", "k")
        config = GatewayConfig.from_settings(Settings(raw={"backends": {"order": ["elevenlabs", "openai"]}}))
        assert [b.name for b in build_backends(config)] == ["elevenlabs", "openai"]

    def test_order_override(self, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "k")
        monkeypatch.setenv("ELEVENLABS_API_KEY", "k")
        config = GatewayConfig.from_settings(Settings(raw={}))
        assert [b.name for b in build_backends(config, order=["openai"])] == ["openai"]

    def test_unknown_backend(self):
        config = GatewayConfig.from_settings(Settings(raw={"backends": {"order": ["polly"]}}))
        with pytest.raises(ConfigurationError):
            build_backends(config)

    def test_vendor_error_through_dispatcher(self, monkeypatch):
        monkeypatch.setenv("AZURE_SPEECH_KEY", "k")
        monkeypatch.setenv("AZURE_SPEECH_REGION", "westeurope")
        transport = httpx.MockTransport(Recorder(status=503))
        backends = build_backends(GatewayConfig.from_settings(Settings(raw={})), transport=transport)
        dispatcher = BackendDispatcher(backends, timeout_s=5)

        async def go():
            try:
                return await dispatcher.dispatch(SynthesisRequest(text=SSML))
            finally:
                await dispatcher.aclose()

        with pytest.raises(SynthesisFailed):
            asyncio.run(go())
