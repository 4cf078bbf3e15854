import json

import httpx
import pytest

from app.server import llm, transcribe
from app.server.schema import Turn


def mock_client(monkeypatch, module, handler):
    monkeypatch.setattr(module, "_http_client", lambda timeout: httpx.Client(transport=httpx.MockTransport(handler)))


def test_chat_request_sends_history_and_returns_raw_text(monkeypatch, catalog):
    monkeypatch.setenv("LLM_PROVIDER", "openai")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    monkeypatch.delenv("LLM_BASE_URL", raising=False)
    captured = {}

    def handler(request):
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": "```json\n{}\n```"}}]})

    mock_client(monkeypatch, llm, handler)
    history = [Turn(role="user", text="bonjour"), Turn(role="assistant", text="bienvenue")]
    raw = llm.request_reply("des pizzas", catalog, history)

    assert raw == "```json\n{}\n```"
    assert captured["url"] == "https://api.openai.com/v1/chat/completions"
    messages = captured["body"]["messages"]
    assert messages[0]["role"] == "system" and "Margherita" in messages[0]["content"]
    assert [m["content"] for m in messages[1:]] == ["bonjour", "bienvenue", "des pizzas"]


def test_chat_http_error(monkeypatch, catalog):
    monkeypatch.setenv("LLM_PROVIDER", "openai")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    mock_client(monkeypatch, llm, lambda request: httpx.Response(429, text="rate limited"))
    with pytest.raises(llm.LLMError, match="429"):
        llm.request_reply("salut", catalog, [])


def test_chat_timeout(monkeypatch, catalog):
    monkeypatch.setenv("LLM_PROVIDER", "openai")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    mock_client(monkeypatch, llm, handler)
    with pytest.raises(llm.LLMTimeout):
        llm.request_reply("salut", catalog, [])


def test_llm_disabled_without_key(monkeypatch, catalog):
    for name in ("LLM_PROVIDER", "OPENAI_API_KEY", "LLM_API_KEY", "GROQ_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    assert not llm.llm_enabled()
    with pytest.raises(llm.LLMError):
        llm.request_reply("salut", catalog, [])


def test_transcription(monkeypatch):
    monkeypatch.setenv("TRANSCRIBE_PROVIDER", "openai")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    captured = {}

    def handler(request):
        captured["body"] = request.content
        return httpx.Response(200, json={"text": " je suis végétarien ", "language": "french"})

    mock_client(monkeypatch, transcribe, handler)
    result = transcribe.transcribe(b"audio-bytes", language="fr")

    assert result.text == "je suis végétarien"
    assert result.language == "french"
    assert b"whisper-1" in captured["body"]
    assert b"verbose_json" in captured["body"]


def test_transcription_without_speech(monkeypatch):
    monkeypatch.setenv("TRANSCRIBE_PROVIDER", "openai")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    mock_client(monkeypatch, transcribe, lambda request: httpx.Response(200, json={"text": "  "}))
    with pytest.raises(transcribe.NoSpeechDetected):
        transcribe.transcribe(b"audio-bytes")


def test_transcription_transport_error_is_distinct(monkeypatch):
    monkeypatch.setenv("TRANSCRIBE_PROVIDER", "openai")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    def handler(request):
        raise httpx.ConnectError("down", request=request)

    mock_client(monkeypatch, transcribe, handler)
    with pytest.raises(transcribe.TranscriptionError) as info:
        transcribe.transcribe(b"audio-bytes")
    assert not isinstance(info.value, transcribe.NoSpeechDetected)


def test_audio_size_cap(monkeypatch):
    monkeypatch.setattr(transcribe, "MAX_AUDIO_BYTES", 4)
    with pytest.raises(transcribe.AudioTooLarge):
        transcribe.transcribe(b"12345")


def test_language_hint():
    assert transcribe.language_hint("fr-FR,fr;q=0.9,en;q=0.8") == "fr"
    assert transcribe.language_hint("nl-NL") is None
    assert transcribe.language_hint(None) is None
