import json
import logging
import os
from typing import Optional

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class TranscriptionError(RuntimeError):
    """Speech-to-text failure."""


class AudioTooLarge(TranscriptionError):
    """Audio payload over TRANSCRIBE_MAX_BYTES."""


class NoSpeechDetected(TranscriptionError):
    """The audio was transcribed but contains no text."""


DEFAULT_MODEL = os.getenv("TRANSCRIBE_MODEL", "whisper-1")
DEFAULT_TIMEOUT_SEC = float(os.getenv("TRANSCRIBE_TIMEOUT", "30"))
MAX_AUDIO_BYTES = int(os.getenv("TRANSCRIBE_MAX_BYTES", str(25 * 1024 * 1024)))
SUPPORTED_LANGUAGES = {"en", "fr", "es", "de", "it", "pt", "ru", "ja", "ko", "zh"}


class Transcription(BaseModel):
    text: str
    language: Optional[str] = None


def _provider() -> str:
    return (os.getenv("TRANSCRIBE_PROVIDER") or "openai").strip().lower()


def _http_client(timeout: float) -> httpx.Client:
    return httpx.Client(timeout=timeout)


def language_hint(accept_language: Optional[str]) -> Optional[str]:
    """First language of an Accept-Language header, when supported."""
    if not accept_language:
        return None
    lang = accept_language.split(",")[0].split(";")[0].split("-")[0].strip().lower()
    return lang if lang in SUPPORTED_LANGUAGES else None


def _clean(text: Optional[str], language: Optional[str]) -> Transcription:
    text = (text or "").strip()
    if not text:
        raise NoSpeechDetected("L'audio ne contient pas de parole identifiable.")
    return Transcription(text=text, language=language)


def transcribe(
    audio: bytes,
    filename: str = "audio.webm",
    content_type: str = "audio/webm",
    language: Optional[str] = None,
) -> Transcription:
    if not audio:
        raise NoSpeechDetected("Aucun fichier audio fourni.")
    if len(audio) > MAX_AUDIO_BYTES:
        raise AudioTooLarge(f"Fichier audio trop volumineux ({len(audio)} octets, max {MAX_AUDIO_BYTES}).")
    if _provider() == "stub":
        return _clean(os.getenv("TRANSCRIBE_STUB_TEXT", ""), language)

    api_key = os.getenv("OPENAI_API_KEY") or os.getenv("LLM_API_KEY")
    if not api_key:
        raise TranscriptionError("Clé API OpenAI non configurée.")
    base_url = (os.getenv("TRANSCRIBE_BASE_URL") or "https://api.openai.com/v1").rstrip("/")
    data = {"model": DEFAULT_MODEL, "response_format": "verbose_json", "temperature": "0"}
    if language:
        data["language"] = language
    files = {"file": (filename or "audio.webm", audio, content_type or "audio/webm")}
    logger.info("Envoi vers l'API de transcription (%s octets)", len(audio))
    try:
        with _http_client(DEFAULT_TIMEOUT_SEC) as client:
            response = client.post(
                f"{base_url}/audio/transcriptions",
                data=data,
                files=files,
                headers={"Authorization": f"Bearer {api_key}"},
            )
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise TranscriptionError(
                    f"Erreur HTTP {exc.response.status_code} de l'API de transcription: {exc.response.text}"
                ) from exc
            payload = response.json()
    except httpx.TimeoutException as exc:
        raise TranscriptionError("L'API de transcription n'a pas répondu à temps.") from exc
    except httpx.HTTPError as exc:
        raise TranscriptionError(f"Impossible de contacter l'API de transcription: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise TranscriptionError("Réponse de transcription illisible.") from exc
    result = _clean(payload.get("text"), payload.get("language") or language)
    logger.info("Transcription réussie: %s", result.text)
    return result
