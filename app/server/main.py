import logging
import os

from fastapi import FastAPI, File, Header, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from typing import Optional

from . import transcribe
from .assistant import Assistant, welcome_message
from .intent import parse as parse_payload
from .menu import load_catalog
from .reconciler import clear_filters, select_category, toggle_filter
from .schema import CategoryRequest, ChatRequest, ChatResponse, ParseRequest, SessionSnapshot, TurnResult
from .session import ConversationSession, SessionStore

log_level = getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)
if not logging.getLogger().handlers:
    logging.basicConfig(level=log_level, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
logging.getLogger("app").setLevel(log_level)

app = FastAPI(title="Voice Menu Assistant", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

CATALOG = load_catalog()
assistant = Assistant(CATALOG)
sessions = SessionStore()


def _session(session_id: str) -> ConversationSession:
    session = sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session inconnue: {session_id}")
    return session


def _chat_response(session: ConversationSession, result: TurnResult) -> ChatResponse:
    return ChatResponse(
        session_id=session.session_id,
        reply=result.reply,
        error=result.error,
        transcript=result.transcript,
        snapshot=assistant.snapshot(session),
    )


async def _read_audio(audio: UploadFile) -> bytes:
    data = await audio.read()
    if not data:
        raise HTTPException(status_code=400, detail="Aucun fichier audio fourni")
    return data


@app.get("/health")
def health():
    return {"status": "ok", "sessions": len(sessions)}

@app.get("/menu")
def menu():
    return CATALOG.model_dump(by_alias=True)

@app.get("/welcome")
def welcome(lang: Optional[str] = None, accept_language: Optional[str] = Header(default=None)):
    return {"message": welcome_message(lang or transcribe.language_hint(accept_language))}

@app.post("/parse")
def parse_endpoint(payload: ParseRequest):
    return parse_payload(payload.text)

@app.post("/sessions", response_model=SessionSnapshot)
def create_session():
    return assistant.snapshot(sessions.create())

@app.get("/sessions/{session_id}", response_model=SessionSnapshot)
def get_session(session_id: str):
    return assistant.snapshot(_session(session_id))

@app.post("/sessions/{session_id}/chat", response_model=ChatResponse)
def chat(session_id: str, payload: ChatRequest):
    if not payload.message.strip():
        raise HTTPException(status_code=400, detail="Message requis")
    session = _session(session_id)
    return _chat_response(session, assistant.handle_utterance(session, payload.message))

@app.post("/sessions/{session_id}/voice", response_model=ChatResponse)
async def voice(
    session_id: str,
    audio: UploadFile = File(...),
    accept_language: Optional[str] = Header(default=None),
):
    session = _session(session_id)
    data = await _read_audio(audio)
    try:
        result = await run_in_threadpool(
            assistant.handle_audio,
            session,
            data,
            filename=audio.filename or "audio.webm",
            content_type=audio.content_type or "audio/webm",
            language=transcribe.language_hint(accept_language),
        )
    except transcribe.TranscriptionError as exc:
        raise _transcription_http_error(exc) from exc
    return _chat_response(session, result)

@app.post("/transcribe")
async def transcribe_endpoint(
    audio: UploadFile = File(...),
    accept_language: Optional[str] = Header(default=None),
):
    data = await _read_audio(audio)
    try:
        result = await run_in_threadpool(
            transcribe.transcribe,
            data,
            filename=audio.filename or "audio.webm",
            content_type=audio.content_type or "audio/webm",
            language=transcribe.language_hint(accept_language),
        )
    except transcribe.TranscriptionError as exc:
        raise _transcription_http_error(exc) from exc
    return result

@app.put("/sessions/{session_id}/category", response_model=SessionSnapshot)
def set_category(session_id: str, payload: CategoryRequest):
    session = _session(session_id)
    session.replace_state(lambda state: select_category(state, payload.category))
    return assistant.snapshot(session)

@app.post("/sessions/{session_id}/filters/{key}/toggle", response_model=SessionSnapshot)
def toggle(session_id: str, key: str):
    session = _session(session_id)
    try:
        session.replace_state(lambda state: toggle_filter(state, key))
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Filtre inconnu: {key}") from exc
    return assistant.snapshot(session)

@app.delete("/sessions/{session_id}/filters", response_model=SessionSnapshot)
def reset_filters(session_id: str):
    session = _session(session_id)
    session.replace_state(clear_filters)
    return assistant.snapshot(session)


def _transcription_http_error(exc: transcribe.TranscriptionError) -> HTTPException:
    if isinstance(exc, transcribe.NoSpeechDetected):
        return HTTPException(status_code=422, detail=f"Aucun texte détecté: {exc}")
    if isinstance(exc, transcribe.AudioTooLarge):
        return HTTPException(status_code=413, detail=str(exc))
    return HTTPException(status_code=502, detail=f"Erreur lors de la transcription: {exc}")
