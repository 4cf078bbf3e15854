import logging
from typing import Optional

from . import intent, llm, transcribe
from .menu import category_title, find_items, visible_items
from .reconciler import active_filter_count
from .schema import Catalog, SessionSnapshot, TurnResult
from .session import ConversationSession

logger = logging.getLogger(__name__)

TECHNICAL_ERROR_MESSAGE = "Désolé, j'ai un petit problème technique. Pouvez-vous répéter votre demande ?"

WELCOME_MESSAGES = {
    "fr": "Bonjour, je suis Fred votre serveur digital ! Je suis là pour vous aider, vous orienter et vous expliquer le menu. Alors dites-moi, qu'est-ce qui vous ferait plaisir aujourd'hui ?",
    "en": "Hello, I'm Fred your digital waiter! I'm here to help you, guide you and explain the menu. So tell me, what would you like today?",
    "es": "¡Hola, soy Fred tu camarero digital! Estoy aquí para ayudarte, orientarte y explicarte la carta. Entonces dime, ¿qué te gustaría hoy?",
    "de": "Hallo, ich bin Fred, Ihr digitaler Kellner! Ich bin hier, um Ihnen zu helfen, Sie zu führen und das Menü zu erklären. Also sagen Sie mir, was hätten Sie heute gerne?",
    "it": "Ciao, sono Fred il vostro cameriere digitale! Sono qui per aiutarvi, guidarvi e spiegarvi il menu. Allora ditemi, cosa vi farebbe piacere oggi?",
}


def welcome_message(language: Optional[str] = None) -> str:
    lang = (language or "fr").split("-")[0].lower()
    return WELCOME_MESSAGES.get(lang, WELCOME_MESSAGES["fr"])


class Assistant:
    """Runs one user turn: language model, payload parsing, reconciliation."""

    def __init__(self, catalog: Optional[Catalog]) -> None:
        self.catalog = catalog

    def handle_utterance(self, session: ConversationSession, text: str) -> TurnResult:
        utterance = (text or "").strip()
        if not utterance:
            return TurnResult(state=session.current_state())

        with session.turn_lock:
            history = session.current_state().history
            try:
                raw = llm.request_reply(utterance, self.catalog, history)
            except llm.LLMError as exc:
                logger.error("Erreur lors du traitement IA: %s", exc)
                session.set_error(TECHNICAL_ERROR_MESSAGE)
                return TurnResult(error=TECHNICAL_ERROR_MESSAGE, state=session.current_state())

            parsed = intent.parse(raw)
            if parsed.action is not None:
                session.apply_reconciliation(parsed.action)
            session.append_turn("user", utterance)
            session.append_turn("assistant", parsed.reply_text)
            session.set_error(None)
            return TurnResult(reply=parsed.reply_text, action=parsed.action, state=session.current_state())

    def handle_audio(
        self,
        session: ConversationSession,
        audio: bytes,
        filename: str = "audio.webm",
        content_type: str = "audio/webm",
        language: Optional[str] = None,
    ) -> TurnResult:
        """Transcribe then run the turn. Transcription errors are recorded as last_error and re-raised."""
        with session.turn_lock:
            try:
                transcription = transcribe.transcribe(audio, filename, content_type, language)
            except transcribe.TranscriptionError as exc:
                logger.error("Erreur lors de la transcription: %s", exc)
                session.set_error(f"Erreur lors de la transcription: {exc}")
                raise
            result = self.handle_utterance(session, transcription.text)
            result.transcript = transcription.text
            return result

    def snapshot(self, session: ConversationSession) -> SessionSnapshot:
        state = session.current_state()
        if self.catalog is None:
            items, recommended, shown = None, [], None
        else:
            items = visible_items(self.catalog, state.category, state.filters)
            recommended = find_items(self.catalog, state.recommended_items)
            shown = find_items(self.catalog, state.shown_items) if state.shown_items is not None else None
        return SessionSnapshot(
            session_id=session.session_id,
            state=state,
            title=category_title(self.catalog, state.category),
            active_filters=active_filter_count(state.filters),
            items=items,
            recommended=recommended,
            shown=shown,
        )
