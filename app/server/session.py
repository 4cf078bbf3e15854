import logging, os, threading, uuid
from collections import OrderedDict
from typing import Callable, Optional

from .reconciler import reconcile
from .schema import ParsedAction, SessionState, Turn

logger = logging.getLogger(__name__)

HISTORY_MAX_MESSAGES = int(os.getenv("HISTORY_MAX_MESSAGES", "20"))
MAX_SESSIONS = int(os.getenv("MAX_SESSIONS", "200"))


class ConversationSession:
    """Owns one conversation's state. All writes go through this object."""

    def __init__(self, session_id: Optional[str] = None, max_history: int = HISTORY_MAX_MESSAGES) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self._max_history = max_history
        self._state = SessionState()
        # one turn at a time; the lock is held for the whole utterance pipeline
        self.turn_lock = threading.RLock()

    def current_state(self) -> SessionState:
        return self._state.model_copy(deep=True)

    def append_turn(self, role: str, text: str) -> None:
        with self.turn_lock:
            history = list(self._state.history)
            history.append(Turn(role=role, text=text))
            if self._max_history > 0 and len(history) > self._max_history:
                dropped = len(history) - self._max_history
                history = history[dropped:]
                logger.debug("Session %s: %s anciens messages oubliés", self.session_id, dropped)
            update = {"history": history}
            if role == "assistant":
                update["last_assistant_message"] = text
            self._state = self._state.model_copy(update=update)

    def apply_reconciliation(self, action: ParsedAction) -> SessionState:
        with self.turn_lock:
            self._state = reconcile(self._state, action)
            return self.current_state()

    def replace_state(self, transition: Callable[[SessionState], SessionState]) -> SessionState:
        with self.turn_lock:
            self._state = transition(self._state)
            return self.current_state()

    def set_error(self, message: Optional[str]) -> None:
        with self.turn_lock:
            self._state = self._state.model_copy(update={"last_error": message})


class SessionStore:
    """In-memory sessions, least recently used evicted past ``max_sessions``."""

    def __init__(self, max_sessions: int = MAX_SESSIONS, max_history: int = HISTORY_MAX_MESSAGES) -> None:
        self._max_sessions = max_sessions
        self._max_history = max_history
        self._sessions: "OrderedDict[str, ConversationSession]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self, session_id: Optional[str] = None) -> ConversationSession:
        session = ConversationSession(session_id, max_history=self._max_history)
        with self._lock:
            self._sessions[session.session_id] = session
            self._prune()
        return session

    def get(self, session_id: str) -> Optional[ConversationSession]:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._sessions.move_to_end(session_id)
            return session

    def _prune(self) -> None:
        while self._max_sessions and len(self._sessions) > self._max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("Session %s évincée (limite %s)", evicted, self._max_sessions)
