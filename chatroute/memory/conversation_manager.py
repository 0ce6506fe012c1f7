"""Per-session conversation context: sticky preferences plus a short turn window.

Purpose of this abstraction:
    Keep the small amount of per-visitor state the router needs between turns:
    language/dialect preferences set by explicit user requests, and a bounded
    window of recent turns used for conversational depth, dominant language,
    and document follow-ups.

Preferences vs turns:
    - Preferences (`language`, `dialect`, `dialect_intensity`) are sticky until
      changed or until `pref_ttl_seconds` pass without an update.
    - Turns are windowed (`MAX_TURNS`), truncated to `MAX_CONTENT_CHARS`, and
      never read by routing precedence; they feed `RouterContext` for audit
      logging and document follow-up detection.

Concurrency:
    - `locked(key)` hands out a per-key re-entrant lock. The router holds it
      around "apply explicit request, then read preferences" so two racing
      turns for one visitor cannot lose an update.
    - A separate short-lived guard protects the session table itself, so
      different keys never contend beyond a dictionary operation.

Resource bounds:
    - LRU eviction at `max_sessions` entries (OrderedDict, oldest first).
    - Sessions idle for longer than `session_ttl_seconds` are dropped lazily
      on access and eagerly by `cleanup_expired`.

External dependencies:
    - Standard library only: `threading`, `time`, `collections`, `logging`.
"""

import logging
import threading
import time
from collections import Counter, OrderedDict, deque
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Protocol

from chatroute.nlp.dialect import KELANTAN, STANDARD, UTARA, ExplicitRequest


logger = logging.getLogger(__name__)


MAX_TURNS = 8
MAX_CONTENT_CHARS = 2000
LAST_MESSAGE_PREVIEW_CHARS = 200
EXPLICIT_DIALECT_INTENSITY = 0.35

DEFAULT_SESSION_TTL_SECONDS = 30 * 60
DEFAULT_PREF_TTL_SECONDS = 60 * 60
DEFAULT_MAX_SESSIONS = 10000

PREFERENCE_FIELDS = ("language", "dialect", "dialect_intensity")
PREFERENCE_DIALECTS = ("none", "klate", "utara")
PREFERENCE_LANGUAGES = (None, "ms", "en")

# Detector dialect names -> stored preference codes.
DIALECT_PREFERENCE_CODES = {
    KELANTAN: "klate",
    UTARA: "utara",
    STANDARD: "none",
}

# Stored preference codes -> detector dialect names.
PREFERENCE_DIALECT_NAMES = {
    "klate": KELANTAN,
    "utara": UTARA,
}


@dataclass(frozen=True)
class SessionPreferences:
    dialect: str = "none"
    language: str | None = None
    dialect_intensity: float = 0.0


DEFAULT_PREFERENCES = SessionPreferences()


@dataclass(frozen=True)
class ConversationTurn:
    role: str
    content: str
    route: str | None = None
    lang: str | None = None
    dialect: str | None = None
    intent: str | None = None
    doc_id: str | None = None
    ts: float = 0.0


@dataclass(frozen=True)
class RouterContext:
    """Lightweight per-session summary handed to the router (no full history)."""

    turn_count: int = 0
    is_first_turn: bool = True
    last_route: str | None = None
    dominant_lang: str | None = None
    dominant_dialect: str | None = None
    active_doc_id: str | None = None
    recent_intents: tuple = ()
    last_user_message: str | None = None


EMPTY_ROUTER_CONTEXT = RouterContext()


@dataclass(frozen=True)
class DocFollowUp:
    is_follow_up: bool
    doc_id: str | None = None


class PreferenceStore(Protocol):
    """Seam the router depends on; `ConversationStore` is the default backend."""

    def get_preferences(self, key: str | None) -> SessionPreferences:
        ...

    def set_preference(self, key: str | None, field: str, value) -> None:
        ...

    def apply_explicit_request(self, key: str | None, request: ExplicitRequest | None) -> None:
        ...

    def locked(self, key: str | None):
        ...


class ContextStore(PreferenceStore, Protocol):
    """Preference store that also records turns for the router."""

    def add_user_turn(self, key: str | None, content, route=None, lang=None, dialect=None, intent=None, doc_id=None) -> None:
        ...

    def get_router_context(self, key: str | None) -> RouterContext:
        ...

    def is_doc_follow_up(self, key: str | None) -> DocFollowUp:
        ...


@dataclass
class _Session:
    last_active: float
    turns: deque = field(default_factory=lambda: deque(maxlen=MAX_TURNS))
    turn_count: int = 0
    prefs: SessionPreferences = DEFAULT_PREFERENCES
    pref_updated_at: float | None = None
    dominant_lang: str | None = None
    dominant_dialect: str | None = None
    last_route: str | None = None
    active_doc_id: str | None = None


@dataclass
class _KeyLock:
    lock: threading.RLock = field(default_factory=threading.RLock)
    holders: int = 0


class ConversationStore:
    """In-memory, thread-safe `PreferenceStore` with LRU + idle-TTL bounds.

    Args:
        max_sessions: LRU bound on stored sessions.
        session_ttl_seconds: Idle time after which a session is dropped.
        pref_ttl_seconds: Time after the last preference update at which
            preferences read as defaults again.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        session_ttl_seconds: float = DEFAULT_SESSION_TTL_SECONDS,
        pref_ttl_seconds: float = DEFAULT_PREF_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_sessions = max(1, int(max_sessions))
        self.session_ttl_seconds = session_ttl_seconds
        self.pref_ttl_seconds = pref_ttl_seconds
        self._clock = clock
        self._sessions: OrderedDict[str, _Session] = OrderedDict()
        self._key_locks: dict[str, _KeyLock] = {}
        self._guard = threading.Lock()

    # =========================================================
    # LOCKING
    # =========================================================

    @contextmanager
    def locked(self, key: str | None) -> Iterator[None]:
        """Serialize a read-modify-write sequence for one session key.

        Re-entrant for the owning thread. Lock entries exist only while some
        caller holds or waits on them.
        """
        if not key:
            yield
            return

        with self._guard:
            entry = self._key_locks.get(key)
            if entry is None:
                entry = self._key_locks[key] = _KeyLock()
            entry.holders += 1

        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.holders -= 1
                if entry.holders == 0:
                    self._key_locks.pop(key, None)

    # =========================================================
    # SESSION TABLE
    # =========================================================

    def _expired(self, sess: _Session, now: float) -> bool:
        return now - sess.last_active > self.session_ttl_seconds

    def _lookup(self, key: str | None, create: bool = False) -> _Session | None:
        if not key:
            return None

        now = self._clock()
        with self._guard:
            sess = self._sessions.get(key)
            if sess is not None and self._expired(sess, now):
                del self._sessions[key]
                logger.debug("Session expired: %s", key)
                sess = None

            if sess is None:
                if not create:
                    return None
                sess = _Session(last_active=now)
                self._sessions[key] = sess
                while len(self._sessions) > self.max_sessions:
                    evicted, _ = self._sessions.popitem(last=False)
                    logger.debug("Session evicted (LRU): %s", evicted)

            if create:
                sess.last_active = now
                self._sessions.move_to_end(key)

            return sess

    def cleanup_expired(self) -> int:
        """Drop every idle session; return how many were removed."""
        now = self._clock()
        with self._guard:
            expired = [k for k, s in self._sessions.items() if self._expired(s, now)]
            for key in expired:
                del self._sessions[key]

        if expired:
            logger.debug("Cleaned up %d expired sessions", len(expired))
        return len(expired)

    def clear(self, key: str | None = None) -> None:
        """Forget one session, or every session when `key` is omitted."""
        with self._guard:
            if key is None:
                self._sessions.clear()
            else:
                self._sessions.pop(key, None)

    def get_stats(self) -> dict:
        with self._guard:
            sessions = list(self._sessions.values())
        return {
            "active_sessions": len(sessions),
            "total_turns": sum(len(s.turns) for s in sessions),
        }

    # =========================================================
    # PREFERENCES
    # =========================================================

    def _prefs_valid(self, sess: _Session) -> bool:
        if sess.pref_updated_at is None:
            return False
        return self._clock() - sess.pref_updated_at < self.pref_ttl_seconds

    def get_preferences(self, key: str | None) -> SessionPreferences:
        """Return the stored preferences, or defaults when unset or stale."""
        sess = self._lookup(key)
        if sess is None or not self._prefs_valid(sess):
            return DEFAULT_PREFERENCES
        return sess.prefs

    def set_preference(self, key: str | None, field: str, value) -> None:
        """Write one preference field.

        Unknown fields and out-of-domain values are ignored (logged at debug).
        `dialect_intensity` is clamped to [0, 1].
        """
        if not key:
            return

        if field not in PREFERENCE_FIELDS:
            logger.debug("Ignoring unknown preference field %r for %s", field, key)
            return

        if field == "dialect" and value not in PREFERENCE_DIALECTS:
            logger.debug("Ignoring invalid dialect preference %r for %s", value, key)
            return

        if field == "language" and value not in PREFERENCE_LANGUAGES:
            logger.debug("Ignoring invalid language preference %r for %s", value, key)
            return

        if field == "dialect_intensity":
            try:
                value = min(1.0, max(0.0, float(value)))
            except (TypeError, ValueError):
                logger.debug("Ignoring invalid dialect intensity %r for %s", value, key)
                return

        with self.locked(key):
            sess = self._lookup(key, create=True)
            base = sess.prefs if self._prefs_valid(sess) else DEFAULT_PREFERENCES
            sess.prefs = replace(base, **{field: value})
            sess.pref_updated_at = self._clock()

    def apply_explicit_request(self, key: str | None, request: ExplicitRequest | None) -> None:
        """Turn a detected explicit request into sticky preferences.

        `KELANTAN` -> `klate`, `UTARA` -> `utara` (intensity 0.35);
        `STANDARD` -> `none` (intensity 0). A language switch is stored as-is.
        """
        if not key or request is None or not request.requested:
            return

        with self.locked(key):
            if request.lang:
                self.set_preference(key, "language", request.lang)

            if request.dialect:
                code = DIALECT_PREFERENCE_CODES.get(request.dialect, "none")
                self.set_preference(key, "dialect", code)
                intensity = 0.0 if code == "none" else EXPLICIT_DIALECT_INTENSITY
                self.set_preference(key, "dialect_intensity", intensity)

    # =========================================================
    # TURNS
    # =========================================================

    def add_user_turn(
        self,
        key: str | None,
        content,
        route: str | None = None,
        lang: str | None = None,
        dialect: str | None = None,
        intent: str | None = None,
        doc_id: str | None = None,
    ) -> None:
        if not key:
            return

        with self.locked(key):
            sess = self._lookup(key, create=True)
            sess.turns.append(ConversationTurn(
                role="user",
                content=str(content or "")[:MAX_CONTENT_CHARS],
                route=route,
                lang=lang,
                dialect=dialect,
                intent=intent,
                doc_id=doc_id,
                ts=self._clock(),
            ))
            sess.turn_count += 1
            self._recalc_dominant(sess)
            if route:
                sess.last_route = route
            if doc_id:
                sess.active_doc_id = doc_id

    def add_assistant_turn(self, key: str | None, content, route: str | None = None) -> None:
        if not key:
            return

        with self.locked(key):
            sess = self._lookup(key, create=True)
            sess.turns.append(ConversationTurn(
                role="assistant",
                content=str(content or "")[:MAX_CONTENT_CHARS],
                route=route,
                ts=self._clock(),
            ))
            sess.turn_count += 1

    @staticmethod
    def _recalc_dominant(sess: _Session) -> None:
        user_turns = [t for t in sess.turns if t.role == "user" and t.lang]
        if not user_turns:
            return

        langs = Counter(t.lang for t in user_turns)
        dialects = Counter(t.dialect for t in user_turns if t.dialect)
        sess.dominant_lang = langs.most_common(1)[0][0]
        sess.dominant_dialect = dialects.most_common(1)[0][0] if dialects else None

    def get_router_context(self, key: str | None) -> RouterContext:
        sess = self._lookup(key)
        if sess is None or not sess.turns:
            return EMPTY_ROUTER_CONTEXT

        with self.locked(key):
            user_turns = [t for t in sess.turns if t.role == "user"]
            last_user = user_turns[-1].content[:LAST_MESSAGE_PREVIEW_CHARS] if user_turns else None
            return RouterContext(
                turn_count=sess.turn_count,
                is_first_turn=sess.turn_count == 0,
                last_route=sess.last_route,
                dominant_lang=sess.dominant_lang,
                dominant_dialect=sess.dominant_dialect,
                active_doc_id=sess.active_doc_id,
                recent_intents=tuple(t.intent for t in user_turns[-3:] if t.intent),
                last_user_message=last_user,
            )

    def get_history_messages(self, key: str | None, max_turns: int = 6) -> list[dict]:
        """Return recent turns as `{role, content}` dicts for a chat-style LLM call.

        The most recent turn is left out; callers append the current user
        message themselves.
        """
        sess = self._lookup(key)
        if sess is None or not sess.turns or max_turns <= 0:
            return []

        with self.locked(key):
            turns = list(sess.turns)
        recent = turns[-(max_turns + 1):-1]
        return [{"role": t.role, "content": t.content} for t in recent]

    def is_doc_follow_up(self, key: str | None) -> DocFollowUp:
        """Check whether the last two user turns involved a document."""
        sess = self._lookup(key)
        if sess is None:
            return DocFollowUp(False, None)

        with self.locked(key):
            recent_user = [t for t in sess.turns if t.role == "user"][-2:]
            for turn in recent_user:
                if turn.route == "DOCUMENT" or turn.doc_id:
                    return DocFollowUp(True, turn.doc_id or sess.active_doc_id)
            return DocFollowUp(False, sess.active_doc_id)
