"""
Tests for ConversationStore: sticky preferences, turn window, expiry,
LRU eviction and per-key locking.
"""

import threading

import pytest

from chatroute.memory.conversation_manager import (
    DEFAULT_PREFERENCES,
    EMPTY_ROUTER_CONTEXT,
    LAST_MESSAGE_PREVIEW_CHARS,
    MAX_CONTENT_CHARS,
    MAX_TURNS,
    ConversationStore,
)
from chatroute.nlp.dialect import KELANTAN, STANDARD, UTARA, ExplicitRequest


@pytest.fixture
def store(clock):
    return ConversationStore(session_ttl_seconds=10000, pref_ttl_seconds=3600, clock=clock)


# =========================================================
# PREFERENCES
# =========================================================


class TestPreferences:

    def test_defaults_for_unknown_key(self, store):
        prefs = store.get_preferences("visitor-1")

        assert prefs == DEFAULT_PREFERENCES
        assert prefs.dialect == "none"
        assert prefs.language is None
        assert prefs.dialect_intensity == 0.0

    def test_kelantan_request_then_standard_reset(self, store):
        store.apply_explicit_request("v", ExplicitRequest(requested=True, lang="ms", dialect=KELANTAN))
        prefs = store.get_preferences("v")

        assert prefs.dialect == "klate"
        assert prefs.dialect_intensity == 0.35
        assert prefs.language == "ms"

        store.apply_explicit_request("v", ExplicitRequest(requested=True, lang="ms", dialect=STANDARD))
        prefs = store.get_preferences("v")

        assert prefs.dialect == "none"
        assert prefs.dialect_intensity == 0.0

    def test_utara_request(self, store):
        store.apply_explicit_request("v", ExplicitRequest(requested=True, lang="ms", dialect=UTARA))

        assert store.get_preferences("v").dialect == "utara"

    def test_language_only_request_keeps_dialect(self, store):
        store.apply_explicit_request("v", ExplicitRequest(requested=True, lang="ms", dialect=UTARA))
        store.apply_explicit_request("v", ExplicitRequest(requested=True, lang="en"))
        prefs = store.get_preferences("v")

        assert prefs.language == "en"
        assert prefs.dialect == "utara"

    def test_no_request_is_ignored(self, store):
        store.apply_explicit_request("v", ExplicitRequest())
        store.apply_explicit_request("v", None)

        assert store.get_preferences("v") == DEFAULT_PREFERENCES

    def test_keys_are_isolated(self, store):
        store.set_preference("a", "dialect", "klate")

        assert store.get_preferences("a").dialect == "klate"
        assert store.get_preferences("b").dialect == "none"

    def test_invalid_values_are_ignored(self, store):
        store.set_preference("v", "dialect", "klingon")
        store.set_preference("v", "language", "fr")
        store.set_preference("v", "colour", "blue")
        store.set_preference("v", "dialect_intensity", "lots")

        assert store.get_preferences("v") == DEFAULT_PREFERENCES

    @pytest.mark.parametrize("value,expected", [(5, 1.0), (-2, 0.0), ("0.5", 0.5)])
    def test_intensity_is_clamped(self, store, value, expected):
        store.set_preference("v", "dialect_intensity", value)

        assert store.get_preferences("v").dialect_intensity == expected

    @pytest.mark.parametrize("key", ["", None])
    def test_empty_key_is_never_stored(self, store, key):
        store.set_preference(key, "dialect", "klate")
        store.add_user_turn(key, "hello")

        assert store.get_preferences(key) == DEFAULT_PREFERENCES
        assert store.get_stats()["active_sessions"] == 0

    def test_preferences_expire(self, clock):
        store = ConversationStore(session_ttl_seconds=10000, pref_ttl_seconds=60, clock=clock)
        store.set_preference("v", "dialect", "utara")

        clock.advance(59)
        assert store.get_preferences("v").dialect == "utara"

        clock.advance(2)
        assert store.get_preferences("v") == DEFAULT_PREFERENCES


# =========================================================
# EXPIRY AND EVICTION
# =========================================================


class TestSessionBounds:

    def test_idle_session_expires(self, clock):
        store = ConversationStore(session_ttl_seconds=100, clock=clock)
        store.add_user_turn("v", "hello", route="SMALLTALK")

        clock.advance(101)

        assert store.get_router_context("v") == EMPTY_ROUTER_CONTEXT
        assert store.get_stats()["active_sessions"] == 0

    def test_cleanup_expired(self, clock):
        store = ConversationStore(session_ttl_seconds=100, clock=clock)
        store.add_user_turn("a", "hello")
        store.add_user_turn("b", "hello")
        clock.advance(50)
        store.add_user_turn("c", "hello")
        clock.advance(60)

        assert store.cleanup_expired() == 2
        assert store.get_stats()["active_sessions"] == 1

    def test_lru_eviction(self, clock):
        store = ConversationStore(max_sessions=2, clock=clock)
        store.add_user_turn("a", "one")
        store.add_user_turn("b", "two")
        store.add_user_turn("a", "three")
        store.add_user_turn("c", "four")

        assert store.get_router_context("b") == EMPTY_ROUTER_CONTEXT
        assert store.get_router_context("a").turn_count == 2
        assert store.get_router_context("c").turn_count == 1

    def test_clear(self, store):
        store.add_user_turn("a", "one")
        store.add_user_turn("b", "two")

        store.clear("a")
        assert store.get_stats()["active_sessions"] == 1

        store.clear()
        assert store.get_stats()["active_sessions"] == 0


# =========================================================
# TURNS
# =========================================================


class TestTurns:

    def test_window_is_bounded_but_count_keeps_growing(self, store):
        for i in range(10):
            store.add_user_turn("v", f"message {i}", route="GENERAL_CHAT")

        assert store.get_stats()["total_turns"] == MAX_TURNS
        context = store.get_router_context("v")
        assert context.turn_count == 10
        assert not context.is_first_turn
        assert context.last_route == "GENERAL_CHAT"

    def test_content_is_truncated(self, store):
        store.add_user_turn("v", "x" * 5000)
        store.add_user_turn("v", "next")
        history = store.get_history_messages("v")

        assert len(history[0]["content"]) == MAX_CONTENT_CHARS

    def test_last_message_preview(self, store):
        store.add_user_turn("v", "y" * 500)

        assert len(store.get_router_context("v").last_user_message) == LAST_MESSAGE_PREVIEW_CHARS

    def test_dominant_language_and_dialect(self, store):
        store.add_user_turn("v", "apa khabar", lang="ms", dialect=KELANTAN)
        store.add_user_turn("v", "gapo demo buat", lang="ms", dialect=KELANTAN)
        store.add_user_turn("v", "hello", lang="en")
        context = store.get_router_context("v")

        assert context.dominant_lang == "ms"
        assert context.dominant_dialect == KELANTAN

    def test_recent_intents(self, store):
        for intent in ("SMALLTALK", "QUESTION", "TASK", "TASK"):
            store.add_user_turn("v", "text", intent=intent)

        assert store.get_router_context("v").recent_intents == ("QUESTION", "TASK", "TASK")

    def test_history_excludes_latest_turn(self, store):
        store.add_user_turn("v", "first")
        store.add_assistant_turn("v", "reply")
        store.add_user_turn("v", "second")

        history = store.get_history_messages("v")

        assert history == [
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "reply"},
        ]

    def test_doc_follow_up_window(self, store):
        store.add_user_turn("v", "ringkaskan", route="DOCUMENT", doc_id="doc-1")
        store.add_user_turn("v", "ok terima kasih", route="SMALLTALK")

        follow = store.is_doc_follow_up("v")
        assert follow.is_follow_up
        assert follow.doc_id == "doc-1"

        store.add_user_turn("v", "cuaca hari ini", route="GENERAL_CHAT")
        store.add_user_turn("v", "lagi satu", route="GENERAL_CHAT")

        follow = store.is_doc_follow_up("v")
        assert not follow.is_follow_up
        assert follow.doc_id == "doc-1"

    def test_doc_follow_up_unknown_key(self, store):
        assert not store.is_doc_follow_up("nobody").is_follow_up


# =========================================================
# LOCKING
# =========================================================


class TestLocking:

    def test_lock_is_reentrant_and_released(self, store):
        with store.locked("v"):
            with store.locked("v"):
                store.set_preference("v", "dialect", "klate")

        assert store.get_preferences("v").dialect == "klate"
        assert store._key_locks == {}

    def test_concurrent_read_modify_write(self, store):
        def worker():
            for _ in range(50):
                with store.locked("v"):
                    current = store.get_preferences("v").dialect_intensity
                    store.set_preference("v", "dialect_intensity", current + 0.001)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.get_preferences("v").dialect_intensity == pytest.approx(0.2)
        assert store._key_locks == {}
