"""
Tests for environment-driven settings and attachment context parsing.
"""

import pytest

from chatroute.core.attachments import EMPTY_CONTEXT, AttachmentContext, parse_attachment_context
from chatroute.core.pipeline_config import PipelineSettings


ENV_VARS = (
    "DIALECT_MIRRORING_LEVEL",
    "SMALLTALK_STABILIZER",
    "WEB_RESEARCH_ENABLED",
    "SPELL_CORRECT_ENABLED",
    "MAX_CONTEXT_TOKENS",
    "SESSION_TTL_SECONDS",
    "PREF_TTL_SECONDS",
    "MAX_SESSIONS",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


# =========================================================
# SETTINGS
# =========================================================


class TestPipelineSettings:

    def test_defaults(self, clean_env):
        settings = PipelineSettings.from_env()

        assert settings == PipelineSettings()
        assert settings.dialect_mirroring_level == "light"
        assert settings.smalltalk_stabilizer is True
        assert settings.web_research_enabled is False
        assert settings.max_context_tokens == 32000

    def test_overrides(self, clean_env):
        clean_env.setenv("DIALECT_MIRRORING_LEVEL", "Medium")
        clean_env.setenv("SMALLTALK_STABILIZER", "off")
        clean_env.setenv("WEB_RESEARCH_ENABLED", "yes")
        clean_env.setenv("MAX_CONTEXT_TOKENS", "8000")
        clean_env.setenv("MAX_SESSIONS", "50")

        settings = PipelineSettings.from_env()

        assert settings.dialect_mirroring_level == "medium"
        assert settings.smalltalk_stabilizer is False
        assert settings.web_research_enabled is True
        assert settings.max_context_tokens == 8000
        assert settings.max_sessions == 50

    @pytest.mark.parametrize(
        "name,value,attr,expected",
        [
            ("DIALECT_MIRRORING_LEVEL", "extreme", "dialect_mirroring_level", "light"),
            ("SPELL_CORRECT_ENABLED", "perhaps", "spell_correct_enabled", True),
            ("MAX_CONTEXT_TOKENS", "lots", "max_context_tokens", 32000),
            ("SESSION_TTL_SECONDS", "-5", "session_ttl_seconds", 1800),
            ("PREF_TTL_SECONDS", "   ", "pref_ttl_seconds", 3600),
        ],
    )
    def test_invalid_values_fall_back(self, clean_env, name, value, attr, expected):
        clean_env.setenv(name, value)

        assert getattr(PipelineSettings.from_env(), attr) == expected

    def test_settings_are_frozen(self):
        with pytest.raises(Exception):
            PipelineSettings().max_sessions = 1


# =========================================================
# ATTACHMENTS
# =========================================================


class TestParseAttachmentContext:

    def test_none(self):
        assert parse_attachment_context(None) is EMPTY_CONTEXT

    def test_camel_case_keys(self):
        context = parse_attachment_context({"hasImage": True, "docFollowUp": True})

        assert context.has_image
        assert context.doc_follow_up
        assert not context.has_doc

    def test_snake_case_keys(self):
        context = parse_attachment_context({"has_doc": True})

        assert context.has_doc

    def test_document_payload(self):
        context = parse_attachment_context(
            {"hasDoc": True, "doc": {"kind": "pages", "text": "Invoice total RM120", "docId": "inv-7"}}
        )

        assert context.doc.kind == "pages"
        assert context.doc_text == "Invoice total RM120"
        assert context.doc_id == "inv-7"

    def test_instance_passes_through(self):
        context = AttachmentContext(has_image=True)

        assert parse_attachment_context(context) is context

    @pytest.mark.parametrize("raw", [{"hasImage": "maybe"}, "not a mapping", 42, {"doc": "text"}])
    def test_invalid_context_is_replaced(self, raw):
        assert parse_attachment_context(raw) == EMPTY_CONTEXT

    def test_unknown_keys_are_ignored(self):
        context = parse_attachment_context({"hasImage": True, "trackingId": "abc"})

        assert context.has_image
