"""
Tests for system prompt assembly.
"""

from chatroute.core.routing_types import RouteType
from chatroute.nlp.dialect import STANDARD, LanguageDialectResult, detect_language_and_dialect
from chatroute.prompting.prompt_builder import (
    KELANTAN_BLOCK,
    ROUTE_BLOCKS,
    SYSTEM_IDENTITY,
    UNIVERSAL_RULES,
    build_system_prompt,
)


ENGLISH = LanguageDialectResult(language="en", dialect=None)


class TestBuildSystemPrompt:

    def test_utara_smalltalk(self):
        lang = detect_language_and_dialect("hang pa habaq")

        prompt = build_system_prompt(RouteType.SMALLTALK, lang)

        assert "Northern Malay" in prompt
        assert "WRONG dialect" in prompt
        assert "SMALLTALK STABILIZER" in prompt
        assert ROUTE_BLOCKS["SMALLTALK"] in prompt

    def test_kelantan_general_chat_mirrors_dialect(self):
        lang = LanguageDialectResult(language="ms", dialect="KELANTAN", dialect_tokens_found=("demo", "gapo"))

        prompt = build_system_prompt(RouteType.GENERAL_CHAT, lang)

        assert KELANTAN_BLOCK in prompt
        assert "DIALECT MIRRORING" in prompt

    def test_english_general_chat(self):
        prompt = build_system_prompt(RouteType.GENERAL_CHAT, ENGLISH)

        assert "Reply in English." in prompt
        assert "STABILIZER" not in prompt
        assert "DIALECT MIRRORING" not in prompt

    def test_standard_malay(self):
        lang = LanguageDialectResult(language="ms", dialect=STANDARD, formality="informal")

        prompt = build_system_prompt(RouteType.TASK, lang)

        assert "Reply in Bahasa Melayu." in prompt
        assert "relaxed tone" in prompt
        assert ROUTE_BLOCKS["TASK"] in prompt

    def test_component_order(self):
        prompt = build_system_prompt(RouteType.DOCUMENT, ENGLISH)

        assert prompt.startswith(SYSTEM_IDENTITY)
        assert prompt.endswith(UNIVERSAL_RULES)
        assert prompt.index("Reply in English.") < prompt.index(ROUTE_BLOCKS["DOCUMENT"])

    def test_unknown_route_falls_back_to_general_chat(self):
        for route in ("NOT_A_ROUTE", None):
            prompt = build_system_prompt(route, ENGLISH)

            assert ROUTE_BLOCKS["GENERAL_CHAT"] in prompt

    def test_string_route(self):
        prompt = build_system_prompt("TASK", ENGLISH)

        assert ROUTE_BLOCKS["TASK"] in prompt

    def test_stabilizer_can_be_disabled(self):
        lang = detect_language_and_dialect("hang pa habaq")

        prompt = build_system_prompt(RouteType.SMALLTALK, lang, stabilizer_enabled=False)

        assert "STABILIZER" not in prompt
        assert "Northern Malay" in prompt

    def test_dialect_rule_always_present(self):
        for route in RouteType:
            assert "DIALECT RULE" in build_system_prompt(route, ENGLISH)

    def test_deterministic(self):
        lang = detect_language_and_dialect("demo nok gapo")

        first = build_system_prompt(RouteType.SMALLTALK, lang, dialect_level="medium")
        second = build_system_prompt(RouteType.SMALLTALK, lang, dialect_level="medium")

        assert first == second

    def test_missing_language_result(self):
        prompt = build_system_prompt(RouteType.GENERAL_CHAT, None)

        assert "Reply in English." in prompt

    def test_english_reply_ignores_dialect(self):
        lang = LanguageDialectResult(
            language="en", dialect="UTARA", tone="greeting", dialect_tokens_found=("hang", "awat")
        )

        for route in (RouteType.SMALLTALK, RouteType.GENERAL_CHAT):
            prompt = build_system_prompt(route, lang)

            assert "Reply in English." in prompt
            assert "Reply in Malay" not in prompt
            assert "Northern Malay" not in prompt
            assert "DIALECT MIRRORING" not in prompt
