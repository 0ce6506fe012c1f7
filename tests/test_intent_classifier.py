"""
Tests for the rule-based intent classifier and its precedence chain.
"""

import pytest

from chatroute.core.attachments import AttachmentContext
from chatroute.nlp.intent_classifier import Intent, classify_intent


# =========================================================
# PRECEDENCE CHAIN
# =========================================================


class TestPrecedence:
    """The first matching rule wins."""

    def test_document_attachment_wins(self):
        result = classify_intent("cari web harga terkini", {"has_doc": True})

        assert result.intent == Intent.DOCUMENT
        assert result.reason == "doc_attachment"
        assert result.confidence == 1.0

    def test_camel_case_context_key(self):
        result = classify_intent("ringkaskan ini", {"hasDoc": True})

        assert result.intent == Intent.DOCUMENT

    def test_attribute_context(self):
        result = classify_intent("ringkaskan ini", AttachmentContext(has_doc=True))

        assert result.intent == Intent.DOCUMENT

    def test_web_beats_task(self):
        result = classify_intent("search web and write a summary")

        assert result.intent == Intent.WEB_RESEARCH

    def test_image_beats_task(self):
        result = classify_intent("tolong buatkan gambar kucing")

        assert result.intent == Intent.IMAGE_GEN
        assert result.reason == "image_gen:buatkan+gambar"


# =========================================================
# INDIVIDUAL RULES
# =========================================================


class TestRules:

    def test_web_trigger(self):
        result = classify_intent("cari web: berita terbaru Malaysia")

        assert result.intent == Intent.WEB_RESEARCH
        assert result.reason.startswith("web_keyword:")

    def test_drawing_verb(self):
        result = classify_intent("lukis kucing comel")

        assert result.intent == Intent.IMAGE_GEN
        assert result.reason == "image_gen:lukis"

    def test_generation_verb_without_visual_noun_is_not_image(self):
        result = classify_intent("tolong buatkan surat rasmi untuk majikan")

        assert result.intent == Intent.TASK
        assert result.confidence == 0.9

    def test_english_task_verb(self):
        result = classify_intent("write a python function to sort a list")

        assert result.intent == Intent.TASK
        assert result.reason == "task_verb:write"

    @pytest.mark.parametrize("text", ["hi", "assalamualaikum", "selamat pagi", "pa habaq"])
    def test_greetings(self, text):
        result = classify_intent(text)

        assert result.intent == Intent.SMALLTALK
        assert result.reason.startswith("greeting:")

    def test_long_message_is_not_smalltalk(self):
        result = classify_intent("hello " + "x" * 90)

        assert result.intent != Intent.SMALLTALK


# =========================================================
# FALLBACK
# =========================================================


class TestFallback:

    def test_question_mark(self):
        result = classify_intent("What is the capital of France?")

        assert result.intent == Intent.QUESTION
        assert result.confidence == 0.8
        assert result.reason == "question_mark"

    def test_question_word(self):
        result = classify_intent("kenapa langit biru")

        assert result.intent == Intent.QUESTION
        assert result.reason == "question_word:kenapa"

    def test_general_chat(self):
        result = classify_intent("I like rainy weather")

        assert result.intent == Intent.GENERAL_CHAT
        assert result.reason == "default"

    @pytest.mark.parametrize("text", ["", "   ", None, 42])
    def test_empty_input(self, text):
        result = classify_intent(text)

        assert result.intent == Intent.GENERAL_CHAT
        assert result.confidence == 0.1
        assert result.reason == "empty"

    def test_empty_input_with_document(self):
        assert classify_intent("", {"has_doc": True}).intent == Intent.DOCUMENT


@pytest.mark.parametrize(
    "text",
    [
        "hi",
        "cari web harga emas",
        "lukis naga",
        "tolong buat jadual",
        "bila cuti sekolah",
        "saya suka nasi lemak",
    ],
)
def test_result_is_well_formed(text):
    result = classify_intent(text)

    assert 0 < result.confidence <= 1
    assert result.reason
