"""Core routing pipeline turning one user message into a `RouteDecision`.

Architectural role:
    Sits between transport layers (HTTP, messaging gateways) and the
    inference-calling layer. It is the only component that calls the analysis
    modules; none of them call each other.

Control-flow model:
    1. Normalize input (`nlp.normalizer`).
    2. Detect language/dialect and any explicit switch request (`nlp.dialect`).
    3. Under the session lock: store the explicit request, read sticky
       preferences, resolve the effective language/dialect.
    4. Conservative spell correction protecting dialect tokens.
    5. Classify intent (`nlp.intent_classifier`).
    6. Resolve the route: DOCUMENT > VISION > WEB_RESEARCH > per-intent route
       > GENERAL_CHAT, then the document follow-up override.
    7. Reformulate a search query for WEB_RESEARCH (`nlp.query_rewriter`).
    8. Safety report: prompt injection + context budget (`safety`).
    9. System prompt (`prompting.prompt_builder`) and decoding limits.
    10. Record the user turn and log one line per decision.

Language precedence:
    Per-message detection < sticky session preference < explicit request in
    this message. English without dialect tokens always clears the dialect.

Error handling strategy:
    Every stage is total over malformed input. Invalid attachment payloads are
    logged and replaced by an empty context. Safety failures are reported in
    `RouteDecision.safety`; rejecting the request is the caller's decision.

Determinism:
    Deterministic for fixed input, settings and session state.
"""

import logging
import re
import time

from chatroute.core.attachments import AttachmentContext, parse_attachment_context
from chatroute.core.pipeline_config import PipelineSettings
from chatroute.core.routing_types import (
    DECODING_CONFIGS,
    DEFAULT_DECODING,
    PipelineTrace,
    RouteDecision,
    RouteType,
    SafetyReport,
)
from chatroute.memory.conversation_manager import (
    PREFERENCE_DIALECT_NAMES,
    ContextStore,
    ConversationStore,
    RouterContext,
    SessionPreferences,
)
from chatroute.nlp.dialect import (
    KELANTAN,
    STANDARD,
    UTARA,
    LanguageDialectResult,
    conservative_spell_correct,
    detect_language_and_dialect,
)
from chatroute.nlp.intent_classifier import Intent, IntentResult, classify_intent
from chatroute.nlp.normalizer import normalize_input
from chatroute.nlp.query_rewriter import reformulate_query, should_browse_web
from chatroute.prompting.prompt_builder import build_system_prompt
from chatroute.safety.budget import check_budget
from chatroute.safety.filter import check_prompt_injection


logger = logging.getLogger(__name__)


INTENT_ROUTES = {
    Intent.DOCUMENT: RouteType.DOCUMENT,
    Intent.WEB_RESEARCH: RouteType.WEB_RESEARCH,
    Intent.SMALLTALK: RouteType.SMALLTALK,
    Intent.IMAGE_GEN: RouteType.IMAGE_GEN,
    Intent.TASK: RouteType.TASK,
}

VISION_DOC_KINDS = ("pages", "image")

DOC_FOLLOW_UP_RE = re.compile(
    r"\b(yang tadi|tu tadi|dokumen|document|file|the one|dalam tu|yang tu|summarize|summary|"
    r"from that|point|section|part|pasal|bahagian|berapa|how much|total|amount|what about)\b",
    flags=re.IGNORECASE,
)

DEFAULT_PREF_INTENSITY = 0.25


def _resolve_language(
    detected: LanguageDialectResult,
    prefs: SessionPreferences,
) -> tuple[LanguageDialectResult, bool, float]:
    """Layer sticky preferences and this turn's explicit request over detection.

    Returns the effective result, whether the dialect was explicitly chosen,
    and the dialect intensity to use for output post-processing.
    """
    language = detected.language
    dialect = detected.dialect
    explicit = False
    intensity = prefs.dialect_intensity or DEFAULT_PREF_INTENSITY

    if prefs.language:
        language = prefs.language

    pref_dialect = PREFERENCE_DIALECT_NAMES.get(prefs.dialect)
    if pref_dialect:
        dialect = pref_dialect
        explicit = True

    request = detected.explicit_request
    if request.requested:
        if request.lang:
            language = request.lang
        if request.dialect:
            dialect = request.dialect
            explicit = request.dialect in (UTARA, KELANTAN)

    if language == "en" and not detected.utara_score and not detected.kelantan_score:
        dialect = None
    elif language == "ms" and dialect is None:
        dialect = STANDARD

    if dialect not in (UTARA, KELANTAN):
        explicit = False
        intensity = 0.0

    effective = detected.with_overrides(language=language, dialect=dialect)
    return effective, explicit, intensity


def _is_doc_follow_up(text: str, attachments: AttachmentContext, recent_doc: bool, context: RouterContext) -> bool:
    if attachments.has_doc or attachments.has_image:
        return False
    if not (attachments.doc_follow_up or recent_doc):
        return False
    if not text:
        return False
    return bool(DOC_FOLLOW_UP_RE.search(text)) or context.last_route == RouteType.DOCUMENT.value


class MessageRouter:
    """Routing pipeline bound to one preference store and one settings object.

    Args:
        store: Session store; a new `ConversationStore` sized from `settings`
            when omitted.
        settings: Pipeline switches; read from the environment when omitted.
    """

    def __init__(self, store: ContextStore | None = None, settings: PipelineSettings | None = None):
        self.settings = settings or PipelineSettings.from_env()
        self.store = store or ConversationStore(
            max_sessions=self.settings.max_sessions,
            session_ttl_seconds=self.settings.session_ttl_seconds,
            pref_ttl_seconds=self.settings.pref_ttl_seconds,
        )

    def _route_type(self, intent: IntentResult, attachments: AttachmentContext, text: str) -> tuple[RouteType, str]:
        if attachments.has_doc or attachments.doc is not None:
            kind = attachments.doc.kind if attachments.doc is not None else "unknown"
            return RouteType.DOCUMENT, f"document_upload:{kind}"

        if attachments.has_image:
            return RouteType.VISION, "image_upload"

        if intent.intent == Intent.WEB_RESEARCH:
            return RouteType.WEB_RESEARCH, f"web_research:{intent.reason}"

        if intent.intent == Intent.QUESTION and self.settings.web_research_enabled:
            browse = should_browse_web(text)
            if browse.should_browse:
                return RouteType.WEB_RESEARCH, f"web_research:{browse.reason}"

        route = INTENT_ROUTES.get(intent.intent, RouteType.GENERAL_CHAT)
        return route, f"intent:{intent.reason}"

    async def route(self, text, context=None, session_key: str | None = None) -> RouteDecision:
        """Run the full pipeline for one message.

        Args:
            text: Raw user message (may be empty for attachment-only turns).
            context: Attachment context as a mapping or `AttachmentContext`.
            session_key: Visitor/session identifier; `None` disables session
                preferences and turn recording.

        Returns:
            `RouteDecision` embedding every stage's sub-result.
        """
        started = time.perf_counter()
        settings = self.settings
        store = self.store

        attachments = parse_attachment_context(context)
        normalized = normalize_input(text)
        clean = normalized.normalized

        detected = detect_language_and_dialect(clean)

        with store.locked(session_key):
            store.apply_explicit_request(session_key, detected.explicit_request)
            prefs = store.get_preferences(session_key)
            router_context = store.get_router_context(session_key)
            recent_doc = store.is_doc_follow_up(session_key).is_follow_up

        lang, dialect_is_explicit, dialect_intensity = _resolve_language(detected, prefs)

        corrections = []
        text_for_classify = clean
        if settings.spell_correct_enabled:
            spell = conservative_spell_correct(clean, detected.dialect_tokens_found)
            text_for_classify = spell.corrected or clean
            corrections = spell.corrections

        has_doc = attachments.has_doc or attachments.doc is not None
        intent = classify_intent(text_for_classify, {"has_doc": has_doc})

        route_type, reason = self._route_type(intent, attachments, text_for_classify)

        if route_type not in (RouteType.WEB_RESEARCH, RouteType.IMAGE_GEN) and _is_doc_follow_up(
            clean, attachments, recent_doc, router_context
        ):
            route_type = RouteType.DOCUMENT
            intent = IntentResult(Intent.DOCUMENT, max(intent.confidence, 0.7), "doc_followup")
            reason = "intent:doc_followup"

        web_query = reformulate_query(clean) if route_type == RouteType.WEB_RESEARCH else None

        safety = SafetyReport(
            injection=check_prompt_injection(clean),
            budget=check_budget(clean, settings.max_context_tokens, doc_text=attachments.doc_text),
        )
        if not safety.injection.safe:
            logger.warning("Unsafe input session=%s reason=%s", session_key, safety.injection.reason)
        if not safety.budget.ok:
            logger.warning("Input over budget session=%s %s", session_key, safety.budget.reason)

        system_prompt = build_system_prompt(
            route_type,
            lang,
            dialect_level=settings.dialect_mirroring_level,
            stabilizer_enabled=settings.smalltalk_stabilizer,
        )

        with store.locked(session_key):
            store.add_user_turn(
                session_key,
                clean,
                route=route_type.value,
                lang=lang.language,
                dialect=lang.dialect,
                intent=intent.intent.value,
                doc_id=attachments.doc_id,
            )
            turn_count = store.get_router_context(session_key).turn_count

        doc = attachments.doc
        trace = PipelineTrace(
            original=normalized.raw,
            normalized=clean,
            normalize_meta=dict(normalized.meta),
            corrections=list(corrections),
            needs_vision=doc is not None and doc.kind in VISION_DOC_KINDS,
            dialect_is_explicit=dialect_is_explicit,
            dialect_intensity=dialect_intensity,
            duration_ms=round((time.perf_counter() - started) * 1000, 3),
            turn_count=turn_count,
            last_route=router_context.last_route,
        )

        decision = RouteDecision(
            route_type=route_type,
            system_prompt=system_prompt,
            lang=lang,
            intent=intent,
            decoding_config=DECODING_CONFIGS.get(route_type, DEFAULT_DECODING),
            reason=reason,
            explicit_request=detected.explicit_request,
            web_query=web_query,
            safety=safety,
            trace=trace,
        )

        logger.info(
            "route=%s intent=%s lang=%s dialect=%s reason=%s duration_ms=%.1f",
            route_type.value,
            intent.intent.value,
            lang.language,
            lang.dialect,
            reason,
            trace.duration_ms,
        )
        return decision


_DEFAULT_ROUTER: MessageRouter | None = None


def set_default_router(router: MessageRouter | None) -> None:
    """Override or clear the router used by `route_message`."""
    global _DEFAULT_ROUTER
    _DEFAULT_ROUTER = router


def get_default_router() -> MessageRouter:
    """Lazily build and cache a router from environment settings."""
    global _DEFAULT_ROUTER
    if _DEFAULT_ROUTER is None:
        _DEFAULT_ROUTER = MessageRouter()
    return _DEFAULT_ROUTER


async def route_message(text, context=None, session_key: str | None = None) -> RouteDecision:
    """Route one message with the process-wide default router."""
    return await get_default_router().route(text, context=context, session_key=session_key)
