"""Message classification and routing pipeline for a Malay/English chat surface.

Public entry points:
    - `route_message` / `MessageRouter`: full pipeline producing `RouteDecision`.
    - Analysis stages usable on their own: `normalize_input`,
      `detect_language_and_dialect`, `classify_intent`, `reformulate_query`,
      `check_prompt_injection`, `check_budget`, `scan_output_for_leaks`.
    - Output-side helpers: `sanitize_output`, `apply_dialect_post_process`,
      `redact_leaks`.
"""

from chatroute.core.engine import MessageRouter, route_message
from chatroute.core.pipeline_config import PipelineSettings
from chatroute.core.routing_types import DecodingConfig, RouteDecision, RouteType
from chatroute.memory.conversation_manager import ConversationStore, SessionPreferences
from chatroute.nlp.dialect import (
    apply_dialect_post_process,
    build_smalltalk_stabilizer,
    conservative_spell_correct,
    detect_explicit_request,
    detect_language_and_dialect,
)
from chatroute.nlp.intent_classifier import Intent, classify_intent
from chatroute.nlp.normalizer import normalize_input, sanitize_output
from chatroute.nlp.query_rewriter import is_url_safe, reformulate_query, should_browse_web
from chatroute.safety.budget import check_budget, estimate_tokens
from chatroute.safety.filter import check_prompt_injection, redact_leaks, scan_output_for_leaks

__all__ = [
    "ConversationStore",
    "DecodingConfig",
    "Intent",
    "MessageRouter",
    "PipelineSettings",
    "RouteDecision",
    "RouteType",
    "SessionPreferences",
    "apply_dialect_post_process",
    "build_smalltalk_stabilizer",
    "check_budget",
    "check_prompt_injection",
    "classify_intent",
    "conservative_spell_correct",
    "detect_explicit_request",
    "detect_language_and_dialect",
    "estimate_tokens",
    "is_url_safe",
    "normalize_input",
    "redact_leaks",
    "reformulate_query",
    "route_message",
    "sanitize_output",
    "scan_output_for_leaks",
    "should_browse_web",
]
