"""Routing decision data contracts for `chatroute.core.engine`.

Architectural role:
    Defines the schema returned by the message router and consumed by the
    inference-calling layer when it picks a model, system prompt, and decoding
    limits for one user turn.

Control-flow interaction:
    `engine.MessageRouter.route` fills `RouteDecision` after running the
    normalizer, detector, intent classifier, and safety layer. The nested
    sub-results are embedded unchanged so that downstream audit logging can
    see exactly what each analysis stage produced.

Determinism:
    The data classes are purely structural and state-free.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from chatroute.nlp.dialect import ExplicitRequest, LanguageDialectResult
from chatroute.nlp.intent_classifier import IntentResult
from chatroute.nlp.query_rewriter import ReformulatedQuery
from chatroute.safety.budget import BudgetVerdict
from chatroute.safety.filter import InjectionVerdict


class RouteType(str, Enum):
    """Behavioral path selected for a message."""

    DOCUMENT = "DOCUMENT"
    VISION = "VISION"
    WEB_RESEARCH = "WEB_RESEARCH"
    SMALLTALK = "SMALLTALK"
    IMAGE_GEN = "IMAGE_GEN"
    TASK = "TASK"
    GENERAL_CHAT = "GENERAL_CHAT"


@dataclass(frozen=True)
class DecodingConfig:
    """Per-route sampling limits handed to the inference caller."""

    temperature: float
    top_p: float
    num_predict: int


# Smalltalk is short and warm, document/web answers are factual and long.
DECODING_CONFIGS: dict[RouteType, DecodingConfig] = {
    RouteType.SMALLTALK: DecodingConfig(temperature=0.6, top_p=0.85, num_predict=256),
    RouteType.GENERAL_CHAT: DecodingConfig(temperature=0.7, top_p=0.9, num_predict=1024),
    RouteType.TASK: DecodingConfig(temperature=0.4, top_p=0.8, num_predict=2048),
    RouteType.DOCUMENT: DecodingConfig(temperature=0.3, top_p=0.8, num_predict=4096),
    RouteType.WEB_RESEARCH: DecodingConfig(temperature=0.2, top_p=0.8, num_predict=2048),
    RouteType.IMAGE_GEN: DecodingConfig(temperature=0.8, top_p=0.95, num_predict=512),
    RouteType.VISION: DecodingConfig(temperature=0.5, top_p=0.85, num_predict=2048),
}

DEFAULT_DECODING = DecodingConfig(temperature=0.7, top_p=0.9, num_predict=1024)


@dataclass(frozen=True)
class SafetyReport:
    """Input-side safety verdicts computed while routing.

    The router never rejects on its own; the caller inspects these verdicts
    and decides whether to refuse, truncate, or continue.
    """

    injection: InjectionVerdict
    budget: BudgetVerdict

    @property
    def ok(self) -> bool:
        return self.injection.safe and self.budget.ok


@dataclass
class PipelineTrace:
    """Per-call pipeline metadata kept for logging and debugging."""

    original: str = ""
    normalized: str = ""
    normalize_meta: dict[str, Any] = field(default_factory=dict)
    corrections: list[tuple[str, str]] = field(default_factory=list)
    needs_vision: bool = False
    dialect_is_explicit: bool = False
    dialect_intensity: float = 0.0
    duration_ms: float = 0.0
    turn_count: int = 0
    last_route: str | None = None


@dataclass
class RouteDecision:
    """Single output artifact of the routing pipeline.

    Attributes:
        route_type: Selected behavioral path.
        system_prompt: Generation guidance for the selected path.
        lang: Effective language/dialect result (after session preference and
            explicit-request overrides).
        intent: Intent classification used to select the route.
        decoding_config: Sampling limits for the route.
        reason: Machine-readable route justification.
        explicit_request: Language/dialect request detected in this turn.
        web_query: Reformulated search query for `WEB_RESEARCH` routes.
        safety: Injection and budget verdicts for the normalized input.
        trace: Pipeline metadata for audit logging.
    """

    route_type: RouteType
    system_prompt: str
    lang: LanguageDialectResult
    intent: IntentResult
    decoding_config: DecodingConfig = DEFAULT_DECODING
    reason: str = ""
    explicit_request: ExplicitRequest | None = None
    web_query: ReformulatedQuery | None = None
    safety: SafetyReport | None = None
    trace: PipelineTrace = field(default_factory=PipelineTrace)

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict view for structured logging."""
        return asdict(self)
