"""Rule-based intent classification producing `IntentResult` for the router.

Intent classification logic:
- A fixed precedence chain (`INTENT_RULES`) is evaluated top to bottom and the
  first matching rule wins:
  1. `DOCUMENT`     -> attachment context carries a document.
  2. `WEB_RESEARCH` -> explicit search trigger ("cari web", "latest news").
  3. `IMAGE_GEN`    -> generation verb + visual noun, or a drawing verb.
  4. `TASK`         -> actionable request verb/phrase ("tolong buatkan").
  5. `SMALLTALK`    -> greeting/phatic token in a short message.
- Fallback: `QUESTION` for interrogative form, otherwise `GENERAL_CHAT`.

Interaction with core:
- `engine.MessageRouter` maps the returned intent onto a `RouteType`; intent
  and route are kept separate because attachments can override the intent.

Determinism:
- Pure keyword matching; identical input yields identical output.

Failure handling:
- Empty / non-string input -> `GENERAL_CHAT` with reason `empty`.
"""

import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum


class Intent(str, Enum):
    SMALLTALK = "SMALLTALK"
    QUESTION = "QUESTION"
    TASK = "TASK"
    WEB_RESEARCH = "WEB_RESEARCH"
    IMAGE_GEN = "IMAGE_GEN"
    DOCUMENT = "DOCUMENT"
    GENERAL_CHAT = "GENERAL_CHAT"


@dataclass(frozen=True)
class IntentResult:
    """Classified intent with a machine-readable justification."""

    intent: Intent
    confidence: float
    reason: str


# =========================================================
# KEYWORD TABLES
# =========================================================

WEB_TRIGGERS = (
    "cari web", "search web", "browse web", "web search", "search online",
    "cari online", "google", "harga pasaran", "latest news", "berita terkini",
    "berita terbaru", "current price", "cari harga", "find price", "semak harga",
)

IMAGE_GEN_VERBS = (
    "generate", "create", "make", "buat", "buatkan", "hasilkan", "cipta", "design",
)

IMAGE_NOUNS = (
    "image", "picture", "photo", "gambar", "poster", "logo", "illustration",
    "ilustrasi", "wallpaper", "art", "seni", "icon", "ikon", "banner", "avatar",
)

DRAWING_VERBS = ("draw", "lukis", "lukiskan", "sketch", "paint")

TASK_PHRASES = (
    "tolong buat", "boleh buat", "show me how", "explain step", "jelaskan langkah",
)

TASK_VERBS = (
    # English
    "generate", "create", "build", "install", "setup", "configure",
    "edit", "convert", "fix", "deploy", "write", "code", "implement",
    "translate", "compare", "analyze", "calculate", "format",
    "summarize", "summarise", "list", "sort", "filter", "extract",
    "debug", "optimize", "refactor", "design", "plan", "draft",
    # Malay
    "buat", "buatkan", "ringkaskan", "susun", "tukar", "hasilkan",
    "cipta", "tulis", "tuliskan", "kira", "ubah", "betulkan",
    "terjemah", "terjemahkan", "senaraikan", "bandingkan", "carikan",
)

GREETING_PHRASES = (
    "good morning", "good afternoon", "good evening", "good night",
    "what's up", "whats up", "selamat pagi", "selamat petang",
    "selamat malam", "selamat tengahari", "apa khabar", "apa habaq",
    "pa habaq", "pa khabar", "gapo khabar", "dok mana", "makan ka",
    "lama dah", "terima kasih", "thank you", "jumpa lagi", "bye bye",
)

GREETING_TOKENS = (
    "hi", "hello", "hey", "yo", "sup", "morning", "howdy",
    "assalamualaikum", "salam", "hai", "helo", "weh", "wei",
    "habaq", "bye", "tata", "thanks", "ok", "okay", "baik", "tq", "thx",
)

QUESTION_WORDS = (
    "what", "how", "why", "when", "where", "which", "who",
    "apa", "bagaimana", "kenapa", "mengapa", "bila", "siapa",
    "berapa", "adakah", "bolehkah", "cemana", "pasaipa", "awat",
    "sapa", "gapo", "bakpo", "guano",
)

QUESTION_PHRASES = ("di mana", "macam mana", "lagu mano")

SMALLTALK_MAX_CHARS = 80

WORD_RE = re.compile(r"[\w']+")


# =========================================================
# HELPERS
# =========================================================


@dataclass(frozen=True)
class _Message:
    raw: str
    lower: str
    words: frozenset
    has_doc: bool


def _context_flag(context, name: str, camel: str) -> bool:
    """Read a boolean attachment flag from a mapping or an attribute object."""
    if context is None:
        return False
    if isinstance(context, Mapping):
        return bool(context.get(name, context.get(camel, False)))
    return bool(getattr(context, name, False))


def _first_phrase(lower: str, phrases) -> str | None:
    for phrase in phrases:
        if phrase in lower:
            return phrase
    return None


def _first_word(words: frozenset, tokens) -> str | None:
    for token in tokens:
        if token in words:
            return token
    return None


# =========================================================
# PRECEDENCE CHAIN
# =========================================================
# Each predicate returns `(confidence, reason)` on match, `None` otherwise.


def _document(msg: _Message):
    if msg.has_doc:
        return 1.0, "doc_attachment"
    return None


def _web_research(msg: _Message):
    trigger = _first_phrase(msg.lower, WEB_TRIGGERS)
    if trigger:
        return 0.9, f"web_keyword:{trigger}"
    return None


def _image_gen(msg: _Message):
    drawing = _first_word(msg.words, DRAWING_VERBS)
    if drawing:
        return 0.9, f"image_gen:{drawing}"

    verb = _first_word(msg.words, IMAGE_GEN_VERBS)
    noun = _first_word(msg.words, IMAGE_NOUNS)
    if verb and noun:
        return 0.9, f"image_gen:{verb}+{noun}"
    return None


def _task(msg: _Message):
    phrase = _first_phrase(msg.lower, TASK_PHRASES)
    if phrase:
        return 0.9, f"task_verb:{phrase}"

    verb = _first_word(msg.words, TASK_VERBS)
    if verb:
        return 0.85, f"task_verb:{verb}"
    return None


def _smalltalk(msg: _Message):
    if len(msg.raw) >= SMALLTALK_MAX_CHARS:
        return None

    phrase = _first_phrase(msg.lower, GREETING_PHRASES)
    if phrase:
        return 0.9, f"greeting:{phrase}"

    token = _first_word(msg.words, GREETING_TOKENS)
    if token:
        return 0.85, f"greeting:{token}"
    return None


@dataclass(frozen=True)
class IntentRule:
    intent: Intent
    predicate: Callable[[_Message], tuple | None]


INTENT_RULES = (
    IntentRule(Intent.DOCUMENT, _document),
    IntentRule(Intent.WEB_RESEARCH, _web_research),
    IntentRule(Intent.IMAGE_GEN, _image_gen),
    IntentRule(Intent.TASK, _task),
    IntentRule(Intent.SMALLTALK, _smalltalk),
)


def _fallback(msg: _Message) -> IntentResult:
    if "?" in msg.raw:
        return IntentResult(Intent.QUESTION, 0.8, "question_mark")

    word = _first_word(msg.words, QUESTION_WORDS) or _first_phrase(msg.lower, QUESTION_PHRASES)
    if word:
        return IntentResult(Intent.QUESTION, 0.7, f"question_word:{word}")

    return IntentResult(Intent.GENERAL_CHAT, 0.5, "default")


def classify_intent(text, context=None) -> IntentResult:
    """
    Classify a message into one `Intent`.

    Args:
        text: Normalized (optionally spell-corrected) user message.
        context: Attachment context; a mapping with `has_doc` / `hasDoc` or any
            object exposing `has_doc`.

    Edge cases:
    - Empty text with a document attached still resolves to `DOCUMENT`.
    - Empty text otherwise -> `GENERAL_CHAT`, confidence 0.1, reason `empty`.
    """
    has_doc = _context_flag(context, "has_doc", "hasDoc")

    if not text or not isinstance(text, str) or not text.strip():
        if has_doc:
            return IntentResult(Intent.DOCUMENT, 1.0, "doc_attachment")
        return IntentResult(Intent.GENERAL_CHAT, 0.1, "empty")

    raw = text.strip()
    lower = raw.lower()
    msg = _Message(raw=raw, lower=lower, words=frozenset(WORD_RE.findall(lower)), has_doc=has_doc)

    for rule in INTENT_RULES:
        matched = rule.predicate(msg)
        if matched is not None:
            confidence, reason = matched
            return IntentResult(rule.intent, confidence, reason)

    return _fallback(msg)
