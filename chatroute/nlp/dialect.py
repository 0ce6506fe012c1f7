"""Dialect and language detection for Malay (Utara, Kelantan, standard) and English.

Detection model:
    - Rule-based token scoring only; no model inference, no external I/O.
    - Two disjoint dialect lexicons (`UTARA`, `KELANTAN`) are scored by the
      number of distinct entries present in the message. Multi-word entries
      (`la ni`, `lagu mano`) match as whole phrases.
    - Winner-takes-all: a dialect is reported only when its score strictly
      exceeds the other one. Equal non-zero scores fall back to `STANDARD`.
    - Malay and English function-word cues decide the base language.

Generation-side helpers:
    - `build_smalltalk_stabilizer` turns a detection result into prompt
      guidance that keeps replies in the detected dialect.
    - `apply_dialect_post_process` rewrites a few neutral pronouns and
      particles in model output into the target dialect.
    - `conservative_spell_correct` fixes obvious chat typos without touching
      dialect markers.

Interaction with core:
    `engine.MessageRouter` runs `detect_language_and_dialect` on normalized
    text, then layers session preferences and explicit requests on top of the
    result. This module never reads or writes session state.

Determinism:
    Every function is pure and deterministic for identical input.
"""

import re
from dataclasses import dataclass, field, replace


UTARA = "UTARA"
KELANTAN = "KELANTAN"
STANDARD = "STANDARD"


# =========================================================
# LEXICONS
# =========================================================
# Each dialect lexicon only holds markers exclusive to that dialect.
# Shared colloquialisms (`weh`, `make`) are scored as informal markers instead.


@dataclass(frozen=True)
class DialectLexicon:
    """Immutable token table for one regional dialect."""

    dialect: str
    tokens: frozenset

    def matches(self, words: list[str], lowered: str) -> list[str]:
        """Return lexicon entries present in a tokenized message, in lexicon order."""
        found = []
        word_set = set(words)
        for token in sorted(self.tokens):
            if " " in token:
                if re.search(r"\b" + re.escape(token) + r"\b", lowered):
                    found.append(token)
            elif token in word_set:
                found.append(token)
        return found


UTARA_LEXICON = DialectLexicon(
    dialect=UTARA,
    tokens=frozenset({
        "hang", "hampa", "depa", "pi", "mai", "dok", "sat",
        "pasaipa", "awat", "habaq", "haq", "macam tu", "macamtu",
        "noh", "la ni", "lani", "teman", "mu", "kome", "ceq",
        "watpa", "buleh", "cemana", "cokia", "denge",
        "tak leh", "boleh dak", "pa habaq", "pa khabar",
        "dak", "tok", "toksey", "ghoyak", "ekau",
        "cheq", "loqlaq", "pey", "puloq", "kecek",
    }),
)

KELANTAN_LEXICON = DialectLexicon(
    dialect=KELANTAN,
    tokens=frozenset({
        "guano", "guane", "ambo", "demo", "gapo", "mung", "kawe",
        "getek", "nnapok", "nampok", "sokmo", "pitih", "lagu mano",
        "ore", "hok", "ttube", "tube", "bui", "maghih", "nok",
        "blako", "rhoyak", "kito", "sapa", "aghe", "abe",
        "oghe", "mugo", "ghinek", "toksah", "bakpo", "klate",
        "kelate", "mace", "kace", "kelik", "nate", "nnaik",
        "droh", "ghalik", "nnate", "jjual", "bbeli", "ggetek",
    }),
)

DIALECT_LEXICONS = (UTARA_LEXICON, KELANTAN_LEXICON)

_SHARED_TOKENS = UTARA_LEXICON.tokens & KELANTAN_LEXICON.tokens
if _SHARED_TOKENS:
    raise ValueError(f"dialect lexicons must be disjoint, shared: {sorted(_SHARED_TOKENS)}")


MALAY_CUES = frozenset({
    "apa", "ini", "itu", "saya", "anda", "boleh", "tidak", "ada",
    "dan", "yang", "untuk", "dengan", "dalam", "dari", "ke",
    "sudah", "akan", "masih", "juga", "atau", "tetapi", "kerana",
    "bagaimana", "kenapa", "mengapa", "apabila", "supaya",
    "selamat", "terima", "kasih", "pagi", "petang", "malam",
    "buat", "tolong", "nak", "mau", "tak", "pergi", "gi",
    "macam", "kalau", "sebab", "pasal", "kena", "tengah",
    "dah", "belum", "lagi", "je", "ja", "kot", "kan",
    "awak", "kamu", "dia", "mereka", "kami", "kita", "mana",
    "khabar", "ingin", "mahu", "bertanya", "tanya", "siapa", "berapa",
})

ENGLISH_CUES = frozenset({
    "the", "is", "are", "was", "were", "have", "has", "been",
    "will", "would", "could", "should", "can", "this", "that",
    "with", "from", "about", "what", "how", "why", "when",
    "please", "thank", "thanks", "where", "which", "because", "however",
    "you", "your", "i", "my", "do", "does", "doing", "today", "and", "of",
})

INFORMAL_MARKERS = frozenset({
    "weh", "wei", "lah", "la", "doh", "bro", "sis", "heh", "haha", "hahaha",
    "lol", "btw", "nah", "yo", "oi", "eh", "hmm", "uhh", "bruh", "make",
    "je", "ja", "kot", "tau", "mcm", "nk", "x", "xde", "xda", "tkde",
    "dh", "gak", "sih", "gila", "best", "kah", "jer",
})

FORMAL_MARKERS = (
    "encik", "puan", "tuan", "yang berhormat", "saudara",
    "dear", "regards", "sincerely", "respectfully",
    "dengan hormatnya", "sila", "dimaklumkan",
)

GREETING_PATTERNS = (
    re.compile(r"^(hi+|hello|hey|yo+|sup|howdy)\b"),
    re.compile(r"^(assalamualaikum|salam|hai|helo)\b"),
    re.compile(r"^selamat (pagi|petang|malam|tengahari)"),
    re.compile(r"^good (morning|afternoon|evening|night)"),
    re.compile(r"^apa (khabar|habaq|cerita)"),
    re.compile(r"^pa (habaq|khabar)"),
    re.compile(r"^(hang pa habaq|habaq baik|cemana|macam mana|gapo khabar)"),
    re.compile(r"^(weh|wei|eh)\b"),
    re.compile(r"^(bye|tata|jumpa lagi|thanks|terima kasih|ok(ay)?|baik)\b"),
)

WORD_RE = re.compile(r"[\w']+")


# =========================================================
# RESULT TYPES
# =========================================================


@dataclass(frozen=True)
class ExplicitRequest:
    """Imperative user request to switch or reset language/dialect."""

    requested: bool = False
    lang: str | None = None
    dialect: str | None = None


NO_REQUEST = ExplicitRequest()


@dataclass(frozen=True)
class LanguageDialectResult:
    """Language, dialect and register detected for one message."""

    language: str = "en"
    dialect: str | None = None
    formality: str = "neutral"
    tone: str = "neutral"
    confidence: float = 0.0
    dialect_tokens_found: tuple = ()
    utara_score: int = 0
    kelantan_score: int = 0
    explicit_request: ExplicitRequest = NO_REQUEST

    def with_overrides(self, **changes) -> "LanguageDialectResult":
        """Copy with effective language/dialect applied by the router."""
        return replace(self, **changes)


@dataclass(frozen=True)
class SpellCorrection:
    corrected: str
    corrections: list = field(default_factory=list)


@dataclass(frozen=True)
class StabilizerResult:
    """Prompt guidance for dialect-consistent replies."""

    instructions: str
    dialect_token_limit: int
    max_words: int = 20
    max_sentences: int = 2


# =========================================================
# EXPLICIT REQUESTS
# =========================================================
# Evaluated in order; first match wins.

@dataclass(frozen=True)
class ExplicitRequestRule:
    pattern: re.Pattern
    lang: str | None
    dialect: str | None


EXPLICIT_REQUEST_RULES = (
    # English
    ExplicitRequestRule(re.compile(r"\b(speak|talk|reply|respond|use|answer)\s+(in\s+)?(english|eng)\b"), "en", None),
    ExplicitRequestRule(re.compile(r"\b(can you|boleh)\s+(speak|cakap|reply|respond)\s+(in\s+)?(english|eng)\b"), "en", None),
    ExplicitRequestRule(re.compile(r"\b(in english)\s*(please|pls)?\b"), "en", None),
    ExplicitRequestRule(re.compile(r"\b(cakap|balas|guna)\s+(bi|english|bahasa inggeris)\b"), "en", None),

    # Standard BM / reset
    ExplicitRequestRule(re.compile(r"\b(standard|biasa)\s+(bm|bahasa|melayu)\s*(je|ja|sahaja|saja)?\b"), "ms", STANDARD),
    ExplicitRequestRule(re.compile(r"\bjangan\s+(guna\s+)?(loghat|dialect|dialek)\b"), "ms", STANDARD),
    ExplicitRequestRule(re.compile(r"\b(cakap|balas)\s+(bm|melayu)\s+(biasa|standard)\b"), "ms", STANDARD),

    # Kelantan
    ExplicitRequestRule(re.compile(r"\b(kace|kase|guna|pakai|cakap|balas|reply)\s+(klate|kelate|kelantan|kelantanese)\b"), "ms", KELANTAN),
    ExplicitRequestRule(re.compile(r"\b(loghat|dialect|dialek)\s+(klate|kelate|kelantan)\b"), "ms", KELANTAN),
    ExplicitRequestRule(re.compile(r"\bklate\s+(boleh|buleh)\b"), "ms", KELANTAN),
    ExplicitRequestRule(re.compile(r"\b(boleh|buleh)\s+(tak|x)?\s*(cakap|kace|kase|guna)\s+(klate|kelate|kelantan)\b"), "ms", KELANTAN),

    # Utara
    ExplicitRequestRule(re.compile(r"\b(kace|kase|guna|pakai|cakap|balas|reply)\s+(utara|kedah|penang|perlis)\b"), "ms", UTARA),
    ExplicitRequestRule(re.compile(r"\b(loghat|dialect|dialek)\s+(utara|kedah|penang|perlis|northern)\b"), "ms", UTARA),
)


def detect_explicit_request(text) -> ExplicitRequest:
    """Detect an imperative language/dialect switch or reset.

    Examples:
        "speak english please" -> `lang='en'`
        "standard bm je"      -> `dialect='STANDARD'`
        "loghat klate"        -> `dialect='KELANTAN'`
    """
    if not text or not isinstance(text, str):
        return NO_REQUEST

    lowered = text.lower().strip()
    for rule in EXPLICIT_REQUEST_RULES:
        if rule.pattern.search(lowered):
            return ExplicitRequest(requested=True, lang=rule.lang, dialect=rule.dialect)
    return NO_REQUEST


# =========================================================
# DETECTION
# =========================================================


def _detect_tone(lowered: str, words: list[str]) -> str:
    for pattern in GREETING_PATTERNS:
        if pattern.search(lowered):
            return "greeting"
    if _count_formal(lowered, words):
        return "formal"
    return "neutral"


def _count_formal(lowered: str, words: list[str]) -> int:
    count = 0
    for marker in FORMAL_MARKERS:
        if " " in marker:
            if marker in lowered:
                count += 1
        elif marker in words:
            count += 1
    return count


def _detect_formality(lowered: str, words: list[str], dialect_hits: int) -> str:
    if _count_formal(lowered, words):
        return "formal"

    informal = sum(1 for w in words if w in INFORMAL_MARKERS)
    density = informal / max(len(words), 1)
    if informal >= 2 or density >= 0.2 or dialect_hits >= 2:
        return "informal"
    return "neutral"


def detect_language_and_dialect(text) -> LanguageDialectResult:
    """Score language and regional-dialect signals in a message.

    Scoring:
        - `utara_score` / `kelantan_score`: distinct lexicon entries found.
        - Malay cues and dialect hits count toward Malay; English cues toward
          English.

    Language decision:
        - Any dialect hit -> `ms`.
        - Otherwise `ms` when Malay cues are present and at least as frequent
          as English cues; `en` in every other case.

    Dialect decision:
        - `KELANTAN` / `UTARA` only when that score strictly dominates.
        - `STANDARD` for Malay text without a dominating dialect.
        - `None` for English.

    Edge cases:
        - Empty / non-string input -> English, no dialect, zero confidence.
        - `explicit_request` is reported but not applied here.
    """
    if not text or not isinstance(text, str) or not text.strip():
        return LanguageDialectResult()

    lowered = text.lower().strip()
    words = WORD_RE.findall(lowered)
    if not words:
        return LanguageDialectResult(explicit_request=detect_explicit_request(text))

    utara_found = UTARA_LEXICON.matches(words, lowered)
    kelantan_found = KELANTAN_LEXICON.matches(words, lowered)
    utara_score = len(utara_found)
    kelantan_score = len(kelantan_found)

    ms_score = sum(1 for w in words if w in MALAY_CUES)
    en_score = sum(1 for w in words if w in ENGLISH_CUES)

    if utara_score or kelantan_score:
        language = "ms"
    elif ms_score and ms_score >= en_score:
        language = "ms"
    else:
        language = "en"

    dialect = None
    if language == "ms":
        if kelantan_score > utara_score:
            dialect = KELANTAN
        elif utara_score > kelantan_score:
            dialect = UTARA
        else:
            dialect = STANDARD

    # Kept in message order so exemplar tokens mirror what the user typed first.
    found = utara_found + kelantan_found
    position = {w: i for i, w in reversed(list(enumerate(words)))}
    found.sort(key=lambda tok: position.get(tok.split()[0], len(words)))

    cue_hits = ms_score + en_score + utara_score + kelantan_score
    confidence = min(1.0, cue_hits / max(len(words) * 0.5, 1.0))

    return LanguageDialectResult(
        language=language,
        dialect=dialect,
        formality=_detect_formality(lowered, words, utara_score + kelantan_score),
        tone=_detect_tone(lowered, words),
        confidence=round(confidence, 3),
        dialect_tokens_found=tuple(found),
        utara_score=utara_score,
        kelantan_score=kelantan_score,
        explicit_request=detect_explicit_request(text),
    )


# =========================================================
# SPELL CORRECTION
# =========================================================

TYPO_MAP = {
    "terimakasih": "terima kasih",
    "terimakaseh": "terima kasih",
    "asslamualaikum": "assalamualaikum",
    "aslmkm": "assalamualaikum",
    "mkcm": "macam",
    "blh": "boleh",
    "tlg": "tolong",
    "sbnrnya": "sebenarnya",
    "prsn": "perasan",
    "mcm mana": "macam mana",
    "sy": "saya",
    "bkn": "bukan",
}


def conservative_spell_correct(text, protected_tokens=()) -> SpellCorrection:
    """Fix obvious chat typos while leaving dialect markers untouched.

    Args:
        text: Normalized user message.
        protected_tokens: Tokens that must never be rewritten (usually
            `dialect_tokens_found` from detection).

    Returns:
        `SpellCorrection` with the corrected text and `(from, to)` pairs.
    """
    if not text or not isinstance(text, str):
        return SpellCorrection(corrected=text if isinstance(text, str) else "", corrections=[])

    protected = {t.lower() for t in (protected_tokens or ()) if isinstance(t, str)}
    corrected = text
    corrections = []

    for wrong, right in TYPO_MAP.items():
        if wrong in protected or any(part in protected for part in wrong.split()):
            continue
        pattern = re.compile(r"\b" + re.escape(wrong) + r"\b", flags=re.IGNORECASE)
        if pattern.search(corrected):
            corrected = pattern.sub(right, corrected)
            corrections.append((wrong, right))

    return SpellCorrection(corrected=corrected, corrections=corrections)


# =========================================================
# SMALLTALK STABILIZER
# =========================================================
# Keeps dialect replies light: mirror a couple of the user's own tokens,
# short replies for greetings, and never borrow the other dialect's words.

STABILIZER_TOKEN_LIMITS = {"off": 1, "light": 2, "medium": 3}

DIALECT_NAMES = {
    UTARA: "Northern Malay (Utara / Kedah-Penang-Perlis)",
    KELANTAN: "Kelantanese Malay (Klate)",
}

DEFAULT_FLAVOR = {
    UTARA: ("hang", "mai", "ja", "dak"),
    KELANTAN: ("demo", "ore", "gapo"),
}

WRONG_DIALECT_EXAMPLES = {
    UTARA: ("demo", "ambo", "gapo", "ore", "guano"),
    KELANTAN: ("hang", "hampa", "habaq", "depa", "awat", "cemana"),
}

GREETING_EXAMPLES = {
    UTARA: (
        'User: "hang pa habaq" -> Reply: "Habaq baik ja. Hang pulak macam mana?"',
        'User: "weh apa cerita" -> Reply: "Okay ja ni. Hang cemana?"',
    ),
    KELANTAN: (
        'User: "gapo khabar" -> Reply: "Alhamdulillah baik. Demo pulak guano?"',
        'User: "ambo nok tanyo" -> Reply: "Boleh, tanyo je. Gapo demo nok tau?"',
    ),
}


def _lexicon_for(dialect: str) -> DialectLexicon | None:
    for lexicon in DIALECT_LEXICONS:
        if lexicon.dialect == dialect:
            return lexicon
    return None


def build_smalltalk_stabilizer(lang_result, level: str = "light") -> StabilizerResult:
    """Build dialect-consistency guidance for the system prompt.

    Args:
        lang_result: `LanguageDialectResult` (effective, after overrides).
        level: `off`, `light` or `medium`; controls how many dialect tokens
            the reply may mirror. Unknown levels behave like `light`.

    Returns:
        `StabilizerResult`. For Utara/Kelantan the instructions name the
        dialect, list the exemplar tokens actually found for that dialect and
        warn against the other dialect. `off` returns empty instructions.
    """
    limit = STABILIZER_TOKEN_LIMITS.get(level, STABILIZER_TOKEN_LIMITS["light"])
    if level == "off" or lang_result is None:
        return StabilizerResult(instructions="", dialect_token_limit=limit)

    dialect = getattr(lang_result, "dialect", None)
    tone = getattr(lang_result, "tone", "neutral")
    lexicon = _lexicon_for(dialect)

    if lexicon is None:
        if tone != "greeting":
            return StabilizerResult(instructions="", dialect_token_limit=limit)
        instructions = "\n".join([
            "SMALLTALK STABILIZER (ACTIVE):",
            "- This is a casual greeting. Reply warmly and briefly.",
            "- Maximum 2 sentences.",
            "- Follow pattern: [greeting back] + [return question]",
            "- Do NOT ask clarifying questions. Do NOT offer help unprompted.",
        ])
        return StabilizerResult(instructions=instructions, dialect_token_limit=limit)

    found = getattr(lang_result, "dialect_tokens_found", ()) or ()
    mirror = [tok for tok in found if tok in lexicon.tokens][:limit]
    other = KELANTAN if dialect == UTARA else UTARA
    name = DIALECT_NAMES[dialect]
    wrong = ", ".join(WRONG_DIALECT_EXAMPLES[dialect])

    if tone == "greeting":
        lines = [
            "SMALLTALK STABILIZER (ACTIVE):",
            f"- This is a casual greeting from a speaker of {name}. Reply naturally, as a friend would.",
            "- Maximum 2 sentences, maximum 20 words total.",
            f"- Mirror at most {limit} {dialect.title()} dialect words from the user's message.",
        ]
    else:
        lines = [
            f"DIALECT MIRRORING ({level.upper()}):",
            f"- The user speaks {name}.",
            f"- Reply in Malay with light {dialect.title()} flavor. Use at most {limit} dialect words per reply.",
        ]

    if mirror:
        lines.append(
            f"- You may use these dialect tokens: {', '.join(mirror)}. Do NOT add extra dialect words beyond these."
        )
    else:
        lines.append(
            f"- Use casual {dialect.title()} words like {', '.join(DEFAULT_FLAVOR[dialect])} sparingly."
        )

    if tone == "greeting":
        lines.append("- Follow pattern: [greeting/status response] + [return question to user]")
        lines.extend(f"- Example: {example}" for example in GREETING_EXAMPLES[dialect])
        lines.append("- Do NOT ask clarifying questions. Do NOT offer help unprompted.")

    lines.extend([
        "- Keep replies readable. Do NOT make every word dialect.",
        f"- Do NOT use {other.title()} words ({wrong}). Those are the WRONG dialect for this user.",
        "- Treat their language as normal speech. Never correct or comment on the dialect.",
    ])

    return StabilizerResult(instructions="\n".join(lines), dialect_token_limit=limit)


# =========================================================
# DIALECT POST-PROCESSOR
# =========================================================
# Pronouns and particles only; sentence structure is never touched.

POST_PROCESS_ACTIVATION = 0.35


@dataclass(frozen=True)
class Rewrite:
    pattern: re.Pattern
    target: str


def _rw(word: str, target: str) -> Rewrite:
    return Rewrite(re.compile(r"\b" + re.escape(word) + r"\b", flags=re.IGNORECASE), target)


DIALECT_REWRITES = {
    KELANTAN: (
        _rw("awak", "demo"),
        _rw("kamu", "demo"),
        _rw("saya", "ambo"),
        _rw("kenapa", "bakpo"),
        _rw("orang", "ore"),
        _rw("kita", "kito"),
        _rw("macam mana", "guano"),
        _rw("bagaimana", "guano"),
    ),
    UTARA: (
        _rw("awak", "hang"),
        _rw("kamu", "hang"),
        _rw("mereka", "depa"),
        _rw("kenapa", "awat"),
        _rw("macam mana", "cemana"),
        _rw("bagaimana", "cemana"),
        _rw("beritahu", "habaq"),
    ),
}

# Standard Malay stand-ins for every dialect marker. Used when the target
# dialect has no direct equivalent for a marker of the other dialect.
STANDARD_GLOSSES = {
    # Utara
    "hang": "awak", "hampa": "kamu semua", "depa": "mereka", "pi": "pergi",
    "mai": "datang", "dok": "tengah", "sat": "sekejap", "pasaipa": "kenapa",
    "awat": "kenapa", "habaq": "beritahu", "haq": "ini", "macam tu": "macam itu",
    "macamtu": "macam itu", "noh": "ya", "la ni": "sekarang", "lani": "sekarang",
    "teman": "saya", "mu": "awak", "kome": "kamu semua", "ceq": "saya",
    "watpa": "buat apa", "buleh": "boleh", "cemana": "macam mana", "cokia": "tengok",
    "denge": "dengar", "tak leh": "tak boleh", "boleh dak": "boleh tak",
    "pa habaq": "apa khabar", "pa khabar": "apa khabar", "dak": "tak", "tok": "tak",
    "toksey": "tak mahu", "ghoyak": "cakap", "ekau": "kau", "cheq": "saya",
    "loqlaq": "cuai", "pey": "pergi", "puloq": "pulak", "kecek": "cakap",
    # Kelantan
    "guano": "macam mana", "guane": "macam mana", "ambo": "saya", "demo": "awak",
    "gapo": "apa", "mung": "kau", "kawe": "saya", "getek": "nanti", "ggetek": "nanti",
    "nnapok": "nampak", "nampok": "nampak", "sokmo": "selalu", "pitih": "duit",
    "lagu mano": "macam mana", "ore": "orang", "oghe": "orang", "hok": "yang",
    "ttube": "tuba", "tube": "tuba", "bui": "beri", "maghih": "marah", "nok": "nak",
    "blako": "bergaduh", "rhoyak": "beritahu", "kito": "kita", "sapa": "sampai",
    "aghe": "agak", "abe": "abang", "mugo": "semoga", "ghinek": "sini",
    "toksah": "tak payah", "bakpo": "kenapa", "klate": "Kelantan", "kelate": "Kelantan",
    "mace": "macam", "kace": "cakap", "kelik": "balik", "nate": "binatang",
    "nnate": "binatang", "nnaik": "naik", "droh": "dulu", "ghalik": "balik",
    "jjual": "jual", "bbeli": "beli",
}

_UNGLOSSED = (UTARA_LEXICON.tokens | KELANTAN_LEXICON.tokens) - set(STANDARD_GLOSSES)
if _UNGLOSSED:
    raise ValueError(f"dialect tokens without a standard gloss: {sorted(_UNGLOSSED)}")

# Markers of the other dialect with a direct equivalent in the target dialect.
CROSS_DIALECT_EQUIVALENTS = {
    KELANTAN: {
        "hang": "demo",
        "hampa": "demo",
        "depa": "ore",
        "awat": "bakpo",
        "pasaipa": "bakpo",
        "cemana": "guano",
        "pa habaq": "gapo khabar",
        "pa khabar": "gapo khabar",
    },
    UTARA: {
        "demo": "hang",
        "mung": "hang",
        "ambo": "cheq",
        "kawe": "cheq",
        "bakpo": "awat",
        "guano": "cemana",
        "guane": "cemana",
        "lagu mano": "cemana",
    },
}


def _cross_rewrites(dialect: str) -> tuple[Rewrite, ...]:
    other = KELANTAN_LEXICON if dialect == UTARA else UTARA_LEXICON
    equivalents = CROSS_DIALECT_EQUIVALENTS[dialect]
    # Longest markers first so "pa habaq" is rewritten before "habaq".
    ordered = sorted(other.tokens, key=lambda token: (-len(token), token))
    return tuple(_rw(token, equivalents.get(token, STANDARD_GLOSSES[token])) for token in ordered)


CROSS_DIALECT_REWRITES = {dialect: _cross_rewrites(dialect) for dialect in (UTARA, KELANTAN)}

def _strip_other_dialect(sentence: str, cross) -> str:
    # A gloss can complete a multi-word marker ("dak leh" -> "tak leh"), so repeat until stable.
    while True:
        rewritten = sentence
        for rule in cross:
            rewritten = rule.pattern.sub(lambda m, t=rule.target: _match_case(m.group(0), t), rewritten)
        if rewritten == sentence:
            return rewritten
        sentence = rewritten


SENTENCE_SPLIT_RE = re.compile(r"((?<=[.!?\n])\s+)")


def _match_case(source: str, target: str) -> str:
    if source[:1].isupper():
        return target[:1].upper() + target[1:]
    return target


def apply_dialect_post_process(
    text,
    dialect,
    intensity: float = 0.25,
    explicit: bool = False,
    confidence: float = 0.0,
) -> str:
    """Rewrite a few neutral words in model output into the target dialect.

    Activation:
        - Requires `dialect` in {UTARA, KELANTAN} and `intensity > 0`.
        - Active when `explicit` is true, or when `max(intensity, confidence)`
          reaches `POST_PROCESS_ACTIVATION` (0.35). Otherwise `text` is
          returned unchanged.

    Limits:
        - Each rewrite rule replaces at most its first occurrence per sentence.
        - At most 2 rewrites per sentence (3 when `intensity >= 0.5`), scaled
          down for short sentences.

    Dialect separation:
        When active, markers exclusive to the other dialect are rewritten to
        the target dialect's equivalents (or a standard Malay gloss) without
        counting toward the limit, repeating until none remain.
    """
    if not text or not isinstance(text, str):
        return text if isinstance(text, str) else ""
    if dialect not in DIALECT_REWRITES or intensity <= 0:
        return text
    if not explicit and max(intensity, confidence) < POST_PROCESS_ACTIVATION:
        return text

    rewrites = DIALECT_REWRITES[dialect]
    cross = CROSS_DIALECT_REWRITES[dialect]
    per_sentence = 3 if intensity >= 0.5 else 2

    out = []
    for i, sentence in enumerate(SENTENCE_SPLIT_RE.split(text)):
        if i % 2:
            out.append(sentence)
            continue
        sentence = _strip_other_dialect(sentence, cross)

        budget = max(1, min(per_sentence, int(len(sentence.split()) * intensity)))
        applied = 0
        for rule in rewrites:
            if applied >= budget:
                break
            sentence, n = rule.pattern.subn(
                lambda m, t=rule.target: _match_case(m.group(0), t), sentence, count=1
            )
            applied += n
        out.append(sentence)

    return "".join(out)
