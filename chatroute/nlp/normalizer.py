"""Input normalization and output sanitization.

Cleaning model:
    - NFC unicode normalization.
    - Zero-width / invisible format characters are removed.
    - Script-like blocks (`script`, `style`, `iframe`, `object`) are removed
      together with their contents; every other tag is removed on its own.
    - Whitespace runs collapse to one space and the result is trimmed.

Idempotence:
    Removing an invisible character or a tag can splice a new tag together
    (`<<b>i>`), so the cleaning steps are repeated until the text stops
    changing. Each pass either shortens the text or leaves it unchanged, which
    bounds the loop.

Interaction with core:
    `engine.MessageRouter` keeps `raw` for logs and runs every analysis stage
    on `normalized`. `sanitize_output` is a separate hook for model output on
    its way back to the presentation layer.

Failure handling:
    Non-string input is treated as empty; nothing in this module raises.
"""

import re
import unicodedata
from dataclasses import dataclass, field


# =========================================================
# PATTERNS
# =========================================================

INVISIBLE_RE = re.compile(
    "[\u200b\u200c\u200d\u200e\u200f\ufeff\u00ad\u2060-\u2064\u206a-\u206f]"
)

SCRIPT_BLOCK_RE = re.compile(
    r"<(script|style|iframe|object)\b[^>]*>.*?</\1\s*>",
    flags=re.IGNORECASE | re.DOTALL,
)

TAG_RE = re.compile(r"</?[a-zA-Z!][^<>]*>")

WHITESPACE_RE = re.compile(r"\s+")

OUTPUT_BLOCK_PATTERNS = (
    re.compile(r"<script\b[^>]*>.*?</script\s*>", flags=re.IGNORECASE | re.DOTALL),
    re.compile(r"<iframe\b[^>]*>.*?</iframe\s*>", flags=re.IGNORECASE | re.DOTALL),
    re.compile(r"<object\b[^>]*>.*?</object\s*>", flags=re.IGNORECASE | re.DOTALL),
    re.compile(r"<embed\b[^>]*>", flags=re.IGNORECASE),
    # Unterminated blocks run to the end of the text.
    re.compile(r"<(script|iframe|object)\b[^>]*>.*\Z", flags=re.IGNORECASE | re.DOTALL),
    re.compile(r"\bon\w+\s*=\s*[\"'][^\"']*[\"']", flags=re.IGNORECASE),
)


@dataclass(frozen=True)
class NormalizedInput:
    """Raw message plus its cleaned form used by every analysis stage."""

    raw: str
    normalized: str
    meta: dict = field(default_factory=dict)


def _clean_once(text: str) -> str:
    text = unicodedata.normalize("NFC", text)
    text = INVISIBLE_RE.sub("", text)
    text = SCRIPT_BLOCK_RE.sub(" ", text)
    text = TAG_RE.sub(" ", text)
    text = WHITESPACE_RE.sub(" ", text)
    return text.strip()


def normalize_input(raw) -> NormalizedInput:
    """Clean a user message for downstream processing.

    Args:
        raw: Original message text. `None` and non-string values are accepted.

    Returns:
        `NormalizedInput` whose `meta` records what was removed
        (`had_invisible`, `had_markup`, `trimmed`, `char_delta`).

    Edge cases:
        - Empty or non-string input -> `normalized == ""`.
        - A message made only of markup normalizes to `""`.
    """
    if not raw or not isinstance(raw, str):
        return NormalizedInput(
            raw=raw if isinstance(raw, str) else "",
            normalized="",
            meta={"had_invisible": False, "had_markup": False, "trimmed": False, "char_delta": 0},
        )

    had_invisible = bool(INVISIBLE_RE.search(raw))
    had_markup = bool(SCRIPT_BLOCK_RE.search(raw) or TAG_RE.search(raw))

    text = raw
    while True:
        cleaned = _clean_once(text)
        if cleaned == text:
            break
        text = cleaned

    return NormalizedInput(
        raw=raw,
        normalized=text,
        meta={
            "had_invisible": had_invisible,
            "had_markup": had_markup,
            "trimmed": raw != raw.strip(),
            "char_delta": len(raw) - len(text),
        },
    )


def sanitize_output(text) -> str:
    """Strip executable markup from model output before it is displayed.

    Markdown is left untouched; only script/iframe/object blocks, embed tags
    and inline event handlers are removed. An unclosed block is removed up to
    the end of the text. Like `normalize_input`, the passes repeat until the
    text stops changing, so removals cannot splice a new block together.
    """
    if not text or not isinstance(text, str):
        return ""

    while True:
        cleaned = text
        for pattern in OUTPUT_BLOCK_PATTERNS:
            cleaned = pattern.sub("", cleaned)
        if cleaned == text:
            return cleaned
        text = cleaned
