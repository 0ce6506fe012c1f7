"""Request size budget.

Token counts are approximated from character length (about 4 characters per
token for English). The estimate is monotonic in text length and never zero
for non-empty text.
"""

import math
from dataclasses import dataclass

CHARS_PER_TOKEN = 4
DEFAULT_MAX_CONTEXT_TOKENS = 32000


@dataclass(frozen=True)
class BudgetVerdict:
    ok: bool
    estimated_tokens: int
    reason: str | None = None


def estimate_tokens(text) -> int:
    if not text or not isinstance(text, str):
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def check_budget(message, max_context_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS, doc_text="") -> BudgetVerdict:
    """Check whether a message (plus an attached document) fits the context limit.

    `ok` is `False` exactly when the combined estimate exceeds
    `max_context_tokens`.
    """
    total = estimate_tokens(message) + estimate_tokens(doc_text)

    if total > max_context_tokens:
        return BudgetVerdict(
            ok=False,
            estimated_tokens=total,
            reason=f"input_too_large: ~{total} tokens (max {max_context_tokens})",
        )

    return BudgetVerdict(ok=True, estimated_tokens=total)
