"""Rule-based prompt-injection gate and output leak scanner.

Purpose:
    Provide deterministic checks around the model call: an input-side gate for
    instruction-override attempts and an output-side scan for secret-shaped
    substrings.

Validation model:
    - Rule-based only (regular expressions), no classifier/model inference.
    - Input: English and Malay override/jailbreak phrasings, plus a heuristic
      for repeated `system:` role markers.
    - Output: secret-shaped substrings (API keys, provider tokens, bearer
      tokens, password assignments, env-style secrets, PEM private keys).

Blocking behavior:
    Nothing here blocks on its own. Verdicts are returned to orchestration
    (`chatroute.core.engine`), and the caller decides whether to refuse, mask
    (`redact_leaks`) or continue.

False positives:
    Bare mentions of "jailbreak" or "prompt" are not flagged, so technical
    questions ("what is a jailbreak on iOS") pass. Only imperative phrasings
    aimed at the assistant are matched.

Determinism:
    For the same input text and pattern tables, output is deterministic.

Failure handling:
    Empty or non-string input is treated as safe/clean; nothing here raises.

Bypass risk:
    Pattern matching can be bypassed by obfuscation, spacing tricks or
    unsupported languages. Downstream controls are still required.
"""

import re
from dataclasses import dataclass, field


@dataclass(frozen=True)
class InjectionVerdict:
    safe: bool
    reason: str | None = None
    pattern: str | None = None
    confidence: float = 1.0


@dataclass(frozen=True)
class LeakFinding:
    type: str
    count: int


@dataclass(frozen=True)
class LeakScanResult:
    clean: bool
    findings: list = field(default_factory=list)


# =========================================================
# PROMPT INJECTION
# =========================================================

INJECTION_PATTERNS = (

    # English
    re.compile(r"ignore\s+(all\s+)?(the\s+)?(previous|prior|above)\s+(instructions?|prompts?|rules)"),
    re.compile(r"disregard\s+(all\s+)?(your|the|previous|prior)\s+(instructions?|rules|guidelines)"),
    re.compile(r"forget\s+(everything|all|your\s+instructions)"),
    re.compile(r"you\s+are\s+now\s+(dan|a\s+different|evil|unrestricted)\b"),
    re.compile(r"system\s*:\s*(override|new\s+instructions)"),
    re.compile(r"\bdo\s+anything\s+now\b"),
    re.compile(r"\b(enable|activate|enter)\s+(jailbreak|developer|god)\s+mode\b"),
    re.compile(r"reveal\s+(your|the)\s+(system|initial|hidden)\s+prompt"),
    re.compile(r"what\s+(is|are)\s+your\s+(system|initial|hidden)\s+(prompt|instructions)"),

    # Malay
    re.compile(r"abaikan\s+(semua\s+)?(arahan|peraturan)"),
    re.compile(r"lupakan\s+(semua\s+)?(arahan|peraturan)"),
    re.compile(r"tunjuk(kan)?\s+(system\s+prompt|arahan\s+sistem)"),
)

SYSTEM_MARKER_RE = re.compile(r"system\s*:")
MAX_SYSTEM_MARKERS = 1


def check_prompt_injection(text) -> InjectionVerdict:
    """Return whether a message looks like an instruction-override attempt.

    Evaluation order:
        1. Empty input -> safe.
        2. Any injection pattern -> `prompt_injection_detected`.
        3. Two or more `system:` markers -> `excessive_system_references`.
        4. Otherwise safe.
    """
    if not text or not isinstance(text, str):
        return InjectionVerdict(safe=True)

    lowered = text.lower()

    for pattern in INJECTION_PATTERNS:
        if pattern.search(lowered):
            return InjectionVerdict(
                safe=False,
                reason="prompt_injection_detected",
                pattern=pattern.pattern,
                confidence=0.8,
            )

    if len(SYSTEM_MARKER_RE.findall(lowered)) > MAX_SYSTEM_MARKERS:
        return InjectionVerdict(safe=False, reason="excessive_system_references", confidence=0.6)

    return InjectionVerdict(safe=True)


# =========================================================
# OUTPUT LEAKS
# =========================================================

LEAK_PATTERNS = (
    ("api_key", re.compile(r"(?:sk[-_]|api[-_]?key[-_]?)[A-Za-z0-9]{16,}", flags=re.IGNORECASE)),
    ("aws_access_key", re.compile(r"\bAKIA[0-9A-Z]{16}\b")),
    ("github_token", re.compile(r"\bgh[pousr]_[A-Za-z0-9]{30,}\b")),
    ("password", re.compile(r"(?:password|passwd|pwd)\s*[:=]\s*\S{6,}", flags=re.IGNORECASE)),
    ("bearer_token", re.compile(r"Bearer\s+[A-Za-z0-9._-]{20,}")),
    ("env_secret", re.compile(r"\b[A-Z0-9_]*(?:SECRET|TOKEN|KEY)\s*=\s*\S{10,}")),
    ("private_key", re.compile(r"-----BEGIN (?:[A-Z]+ )?PRIVATE KEY-----")),
)


def scan_output_for_leaks(text) -> LeakScanResult:
    """Scan model output for secret-shaped substrings.

    Returns:
        `LeakScanResult` with one `LeakFinding(type, count)` per pattern that
        matched; `clean` is `True` only when nothing matched.
    """
    if not text or not isinstance(text, str):
        return LeakScanResult(clean=True, findings=[])

    findings = []
    for name, pattern in LEAK_PATTERNS:
        matches = pattern.findall(text)
        if matches:
            findings.append(LeakFinding(type=name, count=len(matches)))

    return LeakScanResult(clean=not findings, findings=findings)


def redact_leaks(text, mask: str = "[REDACTED]") -> str:
    """Replace every secret-shaped substring with `mask`."""
    if not text or not isinstance(text, str):
        return ""

    for _, pattern in LEAK_PATTERNS:
        text = pattern.sub(mask, text)
    return text
