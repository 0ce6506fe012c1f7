"""Search-query reformulation for the web research route.

Rewrite logic:
- Drops an explicit search trigger prefix ("cari web:", "search web").
- Detects a marketplace mention, returns its storefront domain as
  `site_hint` and removes the marketplace name from the query.
- Expands informal hardware shorthand into canonical product terms
  (`vram 16gb` -> `GPU graphics card 16GB VRAM`). Only the first matching
  expansion is applied. `hp` stays as-is next to a computing noun, where it
  is the brand rather than "handphone".
- Strips conversational filler (Malay + English).
- Price-oriented queries keep a `harga` keyword and get a `Malaysia`
  qualifier so results are localized.

Tokens that survive keep their original casing, so brand and model names
("RTX 4060", "iPhone") reach the search provider verbatim.

Also provides:
- `should_browse_web`: keyword gate deciding whether a plain question should
  be escalated to web research.
- `is_url_safe`: string-level SSRF gate for result URLs (no DNS lookups).

Interaction with core:
- `engine.MessageRouter` calls `reformulate_query` only for `WEB_RESEARCH`
  routes and `should_browse_web` only when web research is enabled.

Determinism:
- Pure string processing.
"""

import ipaddress
import re
from dataclasses import dataclass
from urllib.parse import urlsplit


@dataclass(frozen=True)
class ReformulatedQuery:
    query: str
    site_hint: str | None
    original: str


@dataclass(frozen=True)
class BrowseDecision:
    should_browse: bool
    reason: str


# =========================================================
# BROWSE GATE
# =========================================================

BROWSE_KEYWORDS = (
    "harga", "price", "pasaran", "today", "sekarang", "latest", "news",
    "release", "availability", "stock", "near me", "cuaca", "weather",
    "terkini", "semasa", "current", "update", "baru",
    "berapa", "how much", "where to buy", "review",
    "gpu", "vram", "ram", "laptop", "phone", "shopee", "lazada",
    "spec", "model", "compare", "banding",
)

FORCE_BROWSE = ("cari web", "search web", "browse web", "web search")

NO_BROWSE = ("tanpa browse", "no web", "no browse", "jangan cari web", "offline")

# Complaints about the assistant itself mention search words without asking for a search.
META_PATTERNS = (
    re.compile(r"\b(suruh|ask|tell)\b.*\b(cari|search|find|check)\b"),
    re.compile(r"\b(kenapa|why|don'?t)\b.*\b(you|kau|awak)\b"),
    re.compile(r"\b(still|masih|lagi)\b.*\b(sama|same|suruh)\b"),
    re.compile(r"\b(bukan|not|wrong|salah)\b.*\b(tu|that|ini|this)\b"),
    re.compile(r"\b(tak guna|useless|bodoh|stupid)\b"),
)

PURCHASE_WHERE_RE = re.compile(r"\b(di mana|mana|where|when|bila|kapan)\b")
PURCHASE_VERB_RE = re.compile(r"\b(beli|buy|get|dapat)\b")


def _keyword_in(lower: str, keyword: str) -> bool:
    return re.search(r"\b" + re.escape(keyword) + r"\b", lower) is not None


def should_browse_web(text) -> BrowseDecision:
    """
    Decide whether a message needs live web data.

    Order: opt-out phrase -> forced trigger -> meta complaint -> current-data
    keyword -> purchase question -> no trigger.
    """
    if not text or not isinstance(text, str) or not text.strip():
        return BrowseDecision(False, "empty_message")

    lower = text.lower().strip()

    for phrase in NO_BROWSE:
        if phrase in lower:
            return BrowseDecision(False, "user_opted_out")

    for phrase in FORCE_BROWSE:
        if phrase in lower:
            return BrowseDecision(True, "user_forced")

    for pattern in META_PATTERNS:
        if pattern.search(lower):
            return BrowseDecision(False, "meta_complaint")

    for keyword in BROWSE_KEYWORDS:
        if _keyword_in(lower, keyword):
            return BrowseDecision(True, f"keyword:{keyword}")

    if PURCHASE_WHERE_RE.search(lower) and PURCHASE_VERB_RE.search(lower):
        return BrowseDecision(True, "purchase_query")

    return BrowseDecision(False, "no_trigger")


# =========================================================
# REFORMULATION
# =========================================================

TRIGGER_PREFIX_RE = re.compile(
    r"^\s*(cari web|search web|browse web|web search|cari online|search online)\s*[:,\-]?\s*",
    flags=re.IGNORECASE,
)

FILLER_WORDS = frozenset({
    "boleh", "tolong", "nak", "saya", "aku", "check", "cek", "tengok",
    "tak", "gak", "ke", "ka", "kah", "la", "lah", "je", "jer",
    "ni", "tu", "yang", "kan", "eh", "ye", "ya", "ok", "okay",
    "please", "can", "you", "i", "me", "the", "a", "is", "it",
    "ada", "dekat", "deakt", "dkat", "dekt", "kat", "dalam", "dgn",
    "dengan", "utk", "untuk", "di", "dari", "pada",
})


@dataclass(frozen=True)
class SiteHint:
    pattern: re.Pattern
    site: str


def _site(names: str, site: str) -> SiteHint:
    return SiteHint(re.compile(r"\b(" + names + r")\b", flags=re.IGNORECASE), site)


# "mudah" alone is the Malay word for "easy"; require the domain or a location preposition.
SITE_HINTS = (
    _site("shopee|shope|shopie", "shopee.com.my"),
    _site("lazada|lzd", "lazada.com.my"),
    SiteHint(re.compile(r"\b(mudah\.my|(?<=kat )mudah|(?<=dekat )mudah|(?<=di )mudah)\b", flags=re.IGNORECASE), "mudah.my"),
    _site("amazon", "amazon.com"),
    _site("carousell", "carousell.com.my"),
)


@dataclass(frozen=True)
class TermExpansion:
    pattern: re.Pattern
    replacement: str
    unless: re.Pattern | None = None


# "hp" is also the laptop/printer brand; keep it when a computing noun is nearby.
COMPUTING_NOUN_RE = re.compile(
    r"\b(laptop|printer|notebook|pavilion|victus|omen|envy|spectre|elitebook|probook|ink|toner|dakwat)\b",
    flags=re.IGNORECASE,
)


TERM_EXPANSIONS = (
    TermExpansion(re.compile(r"\bvram\s*(\d+)\s*(?:gb|g)?\b", flags=re.IGNORECASE), r"GPU graphics card \1GB VRAM"),
    TermExpansion(re.compile(r"\bgpu\s*(\d+)\s*(?:gb|g)?\b", flags=re.IGNORECASE), r"GPU graphics card \1GB"),
    TermExpansion(re.compile(r"\bram\s*(\d+)\s*(?:gb|g)?\b", flags=re.IGNORECASE), r"RAM \1GB"),
    TermExpansion(re.compile(r"\bhp\b(?!\d)", flags=re.IGNORECASE), "phone handphone", unless=COMPUTING_NOUN_RE),
    TermExpansion(re.compile(r"\bfon\b", flags=re.IGNORECASE), "phone"),
)

PRICE_ASK_RE = re.compile(r"\b(harga|price|berapa|how much)\b", flags=re.IGNORECASE)
PRICE_KEYWORD_RE = re.compile(r"\b(harga|price)\b", flags=re.IGNORECASE)
PRICE_ORIENTED_RE = re.compile(r"\b(harga|price|berapa)\b|\brm\s*\d", flags=re.IGNORECASE)
EDGE_PUNCT = "?!.,:;"
MIN_QUERY_CHARS = 5


def _strip_filler(text: str) -> str:
    kept = [w for w in text.split() if w.lower().strip(EDGE_PUNCT) not in FILLER_WORDS]
    return " ".join(kept)


def reformulate_query(text) -> ReformulatedQuery:
    """
    Turn a casual message into a search-provider query.

    Example:
        "boleh check harga vram 16gb dekat shope"
        -> query "harga GPU graphics card 16GB VRAM Malaysia",
           site_hint "shopee.com.my"

    Edge cases:
    - Empty / non-string input -> empty query, no site hint.
    - When fewer than 5 characters survive, the filler-stripped original is
      used instead.
    """
    if not text or not isinstance(text, str) or not text.strip():
        return ReformulatedQuery(query="", site_hint=None, original=text if isinstance(text, str) else "")

    original = text
    q = TRIGGER_PREFIX_RE.sub("", text.strip())

    site_hint = None
    for hint in SITE_HINTS:
        if hint.pattern.search(q):
            site_hint = hint.site
            q = hint.pattern.sub(" ", q)
            break

    for expansion in TERM_EXPANSIONS:
        if expansion.unless is not None and expansion.unless.search(q):
            continue
        if expansion.pattern.search(q):
            q = expansion.pattern.sub(expansion.replacement, q, count=1)
            break

    q = _strip_filler(q)
    q = re.sub(r"\s+", " ", q).strip(" " + EDGE_PUNCT)

    if len(q) < MIN_QUERY_CHARS:
        q = _strip_filler(TRIGGER_PREFIX_RE.sub("", original.strip())).strip(" " + EDGE_PUNCT) or original.strip()

    if PRICE_ASK_RE.search(original) and not PRICE_KEYWORD_RE.search(q):
        q = f"harga {q}"

    if PRICE_ORIENTED_RE.search(original) and "malaysia" not in q.lower():
        q = f"{q} Malaysia"

    return ReformulatedQuery(query=q, site_hint=site_hint, original=original)


# =========================================================
# URL SAFETY
# =========================================================


def _is_private_host(host: str) -> bool:
    if host == "localhost" or host.endswith(".localhost"):
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_unspecified
        or address.is_reserved
    )


def _domain_match(host: str, domain: str) -> bool:
    domain = domain.lower().strip(".")
    return bool(domain) and (host == domain or host.endswith("." + domain))


def is_url_safe(url, allowed_domains=(), blocked_domains=()) -> bool:
    """
    Check whether a search-result URL may be fetched.

    Rules:
    - Only `http` / `https` with a host.
    - Loopback, private, link-local and unspecified addresses are rejected,
      as is `localhost`.
    - A host on the block list (or a subdomain of one) is rejected.
    - A non-empty allow list admits only its domains and their subdomains.
    """
    if not url or not isinstance(url, str):
        return False

    try:
        parts = urlsplit(url.strip())
        host = (parts.hostname or "").lower()
    except ValueError:
        return False

    if parts.scheme not in ("http", "https") or not host:
        return False

    if _is_private_host(host):
        return False

    if any(_domain_match(host, d) for d in (blocked_domains or ()) if d):
        return False

    allowed = [d for d in (allowed_domains or ()) if d]
    if allowed and not any(_domain_match(host, d) for d in allowed):
        return False

    return True
