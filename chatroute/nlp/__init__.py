"""Rule-based text analysis for routing.

Module scope:
- Input cleaning and output sanitizing (`normalizer`).
- Language, dialect and explicit-request detection (`dialect`).
- Intent classification (`intent_classifier`).
- Search query reformulation and browse/URL gates (`query_rewriter`).

Determinism profile:
- Fully deterministic; no model inference.
"""
