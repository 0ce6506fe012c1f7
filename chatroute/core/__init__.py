"""Core routing package.

Architectural role:
    Exposes the routing layer that sits between transport entrypoints and the
    inference-calling layer.

Composition:
    - `engine`: `MessageRouter` and `route_message`.
    - `routing_types`: `RouteDecision` schema and per-route decoding limits.
    - `pipeline_config`: environment-driven pipeline switches.
    - `attachments`: validated attachment context.

Determinism and side effects:
    Package import itself is side-effect free apart from `.env` loading in
    `pipeline_config`.
"""
