"""Attachment context accepted by the router.

Callers (HTTP layer, messaging gateways) describe what came with a message:
an image, a parsed document, or a follow-up on a previously uploaded
document. Payloads are validated with pydantic; both snake_case and the
camelCase keys used by JavaScript clients (`hasImage`, `hasDoc`) are
accepted.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError


logger = logging.getLogger(__name__)


class DocumentPayload(BaseModel):
    """Extracted document content (parsing happens outside this package)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    kind: str = "text"
    text: str = ""
    meta: dict[str, Any] = Field(default_factory=dict)
    doc_id: str | None = Field(default=None, alias="docId")


class AttachmentContext(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    has_image: bool = Field(default=False, alias="hasImage")
    has_doc: bool = Field(default=False, alias="hasDoc")
    doc: DocumentPayload | None = None
    doc_follow_up: bool = Field(default=False, alias="docFollowUp")

    @property
    def doc_text(self) -> str:
        return self.doc.text if self.doc is not None else ""

    @property
    def doc_id(self) -> str | None:
        return self.doc.doc_id if self.doc is not None else None


EMPTY_CONTEXT = AttachmentContext()


def parse_attachment_context(context) -> AttachmentContext:
    """Coerce a caller-supplied context into `AttachmentContext`.

    Accepts `None`, an `AttachmentContext`, or a mapping. Anything that fails
    validation is logged at warning and replaced by an empty context.
    """
    if context is None:
        return EMPTY_CONTEXT

    if isinstance(context, AttachmentContext):
        return context

    try:
        return AttachmentContext.model_validate(context)
    except ValidationError as exc:
        logger.warning("Dropping invalid attachment context: %s", exc.errors(include_url=False))
        return EMPTY_CONTEXT
