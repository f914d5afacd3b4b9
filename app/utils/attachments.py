"""Data-URI attachment validation.

Attachments travel as base64 data URIs inside JSON bodies
(``data:image/png;base64,iVBOR...``). Only the MIME prefix is checked;
payload size is bounded by ``MAX_CONTENT_LENGTH``.
"""

import re

from app.core.exceptions import ValidationError

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)(?:;[\w=.+-]+)*(?:;base64)?,", re.IGNORECASE)

IMAGE_PREFIXES = ("image/",)
DOCUMENT_PREFIXES = ("application/pdf", "image/")


def mime_type_of(data_uri) -> str | None:
    """Return the lower-cased MIME type of a data URI, or None."""
    if not isinstance(data_uri, str):
        return None
    match = _DATA_URI_RE.match(data_uri.strip())
    if not match:
        return None
    return match.group("mime").lower()


def _validate_list(values, prefixes, field):
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple)):
        raise ValidationError(f"{field} must be a list of data URIs", details={field: "type"})

    clean = []
    for position, value in enumerate(values):
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        mime = mime_type_of(value)
        if mime is None or not mime.startswith(prefixes):
            raise ValidationError(
                f"{field}[{position}] has an unsupported file type",
                details={field: f"index={position} mime={mime or 'unknown'}"},
            )
        clean.append(value.strip())
    return clean


def validate_images(values, field="images") -> list[str]:
    """image/* only."""
    return _validate_list(values, IMAGE_PREFIXES, field)


def validate_documents(values, field="documents") -> list[str]:
    """application/pdf or image/*."""
    return _validate_list(values, DOCUMENT_PREFIXES, field)


def validate_single_image(value, field="image") -> str | None:
    images = validate_images([value] if value is not None else [], field)
    return images[0] if images else None
