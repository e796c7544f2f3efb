"""Decode the `imageBase64` request field into (mime type, base64 data).

Accepts either a full ``data:<mime>;base64,<data>`` URI or a bare base64
blob. Never raises: an undecodable input yields an empty ``data`` which the
route turns into a 400 before any provider is contacted.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass

DEFAULT_MIME = "image/jpeg"

_DATA_URI = re.compile(r"^data:([^;,]*);base64,(.*)$", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class ImagePayload:
    mime_type: str
    data: str

    def is_empty(self) -> bool:
        return not self.data

    def as_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"

    def decode_bytes(self) -> bytes:
        """Raw image bytes; ValueError if `data` is not valid base64."""
        try:
            return base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"invalid base64 image data: {e}") from e


def parse_image_payload(raw: str | None) -> ImagePayload:
    text = (raw or "").strip()
    m = _DATA_URI.match(text)
    if m:
        mime = m.group(1).strip() or DEFAULT_MIME
        return ImagePayload(mime_type=mime, data=m.group(2) or "")
    return ImagePayload(mime_type=DEFAULT_MIME, data=text)


__all__ = ["DEFAULT_MIME", "ImagePayload", "parse_image_payload"]
