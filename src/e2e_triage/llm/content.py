"""User content parts for multimodal generation requests."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from typing import TypeAlias


@dataclass(frozen=True)
class TextPart:
    """A block of prompt text."""

    text: str


@dataclass(frozen=True)
class ImagePart:
    """An inline image attached to the prompt."""

    data: bytes
    mime_type: str = "image/png"

    def to_base64(self) -> str:
        """Convert image data to base64 string."""
        return base64.b64encode(self.data).decode("utf-8")

    def to_data_url(self) -> str:
        """Format the image as a data URL."""
        return f"data:{self.mime_type};base64,{self.to_base64()}"


ContentPart: TypeAlias = TextPart | ImagePart
UserContent: TypeAlias = str | list[ContentPart]


def as_parts(user_content: UserContent) -> list[ContentPart]:
    """Normalize user content to a list of parts."""
    if isinstance(user_content, str):
        return [TextPart(user_content)]
    return list(user_content)
