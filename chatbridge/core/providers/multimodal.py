"""Provider-neutral representation of a user turn with attachments.

Each protocol adapter serializes these parts into its own wire shape; the
split between structured image parts and inlined file text is decided here
once.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import List, Sequence, Union

from chatbridge.core.messages import Attachment

IMAGE_MEDIA_TYPE = "image/jpeg"


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ImagePart:
    data: str  # base64, no data: prefix
    media_type: str = IMAGE_MEDIA_TYPE

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"


MultimodalPart = Union[TextPart, ImagePart]


@dataclass
class UserContent:
    """Images to send as structured parts plus the text that accompanies them."""

    images: List[ImagePart] = field(default_factory=list)
    text: TextPart = field(default_factory=lambda: TextPart(""))


def file_block(attachment: Attachment) -> str:
    return f"\n\n[File: {attachment.name}]\n{attachment.decoded_text()}"


def build_user_content(message: str, attachments: Sequence[Attachment]) -> UserContent:
    """Split ``attachments`` into image parts and text inlined after ``message``.

    Images without a payload cannot be encoded, so they are inlined as a file
    reference like any other attachment.
    """
    images: List[ImagePart] = []
    text = message
    for attachment in attachments:
        if attachment.is_image and attachment.payload:
            images.append(ImagePart(data=base64.b64encode(attachment.payload).decode("ascii")))
            continue
        text += file_block(attachment)
    return UserContent(images=images, text=TextPart(text))
