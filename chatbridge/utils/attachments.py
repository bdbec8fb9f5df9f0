"""Attachment loading utilities for Chatbridge."""

from pathlib import Path
from typing import Dict

from chatbridge.core.messages import Attachment, AttachmentKind
from chatbridge.utils.log import get_logger

logger = get_logger()

MAX_ATTACHMENT_SIZE_BYTES = 32 * 1024 * 1024  # 32MB

_KIND_BY_EXTENSION: Dict[str, AttachmentKind] = {
    **dict.fromkeys((".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".heic"), AttachmentKind.IMAGE),
    ".pdf": AttachmentKind.PDF,
    **dict.fromkeys((".txt", ".md", ".rtf", ".doc", ".docx", ".csv", ".json"), AttachmentKind.DOCUMENT),
    **dict.fromkeys(
        (
            ".py", ".swift", ".js", ".ts", ".java", ".c", ".h", ".cpp", ".go",
            ".rs", ".rb", ".sh", ".html", ".css", ".yaml", ".yml", ".toml",
        ),
        AttachmentKind.CODE,
    ),
    **dict.fromkeys((".mp3", ".wav", ".m4a", ".aac", ".flac", ".ogg"), AttachmentKind.AUDIO),
    **dict.fromkeys((".mp4", ".mov", ".m4v", ".avi", ".mkv", ".webm"), AttachmentKind.VIDEO),
}


def attachment_kind_for(file_path: Path) -> AttachmentKind:
    """Infer the attachment kind from a file extension.

    Args:
        file_path: Path to the file

    Returns:
        The matching kind, or ``AttachmentKind.OTHER`` for unknown extensions
    """
    return _KIND_BY_EXTENSION.get(file_path.suffix.lower(), AttachmentKind.OTHER)


def attachment_from_path(file_path: Path) -> Attachment:
    """Read a file into an Attachment.

    Raises:
        FileNotFoundError: if the path does not name a regular file
        ValueError: if the file is larger than MAX_ATTACHMENT_SIZE_BYTES
    """
    if not file_path.is_file():
        raise FileNotFoundError(f"Not a file: {file_path}")

    size = file_path.stat().st_size
    if size > MAX_ATTACHMENT_SIZE_BYTES:
        logger.warning(
            "[attachments] File too large",
            extra={"path": str(file_path), "size": size, "max_size": MAX_ATTACHMENT_SIZE_BYTES},
        )
        raise ValueError(
            f"{file_path.name} is {size} bytes; attachments are limited to "
            f"{MAX_ATTACHMENT_SIZE_BYTES} bytes"
        )

    kind = attachment_kind_for(file_path)
    logger.debug(
        "[attachments] Loaded attachment",
        extra={"path": str(file_path), "kind": kind.value, "size": size},
    )
    return Attachment(name=file_path.name, kind=kind, payload=file_path.read_bytes())
