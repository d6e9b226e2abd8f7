from __future__ import annotations

import base64
from pathlib import Path

from loguru import logger

DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024

IMAGE_MEDIA_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def media_type_for(path: str | Path) -> str:
    return IMAGE_MEDIA_TYPES.get(Path(path).suffix.lower(), "application/octet-stream")


def format_text_attachment(name: str, text: str) -> str:
    return f"File: {name}\n```\n{text}\n```"


def build_attachment_blocks(file_paths: list[str], *, max_file_size: int = DEFAULT_MAX_FILE_SIZE) -> list[dict]:
    """Turn attachment paths into Anthropic content blocks.

    Images become base64 image blocks, everything else is inlined as a fenced
    text block. Missing, oversized or unreadable files are skipped with a
    warning so one bad attachment does not sink the whole turn.
    """
    blocks: list[dict] = []
    for raw_path in file_paths:
        path = Path(raw_path)
        if not path.is_file():
            logger.warning(f"Attachment not found: {raw_path}")
            continue

        try:
            size = path.stat().st_size
            if size > max_file_size:
                logger.warning(f"Attachment too large ({size:,} bytes): {raw_path}")
                continue

            if path.suffix.lower() in IMAGE_MEDIA_TYPES:
                blocks.append({
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": media_type_for(path),
                        "data": base64.b64encode(path.read_bytes()).decode("ascii"),
                    },
                })
            else:
                text = path.read_text(encoding="utf-8")
                blocks.append({"type": "text", "text": format_text_attachment(path.name, text)})
        except (OSError, UnicodeDecodeError) as ex:
            logger.warning(f"Failed to read attachment {raw_path}: {ex}")

    return blocks
