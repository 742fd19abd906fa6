"""Local filesystem store for inbound and outbound media."""

from __future__ import annotations

import mimetypes
import uuid
from pathlib import Path
from typing import Literal, Optional

import httpx
from loguru import logger

from agentchannels.domain.entities.attachment import SavedMedia
from agentchannels.errors import MediaTooLargeError


class LocalMediaStore:
    """Writes media under ``<root>/<direction>/<uuid><ext>``."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def save(
        self,
        data: bytes,
        content_type: Optional[str],
        direction: Literal["inbound", "outbound"],
        max_bytes: int,
    ) -> SavedMedia:
        if len(data) > max_bytes:
            raise MediaTooLargeError(len(data), max_bytes)

        target_dir = self.root / direction
        target_dir.mkdir(parents=True, exist_ok=True)
        ext = mimetypes.guess_extension(content_type or "") or ".bin"
        path = target_dir / f"{uuid.uuid4().hex}{ext}"
        path.write_bytes(data)
        logger.debug(f"Saved {direction} media {path} ({len(data)} bytes)")
        return SavedMedia(path=str(path), content_type=content_type)


async def load_media(url: str, http_client: httpx.AsyncClient | None = None) -> tuple[bytes, str, str]:
    """
    Load media referenced by a reply payload.

    Returns ``(data, filename, content_type)``. Accepts http(s) URLs and
    local paths (including ``file://``).
    """
    if url.startswith(("http://", "https://")):
        client = http_client or httpx.AsyncClient(timeout=30.0, follow_redirects=True)
        try:
            response = await client.get(url)
            response.raise_for_status()
        finally:
            if http_client is None:
                await client.aclose()
        filename = url.rstrip("/").rsplit("/", 1)[-1].split("?", 1)[0] or "attachment"
        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        return (
            response.content,
            filename,
            content_type or mimetypes.guess_type(filename)[0] or "application/octet-stream",
        )

    path = Path(url.removeprefix("file://"))
    content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    return path.read_bytes(), path.name, content_type
