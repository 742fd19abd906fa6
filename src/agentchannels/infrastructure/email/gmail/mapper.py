from __future__ import annotations
import base64
import re
from datetime import datetime, timezone
from typing import Any, Optional

from agentchannels.domain.entities.email_message import EmailAttachment, InboundEmail

_ANGLE_ADDR_RE = re.compile(r"<([^>]+)>")
_DISPLAY_NAME_RE = re.compile(r"^([^<]+)<")
_MAX_PART_DEPTH = 20


def decode_base64url(data: str) -> bytes:
    # Gmail strips padding from base64url payloads
    padded = data + "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(padded)


def _decode_text(data: str) -> str:
    return decode_base64url(data).decode("utf-8", errors="replace")


def extract_header(headers: Optional[list[dict[str, Any]]], name: str) -> str:
    if not headers:
        return ""
    lower = name.lower()
    for h in headers:
        if (h.get("name") or "").lower() == lower:
            return (h.get("value") or "").strip()
    return ""


def extract_email_from_header(raw: str) -> str:
    if not raw:
        return ""
    m = _ANGLE_ADDR_RE.search(raw)
    return (m.group(1) if m else raw).strip().lower()


def extract_name_from_header(raw: str) -> str:
    if not raw:
        return ""
    m = _DISPLAY_NAME_RE.match(raw)
    if m:
        name = m.group(1).strip()
        if len(name) >= 2 and name.startswith('"') and name.endswith('"'):
            name = name[1:-1]
        return name
    return raw.strip()


def extract_addresses(raw: str) -> list[str]:
    """Split an address header on commas into bare lowercased addresses."""
    if not raw:
        return []
    out = []
    for part in raw.split(","):
        addr = extract_email_from_header(part)
        if addr:
            out.append(addr)
    return out


def _collect_bodies(parts: Optional[list[dict[str, Any]]], result: dict[str, str], depth: int = 0) -> None:
    if not parts or depth > _MAX_PART_DEPTH:
        return
    for part in parts:
        mime_type = (part.get("mimeType") or "").lower()
        data = (part.get("body") or {}).get("data")
        if data:
            if mime_type == "text/plain" and not result["text"]:
                result["text"] = _decode_text(data)
            elif mime_type == "text/html" and not result["html"]:
                result["html"] = _decode_text(data)
        if part.get("parts"):
            _collect_bodies(part["parts"], result, depth + 1)


def _collect_attachments(parts: Optional[list[dict[str, Any]]], depth: int = 0) -> list[EmailAttachment]:
    if not parts or depth > _MAX_PART_DEPTH:
        return []
    out: list[EmailAttachment] = []
    for part in parts:
        body = part.get("body") or {}
        if part.get("filename") and body.get("attachmentId"):
            out.append(
                EmailAttachment(
                    filename=part["filename"],
                    mime_type=part.get("mimeType") or "application/octet-stream",
                    size=int(body.get("size") or 0),
                    attachment_id=body["attachmentId"],
                )
            )
        if part.get("parts"):
            out.extend(_collect_attachments(part["parts"], depth + 1))
    return out


def gmail_payload_to_inbound_email(data: dict[str, Any], fallback_id: str) -> InboundEmail:
    """Map a Gmail ``users.messages.get`` (format=full) response."""
    payload = data.get("payload") or {}
    headers = payload.get("headers")
    from_raw = extract_header(headers, "From")

    bodies = {"text": "", "html": ""}
    top_data = (payload.get("body") or {}).get("data")
    if top_data:
        if (payload.get("mimeType") or "").lower() == "text/html":
            bodies["html"] = _decode_text(top_data)
        else:
            bodies["text"] = _decode_text(top_data)
    _collect_bodies(payload.get("parts"), bodies)

    references_raw = extract_header(headers, "References")
    references = tuple(references_raw.split()) if references_raw else ()

    # internalDate is epoch millis as a string
    date = None
    internal_date = data.get("internalDate")
    if internal_date:
        try:
            date = datetime.fromtimestamp(int(internal_date) / 1000, tz=timezone.utc)
        except (TypeError, ValueError, OSError):
            date = None

    sender = extract_email_from_header(from_raw)
    return InboundEmail(
        message_id=extract_header(headers, "Message-ID") or data.get("id") or fallback_id,
        thread_id=data.get("threadId") or "",
        sender=sender,
        sender_name=extract_name_from_header(from_raw) or sender,
        to=tuple(extract_addresses(extract_header(headers, "To"))),
        cc=tuple(extract_addresses(extract_header(headers, "Cc"))),
        subject=extract_header(headers, "Subject"),
        body_text=bodies["text"],
        body_html=bodies["html"],
        in_reply_to=extract_header(headers, "In-Reply-To"),
        references=references,
        date=date,
        attachments=tuple(_collect_attachments(payload.get("parts"))),
    )
