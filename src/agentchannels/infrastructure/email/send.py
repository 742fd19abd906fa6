"""Outbound email through an account's mailbox."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import httpx
from loguru import logger

from agentchannels.application.ports.email_source import (
    EmailSource,
    OutboundAttachment,
    SendEmailParams,
)
from agentchannels.infrastructure.media import load_media


@dataclass(frozen=True)
class EmailSendOptions:
    subject: str = ""
    cc: list[str] = field(default_factory=list)
    in_reply_to: Optional[str] = None
    references: list[str] = field(default_factory=list)
    thread_id: Optional[str] = None
    media_urls: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class EmailSendResult:
    message_id: str
    thread_id: str
    chat_id: str


class EmailSender:
    """Sends plain-text mail, appending the account signature and media attachments."""

    def __init__(
        self,
        source: EmailSource,
        signature: Optional[str] = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.source = source
        self.signature = (signature or "").strip()
        self._http = http_client

    def _with_signature(self, text: str) -> str:
        if not self.signature:
            return text
        return f"{text}\n\n{self.signature}"

    async def _load_attachments(self, media_urls: list[str]) -> list[OutboundAttachment]:
        attachments: list[OutboundAttachment] = []
        for url in media_urls:
            try:
                data, filename, mime_type = await load_media(url, self._http)
            except Exception as e:
                logger.warning(f"Skipping email attachment {url}: {e}")
                continue
            attachments.append(OutboundAttachment(filename=filename, mime_type=mime_type, data=data))
        return attachments

    async def send(self, to: str, text: str, options: EmailSendOptions | None = None) -> EmailSendResult:
        options = options or EmailSendOptions()
        attachments = await self._load_attachments(options.media_urls)

        sent = await self.source.send_email(
            SendEmailParams(
                to=[to],
                subject=options.subject,
                text_body=self._with_signature(text),
                cc=list(options.cc),
                in_reply_to=options.in_reply_to,
                references=list(options.references),
                thread_id=options.thread_id,
                attachments=attachments,
            )
        )
        logger.info(
            f"Email sent to {to} message_id={sent.message_id} thread_id={sent.thread_id} "
            f"attachments={len(attachments)}"
        )
        return EmailSendResult(message_id=sent.message_id, thread_id=sent.thread_id, chat_id=to)
