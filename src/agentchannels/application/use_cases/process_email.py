"""Inbound email pipeline: dedup, sender policy, content check, dispatch."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from loguru import logger

from agentchannels.application.dedup import DedupCache
from agentchannels.application.policy import is_sender_allowed
from agentchannels.application.ports.email_source import EmailSource
from agentchannels.application.ports.media_store import MediaStore
from agentchannels.application.ports.reply_dispatcher import ReplyDispatcher
from agentchannels.application.reply_threading import (
    build_email_session_key,
    build_reply_subject,
    extract_latest_content,
    resolve_reply_recipients,
)
from agentchannels.domain.entities.attachment import SavedMedia
from agentchannels.domain.entities.email_message import InboundEmail, ReplyRecipients
from agentchannels.domain.models import Channel, InboundContext, InboundOutcome, ReplyPayload
from agentchannels.infrastructure.email.accounts import ResolvedEmailAccount
from agentchannels.infrastructure.email.html import html_to_plain_text
from agentchannels.infrastructure.email.payload import (
    extract_inbound_message_ids,
    resolve_inbound_history_id,
)
from agentchannels.infrastructure.email.send import EmailSender, EmailSendOptions

DEFAULT_MEDIA_MAX_BYTES = 8 * 1024 * 1024


def _media_placeholder(count: int) -> str:
    if count == 0:
        return ""
    return f"\n<media:document> ({count} attachment{'s' if count > 1 else ''})"


def build_envelope_body(email: InboundEmail, latest_content: str, media_count: int) -> str:
    subject_line = f"Subject: {email.subject}" if email.subject else ""
    from_line = f"From: {email.sender_name} <{email.sender}>"
    lines = [subject_line, from_line, "", latest_content + _media_placeholder(media_count)]
    return "\n".join(lines).strip()


class InboundEmailPipeline:
    """
    Process Gmail notifications and unread mail for one account.

    Flow per message:
    1. Dedup on ``<account>:<message id>`` (before any fetch)
    2. Fetch the message
    3. Sender policy (self loop, dm policy, allow-list)
    4. Content check (latest content or attachments)
    5. Download attachments into the media store
    6. Dispatch to the host; replies go back on the same thread
    """

    def __init__(
        self,
        account: ResolvedEmailAccount,
        source: EmailSource,
        dispatcher: ReplyDispatcher,
        sender: EmailSender | None = None,
        dedup: DedupCache | None = None,
        media_store: MediaStore | None = None,
        media_max_bytes: int = DEFAULT_MEDIA_MAX_BYTES,
    ):
        self.account = account
        self.source = source
        self.dispatcher = dispatcher
        self.sender = sender or EmailSender(source, signature=account.config.signature)
        self.dedup = dedup or DedupCache()
        self.media_store = media_store
        if account.config.media_max_mb:
            media_max_bytes = int(account.config.media_max_mb * 1024 * 1024)
        self.media_max_bytes = media_max_bytes

    @property
    def account_id(self) -> str:
        return self.account.account_id

    @property
    def bot_email(self) -> str:
        return (self.account.gmail_address or self.source.user_email).lower()

    def _filter_new(self, message_ids: list[str]) -> list[str]:
        return [mid for mid in message_ids if not self.dedup.check(f"{self.account_id}:{mid}")]

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def handle_notification(self, payload: Any) -> dict[str, Any]:
        """Handle one push notification; returns the JSON body for the hook response."""
        message_ids = extract_inbound_message_ids(payload)
        if not message_ids:
            history_id = resolve_inbound_history_id(payload)
            if not history_id:
                return {"ok": True, "skipped": "no messageId"}
            try:
                message_ids = await self.source.get_history(history_id)
            except Exception as e:
                logger.debug(f"Failed to resolve historyId {history_id} for {self.account_id}: {e}")
                message_ids = []

        if not message_ids:
            return {"ok": True, "skipped": "no messageId"}

        pending = self._filter_new(message_ids)
        if not pending:
            return {"ok": True, "skipped": "duplicate"}

        for message_id in pending:
            await self.process_message(message_id)
        return {"ok": True, "processed": len(pending)}

    async def poll_once(self) -> int:
        """Process unread inbox mail once. Returns the number of new messages seen."""
        message_ids = await self.source.list_unread_message_ids()
        pending = self._filter_new(message_ids)
        if pending:
            logger.debug(f"Email poll [{self.account_id}]: {len(pending)} new message(s)")

        for message_id in pending:
            try:
                await self.process_message(message_id)
                await self.source.mark_as_read(message_id)
            except Exception as e:
                logger.error(f"Email poll [{self.account_id}]: failed to process {message_id}: {e}")
        return len(pending)

    # ------------------------------------------------------------------
    # Per-message processing
    # ------------------------------------------------------------------

    async def process_message(self, message_id: str) -> InboundOutcome:
        email = await self.source.get_message(message_id)

        if not is_sender_allowed(
            self.account.dm_policy,
            self.account.allow_from,
            email.sender,
            bot_address=self.bot_email,
        ):
            logger.debug(f"Dropping email {message_id} from {email.sender} (policy {self.account.dm_policy.value})")
            return InboundOutcome.BLOCKED

        body_text = email.body_text
        if not body_text and email.body_html:
            body_text = html_to_plain_text(email.body_html)
        latest_content = extract_latest_content(body_text)
        if not latest_content and not email.attachments:
            logger.debug(f"Skipping email {message_id}: no new content")
            return InboundOutcome.EMPTY

        media = await self._download_attachments(message_id, email)
        recipients = resolve_reply_recipients(
            bot_email=self.bot_email,
            original_from=email.sender,
            original_to=email.to,
            original_cc=email.cc,
            preserve_cc=self.account.preserve_cc,
        )
        ctx = self._build_context(message_id, email, body_text, latest_content, media, recipients)

        logger.info(
            f"Inbound email [{self.account_id}] {message_id} from {email.sender} "
            f"thread={email.thread_id} attachments={len(media)}"
        )
        try:
            await self.dispatcher.dispatch(ctx, self._make_deliver(email, recipients))
        except Exception as e:
            logger.exception(f"Dispatch failed for email {message_id}: {e}")
            return InboundOutcome.FAILED
        return InboundOutcome.DISPATCHED

    async def _download_attachments(self, message_id: str, email: InboundEmail) -> list[SavedMedia]:
        if not email.attachments:
            return []
        if self.media_store is None:
            logger.debug(f"No media store configured, ignoring {len(email.attachments)} attachment(s)")
            return []

        saved: list[SavedMedia] = []
        for att in email.attachments:
            try:
                data = await self.source.get_attachment(message_id, att.attachment_id)
                media = self.media_store.save(data, att.mime_type, "inbound", self.media_max_bytes)
            except Exception as e:
                logger.debug(f"Failed to download attachment {att.filename}: {e}")
                continue
            saved.append(SavedMedia(path=media.path, content_type=media.content_type or att.mime_type))
        return saved

    def _build_context(
        self,
        message_id: str,
        email: InboundEmail,
        body_text: str,
        latest_content: str,
        media: list[SavedMedia],
        recipients: ReplyRecipients,
    ) -> InboundContext:
        return InboundContext(
            body=build_envelope_body(email, latest_content, len(media)),
            body_for_agent=latest_content or body_text,
            raw_body=body_text,
            sender_id=email.sender,
            sender_name=email.sender_name,
            to=email.sender,
            session_key=build_email_session_key(self.account_id, email.thread_id),
            account_id=self.account_id,
            provider=Channel.EMAIL,
            surface=Channel.EMAIL,
            message_sid=message_id,
            thread_id=email.thread_id,
            email_subject=email.subject,
            email_cc=", ".join(email.cc),
            email_in_reply_to=email.in_reply_to,
            email_references=" ".join(email.references),
            reply_to=recipients.to,
            reply_cc=recipients.cc,
            media_paths=[m.path for m in media],
            media_types=[m.content_type for m in media if m.content_type],
        )

    def _make_deliver(self, email: InboundEmail, recipients: ReplyRecipients):
        options = EmailSendOptions(
            subject=build_reply_subject(email.subject),
            cc=recipients.cc,
            in_reply_to=email.message_id,
            references=[*email.references, email.message_id],
            thread_id=email.thread_id,
        )

        async def deliver(payload: ReplyPayload) -> None:
            try:
                await self.sender.send(
                    email.sender,
                    payload.text or "",
                    replace(options, media_urls=list(payload.media_urls)),
                )
            except Exception as e:
                logger.error(f"Email reply to {email.sender} failed: {e}")

        return deliver

