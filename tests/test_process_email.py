"""Inbound email pipeline tests against an in-memory mailbox."""

from __future__ import annotations

import pytest

from agentchannels.application.dedup import DedupCache
from agentchannels.application.use_cases.process_email import (
    InboundEmailPipeline,
    build_envelope_body,
)
from agentchannels.domain.entities.email_message import EmailAttachment
from agentchannels.domain.models import Channel, InboundOutcome
from agentchannels.infrastructure.email.accounts import resolve_email_account
from agentchannels.infrastructure.settings import EmailChannelConfig

from conftest import BOT, MemoryMediaStore, RecordingDispatcher, make_email


def _pipeline(account, source, dispatcher, **kwargs) -> InboundEmailPipeline:
    return InboundEmailPipeline(account=account, source=source, dispatcher=dispatcher, **kwargs)


class TestEnvelope:
    def test_subject_sender_and_content(self):
        body = build_envelope_body(make_email(), "Hi bot", 0)
        assert body == "Subject: Hello\nFrom: Alice <alice@example.com>\n\nHi bot"

    def test_media_placeholder_pluralized(self):
        assert build_envelope_body(make_email(), "x", 1).endswith("<media:document> (1 attachment)")
        assert build_envelope_body(make_email(), "x", 2).endswith("<media:document> (2 attachments)")

    def test_no_subject_line_when_subject_empty(self):
        body = build_envelope_body(make_email(subject=""), "Hi", 0)
        assert body.startswith("From: Alice")


@pytest.mark.asyncio
class TestProcessMessage:
    async def test_dispatches_and_replies_on_thread(self, email_account, source, dispatcher):
        source.messages["g1"] = make_email(
            to=(BOT, "carol@example.com"),
            cc=("dave@example.com",),
            references=("<root@x>",),
        )
        pipeline = _pipeline(email_account, source, dispatcher)

        outcome = await pipeline.process_message("g1")

        assert outcome is InboundOutcome.DISPATCHED
        ctx = dispatcher.contexts[0]
        assert ctx.provider is Channel.EMAIL
        assert ctx.session_key == "email:default:thread:t1"
        assert ctx.message_sid == "g1"
        assert ctx.body_for_agent == "Hi bot"
        assert ctx.reply_to == ["alice@example.com"]
        assert ctx.reply_cc == ["carol@example.com", "dave@example.com"]

        sent = source.sent[0]
        assert sent.to == ["alice@example.com"]
        assert sent.subject == "Re: Hello"
        assert sent.text_body == "Thanks!"
        assert sent.in_reply_to == "<m1@mail.example.com>"
        assert sent.references == ["<root@x>", "<m1@mail.example.com>"]
        assert sent.thread_id == "t1"
        assert sent.cc == ["carol@example.com", "dave@example.com"]

    async def test_own_mail_is_blocked(self, email_account, source, dispatcher):
        source.messages["g1"] = make_email(sender=BOT)
        outcome = await _pipeline(email_account, source, dispatcher).process_message("g1")
        assert outcome is InboundOutcome.BLOCKED
        assert dispatcher.contexts == []

    async def test_allowlist_blocks_unknown_sender(self, source, dispatcher):
        account = resolve_email_account(
            EmailChannelConfig(gmail_address=BOT, allow_from=["email:friend@example.com"])
        )
        source.messages["g1"] = make_email()
        outcome = await _pipeline(account, source, dispatcher).process_message("g1")
        assert outcome is InboundOutcome.BLOCKED

    async def test_quoted_only_reply_is_empty(self, email_account, source, dispatcher):
        source.messages["g1"] = make_email(body_text="On Mon, Bob wrote:\n> old stuff")
        outcome = await _pipeline(email_account, source, dispatcher).process_message("g1")
        assert outcome is InboundOutcome.EMPTY
        assert dispatcher.contexts == []

    async def test_html_body_used_when_no_text(self, email_account, source, dispatcher):
        source.messages["g1"] = make_email(body_text="", body_html="<p>Hello <b>there</b></p>")
        await _pipeline(email_account, source, dispatcher).process_message("g1")
        assert "Hello" in dispatcher.contexts[0].body_for_agent
        assert "<b>" not in dispatcher.contexts[0].body_for_agent

    async def test_attachment_only_mail_is_dispatched_with_media(self, email_account, source, dispatcher):
        source.messages["g1"] = make_email(
            body_text="",
            attachments=(EmailAttachment(filename="a.pdf", mime_type="application/pdf", size=3, attachment_id="att1"),),
        )
        source.attachments[("g1", "att1")] = b"pdf"
        store = MemoryMediaStore()

        outcome = await _pipeline(email_account, source, dispatcher, media_store=store).process_message("g1")

        assert outcome is InboundOutcome.DISPATCHED
        ctx = dispatcher.contexts[0]
        assert ctx.media_paths == ["/media/inbound/1"]
        assert ctx.media_types == ["application/pdf"]
        assert "(1 attachment)" in ctx.body
        assert store.saved == [(b"pdf", "application/pdf")]

    async def test_failed_attachment_download_is_skipped(self, email_account, source, dispatcher):
        source.messages["g1"] = make_email(
            attachments=(EmailAttachment(filename="a.pdf", mime_type="application/pdf", size=3, attachment_id="gone"),),
        )
        outcome = await _pipeline(
            email_account, source, dispatcher, media_store=MemoryMediaStore()
        ).process_message("g1")
        assert outcome is InboundOutcome.DISPATCHED
        assert dispatcher.contexts[0].media_paths == []

    async def test_dispatch_error_reports_failed(self, email_account, source):
        source.messages["g1"] = make_email()
        dispatcher = RecordingDispatcher(error=RuntimeError("agent down"))
        outcome = await _pipeline(email_account, source, dispatcher).process_message("g1")
        assert outcome is InboundOutcome.FAILED
        assert source.sent == []

    async def test_signature_appended(self, source, dispatcher):
        account = resolve_email_account(EmailChannelConfig(gmail_address=BOT, signature="-- Bot"))
        source.messages["g1"] = make_email()
        await _pipeline(account, source, dispatcher).process_message("g1")
        assert source.sent[0].text_body == "Thanks!\n\n-- Bot"


@pytest.mark.asyncio
class TestNotifications:
    async def test_message_ids_in_payload(self, email_account, source, dispatcher):
        source.messages["g1"] = make_email()
        pipeline = _pipeline(email_account, source, dispatcher)

        result = await pipeline.handle_notification({"messageId": "g1"})

        assert result == {"ok": True, "processed": 1}
        assert len(dispatcher.contexts) == 1

    async def test_duplicate_notification_processed_once(self, email_account, source, dispatcher):
        source.messages["g1"] = make_email()
        pipeline = _pipeline(email_account, source, dispatcher)

        await pipeline.handle_notification({"messageId": "g1"})
        result = await pipeline.handle_notification({"messages": [{"id": "g1"}]})

        assert result == {"ok": True, "skipped": "duplicate"}
        assert source.fetched == ["g1"]
        assert len(dispatcher.contexts) == 1

    async def test_history_id_resolved_to_messages(self, email_account, source, dispatcher):
        source.messages["g2"] = make_email()
        source.history["100"] = ["g2"]

        result = await _pipeline(email_account, source, dispatcher).handle_notification({"historyId": "100"})

        assert result == {"ok": True, "processed": 1}

    async def test_unresolvable_history_id_is_skipped(self, email_account, source, dispatcher):
        result = await _pipeline(email_account, source, dispatcher).handle_notification({"historyId": "999"})
        assert result == {"ok": True, "skipped": "no messageId"}

    async def test_empty_payload(self, email_account, source, dispatcher):
        result = await _pipeline(email_account, source, dispatcher).handle_notification({})
        assert result == {"ok": True, "skipped": "no messageId"}

    async def test_dedup_is_scoped_by_account(self, source, dispatcher):
        shared = DedupCache()
        work = resolve_email_account(
            EmailChannelConfig(accounts={"work": {"gmail_address": BOT}, "home": {"gmail_address": BOT}}),
            "work",
        )
        home = resolve_email_account(
            EmailChannelConfig(accounts={"work": {"gmail_address": BOT}, "home": {"gmail_address": BOT}}),
            "home",
        )
        source.messages["g1"] = make_email()

        await _pipeline(work, source, dispatcher, dedup=shared).handle_notification({"messageId": "g1"})
        await _pipeline(home, source, dispatcher, dedup=shared).handle_notification({"messageId": "g1"})

        assert [c.account_id for c in dispatcher.contexts] == ["work", "home"]


@pytest.mark.asyncio
class TestPolling:
    async def test_poll_processes_and_marks_read(self, email_account, source, dispatcher):
        source.messages["g1"] = make_email()
        source.unread = ["g1"]
        pipeline = _pipeline(email_account, source, dispatcher)

        assert await pipeline.poll_once() == 1
        assert source.read == ["g1"]
        assert await pipeline.poll_once() == 0

    async def test_poll_continues_after_fetch_error(self, email_account, source, dispatcher):
        source.messages["g2"] = make_email()
        source.unread = ["missing", "g2"]

        seen = await _pipeline(email_account, source, dispatcher).poll_once()

        assert seen == 2
        assert source.read == ["g2"]
        assert len(dispatcher.contexts) == 1
