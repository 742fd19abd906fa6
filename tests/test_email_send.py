from __future__ import annotations

import pytest

from agentchannels.infrastructure.email.send import EmailSender, EmailSendOptions

pytestmark = pytest.mark.asyncio


async def test_send_passes_threading_headers(source):
    sender = EmailSender(source)

    result = await sender.send(
        "alice@example.com",
        "Hello",
        EmailSendOptions(
            subject="Re: Hi",
            cc=["carol@example.com"],
            in_reply_to="<a@x>",
            references=["<a@x>"],
            thread_id="t1",
        ),
    )

    params = source.sent[0]
    assert params.to == ["alice@example.com"]
    assert params.text_body == "Hello"
    assert params.cc == ["carol@example.com"]
    assert params.in_reply_to == "<a@x>"
    assert params.thread_id == "t1"
    assert result.chat_id == "alice@example.com"
    assert result.thread_id == "t1"


async def test_signature_is_trimmed_and_appended(source):
    await EmailSender(source, signature="  Cheers, Bot \n").send("a@x.com", "Body")
    assert source.sent[0].text_body == "Body\n\nCheers, Bot"


async def test_media_attached_and_bad_urls_skipped(source, tmp_path):
    good = tmp_path / "report.pdf"
    good.write_bytes(b"%PDF")

    await EmailSender(source).send(
        "a@x.com",
        "See attached",
        EmailSendOptions(media_urls=[str(good), str(tmp_path / "missing.pdf")]),
    )

    attachments = source.sent[0].attachments
    assert [(a.filename, a.mime_type, a.data) for a in attachments] == [("report.pdf", "application/pdf", b"%PDF")]
