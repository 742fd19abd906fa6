from __future__ import annotations
import base64
from email import policy
from email.message import EmailMessage
from email.utils import formatdate, make_msgid

from agentchannels.application.ports.email_source import SendEmailParams

def build_mime_message(sender: str, params: SendEmailParams) -> EmailMessage:
    msg = EmailMessage(policy=policy.SMTP)
    msg["From"] = sender
    msg["To"] = ", ".join(params.to)
    if params.cc:
        msg["Cc"] = ", ".join(params.cc)
    if params.bcc:
        msg["Bcc"] = ", ".join(params.bcc)
    msg["Subject"] = params.subject
    msg["Date"] = formatdate(usegmt=True)
    msg["Message-ID"] = make_msgid(domain=sender.split("@")[-1] if "@" in sender else None)
    if params.in_reply_to:
        msg["In-Reply-To"] = params.in_reply_to
    if params.references:
        msg["References"] = " ".join(params.references)

    msg.set_content(params.text_body or "")
    if params.html_body:
        msg.add_alternative(params.html_body, subtype="html")

    for att in params.attachments:
        maintype, _, subtype = att.mime_type.partition("/")
        msg.add_attachment(
            att.data,
            maintype=maintype or "application",
            subtype=subtype or "octet-stream",
            filename=att.filename,
        )
    return msg


def encode_raw_message(msg: EmailMessage) -> str:
    """base64url without padding, as Gmail's ``raw`` field expects."""
    return base64.urlsafe_b64encode(msg.as_bytes()).decode("ascii").rstrip("=")
