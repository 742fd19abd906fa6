"""Use case for processing inbound SMS messages."""

from __future__ import annotations

from loguru import logger

from agentchannels.application.dedup import DedupCache
from agentchannels.application.policy import is_sender_allowed, normalize_phone_allow_entry
from agentchannels.application.ports.reply_dispatcher import ReplyDispatcher
from agentchannels.domain.entities.sms_message import InboundSms
from agentchannels.domain.models import Channel, InboundContext, ReplyPayload
from agentchannels.infrastructure.settings import DEFAULT_ACCOUNT_ID, SmsChannelConfig
from agentchannels.infrastructure.sms.providers.twilio import TwilioProvider

SMS_ERROR_REPLY = "Sorry, something went wrong. Please try again."


def build_sms_session_key(sender: str) -> str:
    return f"agent:main:sms:dm:{sender}"


class ProcessSMSUseCase:
    """
    Process inbound SMS messages.

    Flow:
    1. Drop redelivered webhooks (same MessageSid)
    2. Check the sender against the inbound policy
    3. Dispatch to the host agent
    4. Send each reply back to the sender via Twilio
    """

    def __init__(
        self,
        config: SmsChannelConfig,
        dispatcher: ReplyDispatcher,
        provider: TwilioProvider,
        dedup: DedupCache | None = None,
        account_id: str = DEFAULT_ACCOUNT_ID,
    ):
        self.config = config
        self.dispatcher = dispatcher
        self.provider = provider
        self.dedup = dedup or DedupCache()
        self.account_id = account_id

    def _is_allowed(self, sender: str) -> bool:
        allow_from = [
            entry if entry.strip() == "*" else normalize_phone_allow_entry(entry)
            for entry in self.config.allow_from
        ]
        return is_sender_allowed(
            self.config.inbound_policy,
            allow_from,
            normalize_phone_allow_entry(sender),
            bot_address=normalize_phone_allow_entry(self.config.phone_number) or None,
        )

    def _build_context(self, inbound: InboundSms) -> InboundContext:
        return InboundContext(
            body=inbound.body,
            body_for_agent=inbound.body,
            raw_body=inbound.body,
            sender_id=inbound.sender,
            to=inbound.recipient,
            session_key=build_sms_session_key(inbound.sender),
            account_id=self.account_id,
            provider=Channel.SMS,
            surface=Channel.SMS,
            message_sid=inbound.message_sid,
            media_paths=[m.url for m in inbound.media],
            media_types=[m.content_type for m in inbound.media if m.content_type],
            metadata={"sender_e164": inbound.sender},
        )

    async def process(self, inbound: InboundSms) -> dict:
        """
        Process a single inbound SMS message.

        Returns:
            dict with processing result
        """
        if inbound.message_sid and self.dedup.check(f"{self.account_id}:{inbound.message_sid}"):
            logger.debug(f"Duplicate SMS webhook {inbound.message_sid}")
            return {"status": "duplicate", "message_sid": inbound.message_sid}

        if not self._is_allowed(inbound.sender):
            logger.info(f"SMS from {inbound.sender} blocked by {self.config.inbound_policy.value} policy")
            return {"status": "blocked", "message_sid": inbound.message_sid}

        if not inbound.body.strip() and not inbound.media:
            return {"status": "empty", "message_sid": inbound.message_sid}

        logger.info(f"Processing SMS {inbound.message_sid} from {inbound.sender}: {inbound.body[:50]}")
        replies_sent = 0

        async def deliver(payload: ReplyPayload) -> None:
            nonlocal replies_sent
            if not payload.text:
                return
            result = await self.provider.send_sms(inbound.sender, payload.text)
            if result.success:
                replies_sent += 1
            else:
                logger.error(f"Failed to send SMS reply: {result.error}")

        try:
            await self.dispatcher.dispatch(self._build_context(inbound), deliver)
        except Exception as e:
            logger.exception(f"Error processing SMS {inbound.message_sid} from {inbound.sender}: {e}")
            await self.provider.send_sms(inbound.sender, SMS_ERROR_REPLY)
            return {"status": "error", "error": str(e), "message_sid": inbound.message_sid}

        return {
            "status": "processed",
            "message_sid": inbound.message_sid,
            "replies_sent": replies_sent,
        }
