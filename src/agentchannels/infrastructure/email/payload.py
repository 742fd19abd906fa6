"""Parsing of Gmail watch notifications posted to ``/email/inbound``."""

from __future__ import annotations

from typing import Any, Optional


def _normalize_id(raw: Any) -> Optional[str]:
    if not isinstance(raw, str):
        return None
    return raw.strip() or None


def _collect_ids(target: dict[str, None], node: Any) -> None:
    if not isinstance(node, dict):
        return

    for raw in (node.get("messageId"), node.get("id")):
        message_id = _normalize_id(raw)
        if message_id:
            target.setdefault(message_id, None)

    message_ids = node.get("messageIds")
    if isinstance(message_ids, list):
        for raw in message_ids:
            message_id = _normalize_id(raw)
            if message_id:
                target.setdefault(message_id, None)

    messages = node.get("messages")
    if isinstance(messages, list):
        for message in messages:
            if not isinstance(message, dict):
                continue
            for raw in (message.get("messageId"), message.get("id")):
                message_id = _normalize_id(raw)
                if message_id:
                    target.setdefault(message_id, None)


def extract_inbound_message_ids(payload: Any) -> list[str]:
    """
    Message ids referenced by a notification, first-seen order, no repeats.

    Looks at ``messageId``, ``id``, ``messageIds[]`` and ``messages[]`` both
    at the top level and under ``data``.
    """
    ids: dict[str, None] = {}
    _collect_ids(ids, payload)
    if isinstance(payload, dict):
        _collect_ids(ids, payload.get("data"))
    return list(ids)


def resolve_inbound_history_id(payload: Any) -> Optional[str]:
    if not isinstance(payload, dict):
        return None
    top = _normalize_id(payload.get("historyId"))
    if top:
        return top
    data = payload.get("data")
    if isinstance(data, dict):
        return _normalize_id(data.get("historyId"))
    return None
