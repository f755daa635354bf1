"""Outbound notification adapters used by the settlement follow-up.

PostmarkEmailSender: buyer receipt email via the Postmark HTTP API.
RedisNotificationEmitter: queues an in-app notification event on a Redis
stream; delivery workers (outside this service) consume it.

Both raise BestEffortFailure on delivery errors; BestEffortRunner logs them.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.mk_common.datetime_utils import utc_now
from src.mk_common.errors import BestEffortFailure

logger = logging.getLogger(__name__)

# Trimmed approximately; consumers are expected to keep up well within this
STREAM_MAXLEN = 10_000


class PostmarkEmailSender:
    def __init__(
        self,
        api_url: str,
        server_token: str | None,
        sender: str,
        timeout_seconds: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url = api_url
        self._token = server_token
        self._sender = sender
        self._timeout = timeout_seconds
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self._token)

    async def send(self, to: str, subject: str, html: str, text: str) -> None:
        if not self._token:
            logger.info("Email delivery disabled (no Postmark token); skipping %r to %s", subject, to)
            return
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.post(
                    self._api_url,
                    headers={
                        "Accept": "application/json",
                        "X-Postmark-Server-Token": self._token,
                    },
                    json={
                        "From": self._sender,
                        "To": to,
                        "Subject": subject,
                        "HtmlBody": html,
                        "TextBody": text,
                        "MessageStream": "outbound",
                    },
                )
        except httpx.HTTPError as exc:
            raise BestEffortFailure(f"Postmark request failed: {exc}") from exc
        if resp.status_code >= 300:
            raise BestEffortFailure(
                f"Postmark returned {resp.status_code}: {resp.text[:200]}"
            )
        logger.info("Sent %r to %s", subject, to)


class RedisNotificationEmitter:
    def __init__(
        self,
        redis_factory: Callable[[], Awaitable[aioredis.Redis]],
        stream_name: str,
    ) -> None:
        self._redis_factory = redis_factory
        self._stream = stream_name

    async def emit(
        self,
        event_type: str,
        organization_id: str,
        payload: dict[str, Any],
        recipients: list[str],
    ) -> str:
        message = {
            "event_type": event_type,
            "organization_id": organization_id,
            "recipients": json.dumps(recipients),
            "payload": json.dumps(payload, default=str),
            "timestamp": utc_now().isoformat(),
        }
        try:
            redis = await self._redis_factory()
            msg_id = await redis.xadd(
                self._stream, message, maxlen=STREAM_MAXLEN, approximate=True
            )
        except RedisError as exc:
            raise BestEffortFailure(f"notification emit failed: {exc}") from exc
        logger.info(
            "Queued %s for org %s (%d recipient(s)) msg_id=%s",
            event_type,
            organization_id,
            len(recipients),
            msg_id,
        )
        return str(msg_id)
