"""Slack notifications for new flow submissions.

The notifier is best effort: every Slack failure is logged and recorded on
the returned :class:`NotifyOutcome`, never raised. A stored flow is never
affected by what happens here.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx
from fastapi import Request

from .config import SlackSettings

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Base class for notification failures."""
    pass


class SlackApiError(NotificationError):
    """Slack answered with ``ok: false``."""

    def __init__(self, method: str, error: str):
        super().__init__(f"{method} failed: {error}")
        self.method = method
        self.error = error


class SlackClient:
    """Minimal async client for the Slack Web API methods we use."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = "https://slack.com/api/",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    async def _call(
        self,
        method: str,
        *,
        params: dict[str, str] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        if payload is None:
            response = await self._client.get(method, params=params)
        else:
            response = await self._client.post(method, json=payload)
        response.raise_for_status()

        try:
            data = response.json()
        except ValueError as e:
            raise NotificationError(f"{method} returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise NotificationError(f"{method} returned an unexpected body")
        if not data.get("ok"):
            raise SlackApiError(method, data.get("error", "unknown_error"))
        return data

    async def lookup_user_by_email(self, email: str) -> str | None:
        """Return the Slack user id registered for ``email``."""
        data = await self._call("users.lookupByEmail", params={"email": email})
        return (data.get("user") or {}).get("id")

    async def invite_to_channel(self, channel: str, user_id: str) -> None:
        await self._call("conversations.invite", payload={"channel": channel, "users": user_id})

    async def post_message(self, channel: str, text: str, *, thread_ts: str | None = None) -> dict[str, Any]:
        """Post ``text`` to ``channel``, as a thread reply when ``thread_ts`` is set."""
        payload: dict[str, Any] = {"channel": channel, "text": text}
        if thread_ts:
            payload["thread_ts"] = thread_ts
        return await self._call("chat.postMessage", payload=payload)

    async def aclose(self) -> None:
        await self._client.aclose()


@dataclass
class NotifyOutcome:
    """What a single notification attempt achieved."""
    tagged_user: str
    user_id: str | None = None
    invited: bool = False
    message_ts: str | None = None
    thread_ts: str | None = None
    error: str | None = None

    @property
    def delivered(self) -> bool:
        return self.message_ts is not None and self.error is None


def _describe(error: Exception, email: str) -> str:
    code = error.error if isinstance(error, SlackApiError) else str(error)
    if "users_not_found" in code:
        return f"The specified email ({email}) does not match any Slack user."
    if "channel_not_found" in code:
        return "The specified channel is not accessible by the bot."
    return f"Error sending Slack notification: {error}"


def format_payload(payload: Any) -> str:
    """Pretty-print ``payload`` as a fenced code block."""
    return f"```{json.dumps(payload, indent=2, default=str)}```"


class Notifier:
    """Posts new-request messages to a fixed Slack channel.

    Args:
        client: Slack client (shared for the process lifetime)
        channel_id: Channel receiving the messages
        default_user_id: User cc'd on every message
        enabled: When False, ``notify`` does nothing
    """

    def __init__(
        self,
        client: SlackClient,
        *,
        channel_id: str,
        default_user_id: str,
        enabled: bool = True,
    ):
        self.client = client
        self.channel_id = channel_id
        self.default_user_id = default_user_id
        self.enabled = enabled

    async def find_user_id(self, email: str) -> str | None:
        """Resolve ``email`` to a Slack user id, or None if that fails."""
        try:
            return await self.client.lookup_user_by_email(email)
        except (NotificationError, httpx.HTTPError) as e:
            logger.error(f"Error finding Slack user by email ({email}): {e}")
            return None

    async def _invite(self, user_id: str) -> bool:
        try:
            await self.client.invite_to_channel(self.channel_id, user_id)
        except (NotificationError, httpx.HTTPError) as e:
            logger.error(f"Error adding user <@{user_id}> to the channel: {e}")
            return False
        logger.info(f"User <@{user_id}> added to the channel.")
        return True

    async def notify(self, summary_text: str, payload: Any, contact_email: str) -> NotifyOutcome:
        """Announce a new request in the channel and thread the payload under it.

        Steps:
        1. Look up the contact's Slack user (falls back to tagging the raw email)
        2. Invite a resolved user to the channel
        3. Post the summary, tagging the contact and cc'ing the default user
        4. Reply in thread with the pretty-printed payload

        Never raises; failures are logged and reported on the outcome.
        """
        outcome = NotifyOutcome(tagged_user=contact_email)
        if not self.enabled:
            logger.debug("Slack notifications disabled; skipping")
            return outcome

        try:
            outcome.user_id = await self.find_user_id(contact_email)
            if outcome.user_id:
                outcome.tagged_user = f"<@{outcome.user_id}>"
                outcome.invited = await self._invite(outcome.user_id)

            text = (
                f"New Request Submitted by {outcome.tagged_user}.\n"
                f"cc: <@{self.default_user_id}>\n"
                f"{summary_text}"
            )
            message = await self.client.post_message(self.channel_id, text)
            outcome.message_ts = message.get("ts")

            if outcome.message_ts:
                reply = await self.client.post_message(
                    message.get("channel") or self.channel_id,
                    format_payload(payload),
                    thread_ts=outcome.message_ts,
                )
                outcome.thread_ts = reply.get("ts")
        except Exception as e:
            outcome.error = str(e)
            logger.error(_describe(e, contact_email), exc_info=not isinstance(e, NotificationError))

        return outcome


def build_notifier(slack: SlackSettings) -> Notifier:
    """Create the process-wide notifier from settings."""
    client = SlackClient(
        slack.bot_token.get_secret_value(),
        base_url=slack.api_url,
        timeout=slack.timeout,
    )
    return Notifier(
        client,
        channel_id=slack.channel_id,
        default_user_id=slack.default_user_id,
        enabled=slack.enabled and bool(slack.bot_token.get_secret_value()),
    )


def get_notifier(request: Request) -> Notifier:
    """FastAPI dependency returning the notifier created at startup."""
    return request.app.state.notifier
