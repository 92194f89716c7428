from __future__ import annotations

import asyncio
import logging
from typing import Any, Mapping, Sequence
from urllib.parse import quote

from discord_rest.config import ClientConfig
from discord_rest.consumer import bot_add_url
from discord_rest.metrics import Metrics
from discord_rest.options import (
    AuditLogOptions,
    CreateGuildChannelOptions,
    CreateInviteOptions,
    GetMembersOptions,
    GetMessagesOptions,
    ModifyChannelOptions,
    ModifyGuildOptions,
    ModifyMemberOptions,
    RoleOptions,
    WebhookOptions,
)
from discord_rest.rate_limiter import RateLimiter, ResultCallback
from discord_rest.routes import Route
from discord_rest.transport import AiohttpTransport, Transport
from discord_rest.types import RequestDescriptor, RequestResult

Completion = asyncio.Future[RequestResult]

MAX_MESSAGE_LENGTH = 2000
MAX_REASON_LENGTH = 512


class RestClient:
    """Typed endpoint methods over one shared RateLimiter.

    Every endpoint returns immediately with a future resolving to a
    RequestResult, and takes an optional ``callback`` run with that same
    result. ``reason`` lands in the guild audit log.
    """

    def __init__(
        self,
        cfg: ClientConfig | None = None,
        transport: Transport | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self.cfg = cfg or ClientConfig()
        self.log = logging.getLogger("RestClient")
        self._own_transport = transport is None
        self.transport = transport or AiohttpTransport(
            base_url=self.cfg.http.base_url,
            token=self.cfg.token or None,
            timeout_sec=self.cfg.http.timeout_sec,
            max_in_flight=self.cfg.http.max_in_flight,
            user_agent=self.cfg.http.user_agent,
        )
        self._rate_limiter = RateLimiter(self.transport, self.cfg.rate_limits, metrics)
        self._user: dict[str, Any] | None = None

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._rate_limiter

    @property
    def user(self) -> dict[str, Any] | None:
        return self._user

    async def __aenter__(self) -> "RestClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._rate_limiter.close()
        if self._own_transport:
            await self.transport.close()  # type: ignore[attr-defined]

    def request(
        self,
        route: Route,
        *,
        json: Any = None,
        params: Mapping[str, str] | None = None,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        headers: dict[str, str] = {}
        if reason:
            if len(reason) > MAX_REASON_LENGTH:
                raise ValueError(f"audit log reason is limited to {MAX_REASON_LENGTH} characters")
            headers["X-Audit-Log-Reason"] = quote(reason)
        descriptor = RequestDescriptor(route.method, route.path, headers=headers, params=params or {}, body=json)
        return self._rate_limiter.submit(descriptor, route.bucket, callback)

    def _call(
        self,
        method: str,
        template: str,
        *,
        json: Any = None,
        params: Mapping[str, str] | None = None,
        reason: str | None = None,
        callback: ResultCallback | None = None,
        **route_params: Any,
    ) -> Completion:
        return self.request(Route(method, template, **route_params), json=json, params=params, reason=reason, callback=callback)

    def bot_url(self, permissions: int) -> str | None:
        return bot_add_url(self, permissions, self.cfg.oauth_authorize_url)

    # channels

    def get_channel(self, channel_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call("GET", "/channels/{channel_id}", channel_id=channel_id, callback=callback)

    def modify_channel(
        self,
        channel_id: int,
        options: ModifyChannelOptions,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        return self._call(
            "PATCH", "/channels/{channel_id}", channel_id=channel_id, json=options.to_payload(), reason=reason, callback=callback
        )

    def delete_channel(self, channel_id: int, reason: str | None = None, callback: ResultCallback | None = None) -> Completion:
        return self._call("DELETE", "/channels/{channel_id}", channel_id=channel_id, reason=reason, callback=callback)

    def get_messages(
        self,
        channel_id: int,
        options: GetMessagesOptions | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        params = options.to_params() if options else {}
        return self._call("GET", "/channels/{channel_id}/messages", channel_id=channel_id, params=params, callback=callback)

    def send_message(
        self,
        channel_id: int,
        content: str | None = None,
        embeds: Sequence[Mapping[str, Any]] | None = None,
        tts: bool = False,
        callback: ResultCallback | None = None,
    ) -> Completion:
        if not content and not embeds:
            raise ValueError("a message needs content or at least one embed")
        if content and len(content) > MAX_MESSAGE_LENGTH:
            raise ValueError(f"message content is limited to {MAX_MESSAGE_LENGTH} characters")
        payload: dict[str, Any] = {"tts": tts}
        if content:
            payload["content"] = content
        if embeds:
            payload["embeds"] = [dict(e) for e in embeds]
        return self._call("POST", "/channels/{channel_id}/messages", channel_id=channel_id, json=payload, callback=callback)

    def edit_message(
        self,
        channel_id: int,
        message_id: int,
        content: str,
        callback: ResultCallback | None = None,
    ) -> Completion:
        if len(content) > MAX_MESSAGE_LENGTH:
            raise ValueError(f"message content is limited to {MAX_MESSAGE_LENGTH} characters")
        return self._call(
            "PATCH",
            "/channels/{channel_id}/messages/{message_id}",
            channel_id=channel_id,
            message_id=message_id,
            json={"content": content},
            callback=callback,
        )

    def delete_message(self, channel_id: int, message_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call(
            "DELETE",
            "/channels/{channel_id}/messages/{message_id}",
            channel_id=channel_id,
            message_id=message_id,
            callback=callback,
        )

    def bulk_delete_messages(
        self,
        channel_id: int,
        message_ids: Sequence[int],
        callback: ResultCallback | None = None,
    ) -> Completion:
        if not 2 <= len(message_ids) <= 100:
            raise ValueError("bulk delete takes between 2 and 100 messages")
        return self._call(
            "POST",
            "/channels/{channel_id}/messages/bulk-delete",
            channel_id=channel_id,
            json={"messages": [str(m) for m in message_ids]},
            callback=callback,
        )

    def trigger_typing(self, channel_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call("POST", "/channels/{channel_id}/typing", channel_id=channel_id, callback=callback)

    def get_pinned_messages(self, channel_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call("GET", "/channels/{channel_id}/pins", channel_id=channel_id, callback=callback)

    def add_pinned_message(self, channel_id: int, message_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call(
            "PUT", "/channels/{channel_id}/pins/{message_id}", channel_id=channel_id, message_id=message_id, callback=callback
        )

    def delete_pinned_message(self, channel_id: int, message_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call(
            "DELETE", "/channels/{channel_id}/pins/{message_id}", channel_id=channel_id, message_id=message_id, callback=callback
        )

    def edit_channel_permission(
        self,
        channel_id: int,
        overwrite_id: int,
        allow: int,
        deny: int,
        overwrite_type: int,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        if overwrite_type not in (0, 1):
            raise ValueError("overwrite_type must be 0 (role) or 1 (member)")
        return self._call(
            "PUT",
            "/channels/{channel_id}/permissions/{overwrite_id}",
            channel_id=channel_id,
            overwrite_id=overwrite_id,
            json={"allow": str(allow), "deny": str(deny), "type": overwrite_type},
            reason=reason,
            callback=callback,
        )

    def delete_channel_permission(
        self,
        channel_id: int,
        overwrite_id: int,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        return self._call(
            "DELETE",
            "/channels/{channel_id}/permissions/{overwrite_id}",
            channel_id=channel_id,
            overwrite_id=overwrite_id,
            reason=reason,
            callback=callback,
        )

    def get_invites(self, channel_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call("GET", "/channels/{channel_id}/invites", channel_id=channel_id, callback=callback)

    def create_invite(
        self,
        channel_id: int,
        options: CreateInviteOptions | None = None,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        payload = options.to_payload() if options else {}
        return self._call(
            "POST", "/channels/{channel_id}/invites", channel_id=channel_id, json=payload, reason=reason, callback=callback
        )

    # guilds

    def get_guild(self, guild_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call("GET", "/guilds/{guild_id}", guild_id=guild_id, callback=callback)

    def modify_guild(
        self,
        guild_id: int,
        options: ModifyGuildOptions,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        return self._call("PATCH", "/guilds/{guild_id}", guild_id=guild_id, json=options.to_payload(), reason=reason, callback=callback)

    def delete_guild(self, guild_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call("DELETE", "/guilds/{guild_id}", guild_id=guild_id, callback=callback)

    def get_guild_channels(self, guild_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call("GET", "/guilds/{guild_id}/channels", guild_id=guild_id, callback=callback)

    def create_guild_channel(
        self,
        guild_id: int,
        options: CreateGuildChannelOptions,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        return self._call(
            "POST", "/guilds/{guild_id}/channels", guild_id=guild_id, json=options.to_payload(), reason=reason, callback=callback
        )

    def modify_guild_channel_positions(
        self,
        guild_id: int,
        positions: Mapping[int, int],
        callback: ResultCallback | None = None,
    ) -> Completion:
        payload = [{"id": str(channel_id), "position": int(pos)} for channel_id, pos in positions.items()]
        return self._call("PATCH", "/guilds/{guild_id}/channels", guild_id=guild_id, json=payload, callback=callback)

    def get_guild_member(self, guild_id: int, user_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call("GET", "/guilds/{guild_id}/members/{user_id}", guild_id=guild_id, user_id=user_id, callback=callback)

    def get_guild_members(
        self,
        guild_id: int,
        options: GetMembersOptions | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        params = options.to_params() if options else {}
        return self._call("GET", "/guilds/{guild_id}/members", guild_id=guild_id, params=params, callback=callback)

    def modify_guild_member(
        self,
        guild_id: int,
        user_id: int,
        options: ModifyMemberOptions,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        return self._call(
            "PATCH",
            "/guilds/{guild_id}/members/{user_id}",
            guild_id=guild_id,
            user_id=user_id,
            json=options.to_payload(),
            reason=reason,
            callback=callback,
        )

    def add_guild_member_role(
        self,
        guild_id: int,
        user_id: int,
        role_id: int,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        return self._call(
            "PUT",
            "/guilds/{guild_id}/members/{user_id}/roles/{role_id}",
            guild_id=guild_id,
            user_id=user_id,
            role_id=role_id,
            reason=reason,
            callback=callback,
        )

    def remove_guild_member_role(
        self,
        guild_id: int,
        user_id: int,
        role_id: int,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        return self._call(
            "DELETE",
            "/guilds/{guild_id}/members/{user_id}/roles/{role_id}",
            guild_id=guild_id,
            user_id=user_id,
            role_id=role_id,
            reason=reason,
            callback=callback,
        )

    def get_guild_bans(self, guild_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call("GET", "/guilds/{guild_id}/bans", guild_id=guild_id, callback=callback)

    def guild_ban(
        self,
        guild_id: int,
        user_id: int,
        delete_message_days: int = 0,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        if not 0 <= delete_message_days <= 7:
            raise ValueError("delete_message_days must be within [0, 7]")
        return self._call(
            "PUT",
            "/guilds/{guild_id}/bans/{user_id}",
            guild_id=guild_id,
            user_id=user_id,
            json={"delete_message_seconds": delete_message_days * 86400},
            reason=reason,
            callback=callback,
        )

    def remove_guild_ban(
        self,
        guild_id: int,
        user_id: int,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        return self._call(
            "DELETE", "/guilds/{guild_id}/bans/{user_id}", guild_id=guild_id, user_id=user_id, reason=reason, callback=callback
        )

    def get_guild_roles(self, guild_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call("GET", "/guilds/{guild_id}/roles", guild_id=guild_id, callback=callback)

    def create_guild_role(
        self,
        guild_id: int,
        options: RoleOptions | None = None,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        payload = options.to_payload() if options else {}
        return self._call("POST", "/guilds/{guild_id}/roles", guild_id=guild_id, json=payload, reason=reason, callback=callback)

    def modify_guild_role(
        self,
        guild_id: int,
        role_id: int,
        options: RoleOptions,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        return self._call(
            "PATCH",
            "/guilds/{guild_id}/roles/{role_id}",
            guild_id=guild_id,
            role_id=role_id,
            json=options.to_payload(),
            reason=reason,
            callback=callback,
        )

    def remove_guild_role(
        self,
        guild_id: int,
        role_id: int,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        return self._call(
            "DELETE", "/guilds/{guild_id}/roles/{role_id}", guild_id=guild_id, role_id=role_id, reason=reason, callback=callback
        )

    def get_guild_audit_log(
        self,
        guild_id: int,
        options: AuditLogOptions | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        params = options.to_params() if options else {}
        return self._call("GET", "/guilds/{guild_id}/audit-logs", guild_id=guild_id, params=params, callback=callback)

    # webhooks

    def create_webhook(
        self,
        channel_id: int,
        options: WebhookOptions,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        if options.name is None:
            raise ValueError("a new webhook needs a name")
        return self._call(
            "POST", "/channels/{channel_id}/webhooks", channel_id=channel_id, json=options.to_payload(), reason=reason, callback=callback
        )

    def get_webhook(self, webhook_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call("GET", "/webhooks/{webhook_id}", webhook_id=webhook_id, callback=callback)

    def get_channel_webhooks(self, channel_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call("GET", "/channels/{channel_id}/webhooks", channel_id=channel_id, callback=callback)

    def get_guild_webhooks(self, guild_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call("GET", "/guilds/{guild_id}/webhooks", guild_id=guild_id, callback=callback)

    def modify_webhook(
        self,
        webhook_id: int,
        options: WebhookOptions,
        reason: str | None = None,
        callback: ResultCallback | None = None,
    ) -> Completion:
        return self._call(
            "PATCH", "/webhooks/{webhook_id}", webhook_id=webhook_id, json=options.to_payload(), reason=reason, callback=callback
        )

    def delete_webhook(self, webhook_id: int, reason: str | None = None, callback: ResultCallback | None = None) -> Completion:
        return self._call("DELETE", "/webhooks/{webhook_id}", webhook_id=webhook_id, reason=reason, callback=callback)

    def execute_webhook(
        self,
        webhook_id: int,
        webhook_token: str,
        content: str,
        wait: bool = False,
        callback: ResultCallback | None = None,
    ) -> Completion:
        if not content or len(content) > MAX_MESSAGE_LENGTH:
            raise ValueError(f"webhook content must be 1-{MAX_MESSAGE_LENGTH} characters")
        return self._call(
            "POST",
            "/webhooks/{webhook_id}/{webhook_token}",
            webhook_id=webhook_id,
            webhook_token=webhook_token,
            json={"content": content},
            params={"wait": "true"} if wait else None,
            callback=callback,
        )

    # invites

    def accept_invite(self, invite_code: str, callback: ResultCallback | None = None) -> Completion:
        return self._call("POST", "/invites/{invite_code}", invite_code=invite_code, callback=callback)

    def get_invite(self, invite_code: str, callback: ResultCallback | None = None) -> Completion:
        return self._call("GET", "/invites/{invite_code}", invite_code=invite_code, callback=callback)

    def delete_invite(self, invite_code: str, reason: str | None = None, callback: ResultCallback | None = None) -> Completion:
        return self._call("DELETE", "/invites/{invite_code}", invite_code=invite_code, reason=reason, callback=callback)

    # users

    def get_current_user(self, callback: ResultCallback | None = None) -> Completion:
        def remember(result: RequestResult) -> None:
            if result.ok and isinstance(result.data, dict):
                self._user = result.data
            if callback is not None:
                callback(result)

        return self._call("GET", "/users/@me", callback=remember)

    def create_dm(self, recipient_id: int, callback: ResultCallback | None = None) -> Completion:
        return self._call("POST", "/users/@me/channels", json={"recipient_id": str(recipient_id)}, callback=callback)

    def get_dms(self, callback: ResultCallback | None = None) -> Completion:
        return self._call("GET", "/users/@me/channels", callback=callback)

    def get_guilds(self, callback: ResultCallback | None = None) -> Completion:
        return self._call("GET", "/users/@me/guilds", callback=callback)
