"""Typed option sets for endpoint methods.

Each class lists the options one endpoint family recognizes and checks them
when constructed, so invalid input fails locally instead of at the service.
Unset fields (``None``) are left out of the request.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import IntEnum
from typing import Any


class ChannelType(IntEnum):
    GUILD_TEXT = 0
    DM = 1
    GUILD_VOICE = 2
    GROUP_DM = 3
    GUILD_CATEGORY = 4
    GUILD_ANNOUNCEMENT = 5


def _compact(values: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in values.items() if v is not None}


def _check_range(name: str, value: int | None, low: int, high: int) -> None:
    if value is not None and not low <= value <= high:
        raise ValueError(f"{name} must be within [{low}, {high}], got {value}")


def _check_length(name: str, value: str | None, low: int, high: int) -> None:
    if value is not None and not low <= len(value) <= high:
        raise ValueError(f"{name} must be {low}-{high} characters long")


class _Payload:
    __slots__ = ()

    def to_payload(self) -> dict[str, Any]:
        return _compact(asdict(self))  # type: ignore[call-overload]


@dataclass(frozen=True, slots=True)
class CreateInviteOptions(_Payload):
    max_age: int | None = None  # seconds, 0 = never expires
    max_uses: int | None = None  # 0 = unlimited
    temporary: bool | None = None  # grant temporary membership
    unique: bool | None = None  # never reuse a similar invite

    def __post_init__(self) -> None:
        _check_range("max_age", self.max_age, 0, 604800)
        _check_range("max_uses", self.max_uses, 0, 100)


@dataclass(frozen=True, slots=True)
class GetMessagesOptions:
    limit: int | None = None
    around: int | None = None
    before: int | None = None
    after: int | None = None

    def __post_init__(self) -> None:
        _check_range("limit", self.limit, 1, 100)
        anchors = [a for a in (self.around, self.before, self.after) if a is not None]
        if len(anchors) > 1:
            raise ValueError("only one of around, before, after may be set")

    def to_params(self) -> dict[str, str]:
        return {k: str(v) for k, v in _compact(asdict(self)).items()}


@dataclass(frozen=True, slots=True)
class ModifyChannelOptions(_Payload):
    name: str | None = None
    position: int | None = None
    topic: str | None = None
    nsfw: bool | None = None
    rate_limit_per_user: int | None = None  # slowmode seconds
    bitrate: int | None = None  # voice only
    user_limit: int | None = None  # voice only
    parent_id: int | None = None
    permission_overwrites: tuple[dict[str, Any], ...] | None = None

    def __post_init__(self) -> None:
        if all(v is None for v in asdict(self).values()):
            raise ValueError("at least one channel option must be set")
        _check_length("name", self.name, 1, 100)
        _check_length("topic", self.topic, 0, 1024)
        _check_range("rate_limit_per_user", self.rate_limit_per_user, 0, 21600)
        _check_range("bitrate", self.bitrate, 8000, 384000)
        _check_range("user_limit", self.user_limit, 0, 99)

    def to_payload(self) -> dict[str, Any]:
        payload = _compact(asdict(self))
        if "permission_overwrites" in payload:
            payload["permission_overwrites"] = list(payload["permission_overwrites"])
        return payload


@dataclass(frozen=True, slots=True)
class CreateGuildChannelOptions(_Payload):
    name: str
    type: ChannelType = ChannelType.GUILD_TEXT
    topic: str | None = None
    bitrate: int | None = None
    user_limit: int | None = None
    position: int | None = None
    parent_id: int | None = None
    nsfw: bool | None = None

    def __post_init__(self) -> None:
        _check_length("name", self.name, 1, 100)
        _check_length("topic", self.topic, 0, 1024)
        if self.type != ChannelType.GUILD_VOICE and (self.bitrate is not None or self.user_limit is not None):
            raise ValueError("bitrate and user_limit only apply to voice channels")
        _check_range("bitrate", self.bitrate, 8000, 384000)
        _check_range("user_limit", self.user_limit, 0, 99)

    def to_payload(self) -> dict[str, Any]:
        payload = _compact(asdict(self))
        payload["type"] = int(self.type)
        return payload


@dataclass(frozen=True, slots=True)
class RoleOptions(_Payload):
    name: str | None = None
    permissions: int | None = None  # bit set
    color: int | None = None  # 0xRRGGBB
    hoist: bool | None = None  # shown separately in the member list
    mentionable: bool | None = None

    def __post_init__(self) -> None:
        _check_length("name", self.name, 1, 100)
        _check_range("color", self.color, 0, 0xFFFFFF)
        if self.permissions is not None and self.permissions < 0:
            raise ValueError("permissions must be a non-negative bit set")

    def to_payload(self) -> dict[str, Any]:
        payload = _compact(asdict(self))
        if "permissions" in payload:
            payload["permissions"] = str(payload["permissions"])
        return payload


@dataclass(frozen=True, slots=True)
class AuditLogOptions:
    user_id: int | None = None
    action_type: int | None = None
    before: int | None = None
    limit: int | None = None

    def __post_init__(self) -> None:
        _check_range("limit", self.limit, 1, 100)

    def to_params(self) -> dict[str, str]:
        return {k: str(v) for k, v in _compact(asdict(self)).items()}


@dataclass(frozen=True, slots=True)
class GetMembersOptions:
    limit: int | None = None
    after: int | None = None  # highest user id of the previous page

    def __post_init__(self) -> None:
        _check_range("limit", self.limit, 1, 1000)

    def to_params(self) -> dict[str, str]:
        return {k: str(v) for k, v in _compact(asdict(self)).items()}


@dataclass(frozen=True, slots=True)
class ModifyGuildOptions(_Payload):
    name: str | None = None
    verification_level: int | None = None
    default_message_notifications: int | None = None
    afk_channel_id: int | None = None
    afk_timeout: int | None = None  # seconds
    icon: str | None = None  # data URI
    owner_id: int | None = None
    splash: str | None = None  # data URI
    system_channel_id: int | None = None

    def __post_init__(self) -> None:
        if all(v is None for v in asdict(self).values()):
            raise ValueError("at least one guild option must be set")
        _check_length("name", self.name, 2, 100)
        _check_range("verification_level", self.verification_level, 0, 4)
        _check_range("default_message_notifications", self.default_message_notifications, 0, 1)
        if self.afk_timeout is not None and self.afk_timeout not in (60, 300, 900, 1800, 3600):
            raise ValueError("afk_timeout must be one of 60, 300, 900, 1800, 3600")


@dataclass(frozen=True, slots=True)
class ModifyMemberOptions(_Payload):
    nick: str | None = None
    roles: tuple[int, ...] | None = None
    mute: bool | None = None
    deaf: bool | None = None
    channel_id: int | None = None  # move between voice channels

    def __post_init__(self) -> None:
        if all(v is None for v in asdict(self).values()):
            raise ValueError("at least one member option must be set")
        _check_length("nick", self.nick, 0, 32)

    def to_payload(self) -> dict[str, Any]:
        payload = _compact(asdict(self))
        if "roles" in payload:
            payload["roles"] = [str(r) for r in payload["roles"]]
        return payload


@dataclass(frozen=True, slots=True)
class WebhookOptions(_Payload):
    name: str | None = None
    avatar: str | None = None  # data URI
    channel_id: int | None = None  # modify only: move the webhook

    def __post_init__(self) -> None:
        _check_length("name", self.name, 1, 80)
        if self.name is not None and self.name.lower() == "clyde":
            raise ValueError("webhook name cannot be 'clyde'")
