import pytest

from discord_rest.options import (
    AuditLogOptions,
    ChannelType,
    CreateGuildChannelOptions,
    CreateInviteOptions,
    GetMembersOptions,
    GetMessagesOptions,
    ModifyChannelOptions,
    ModifyGuildOptions,
    RoleOptions,
    WebhookOptions,
)


def test_unset_fields_are_left_out():
    assert CreateInviteOptions().to_payload() == {}
    assert CreateInviteOptions(max_uses=0, temporary=False).to_payload() == {"max_uses": 0, "temporary": False}


def test_range_checks():
    with pytest.raises(ValueError):
        CreateInviteOptions(max_age=604801)
    with pytest.raises(ValueError):
        CreateInviteOptions(max_uses=101)
    with pytest.raises(ValueError):
        GetMessagesOptions(limit=0)
    with pytest.raises(ValueError):
        GetMembersOptions(limit=1001)
    with pytest.raises(ValueError):
        AuditLogOptions(limit=101)
    with pytest.raises(ValueError):
        RoleOptions(color=0x1000000)


def test_message_anchors_are_exclusive():
    with pytest.raises(ValueError):
        GetMessagesOptions(before=1, after=2)
    assert GetMessagesOptions(around=5).to_params() == {"around": "5"}


def test_modify_options_need_a_change():
    with pytest.raises(ValueError):
        ModifyChannelOptions()
    with pytest.raises(ValueError):
        ModifyGuildOptions()
    with pytest.raises(ValueError):
        ModifyGuildOptions(afk_timeout=120)
    assert ModifyGuildOptions(afk_timeout=300).to_payload() == {"afk_timeout": 300}


def test_channel_payloads():
    overwrites = ({"id": "1", "type": 0, "allow": "1024", "deny": "0"},)
    payload = ModifyChannelOptions(topic="patch notes", permission_overwrites=overwrites).to_payload()
    assert payload == {"topic": "patch notes", "permission_overwrites": [overwrites[0]]}

    voice = CreateGuildChannelOptions(name="lobby", type=ChannelType.GUILD_VOICE, bitrate=64000, user_limit=10)
    assert voice.to_payload() == {"name": "lobby", "type": 2, "bitrate": 64000, "user_limit": 10}
    with pytest.raises(ValueError):
        CreateGuildChannelOptions(name="general", bitrate=64000)
    with pytest.raises(ValueError):
        CreateGuildChannelOptions(name="")


def test_role_permissions_are_sent_as_string():
    assert RoleOptions(name="mods", permissions=8, hoist=True).to_payload() == {
        "name": "mods",
        "permissions": "8",
        "hoist": True,
    }
    with pytest.raises(ValueError):
        RoleOptions(permissions=-1)


def test_webhook_names():
    assert WebhookOptions(name="deploys").to_payload() == {"name": "deploys"}
    with pytest.raises(ValueError):
        WebhookOptions(name="Clyde")
    with pytest.raises(ValueError):
        WebhookOptions(name="x" * 81)
