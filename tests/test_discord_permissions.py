import asyncio

import discord
import pytest

from kotatsu_core.discord_permissions import (
    MODE_DEFAULT,
    MODE_PERMISSIONS,
    MODE_ROLES,
    AccessPolicy,
    check_access,
    is_authorized,
    resolve_permission_flag,
)
from kotatsu_core.errors import LookupFailure
from kotatsu_core.scope import ThreadContainer


def _perms(**flags) -> int:
    return discord.Permissions(**flags).value


THREAD = ThreadContainer(id=20, parent_id=10, name="t", type=11, guild_id=1)


class PermissionGateway:
    def __init__(self, permissions: int = 0, roles=(), fail_permissions=False, fail_roles=False):
        self.permissions = permissions
        self.roles = list(roles)
        self.fail_permissions = fail_permissions
        self.fail_roles = fail_roles
        self.role_fetches = 0

    async def fetch_permissions(self, user_id, container):
        if self.fail_permissions:
            raise LookupFailure("permissions unavailable")
        return self.permissions

    async def fetch_member_roles(self, guild_id, user_id):
        self.role_fetches += 1
        if self.fail_roles:
            raise LookupFailure("member unavailable")
        return self.roles


def test_resolve_permission_flag_spellings():
    assert resolve_permission_flag("MANAGE_CHANNELS") == "manage_channels"
    assert resolve_permission_flag("manage messages") == "manage_messages"
    assert resolve_permission_flag("Manage-Roles") == "manage_roles"
    assert resolve_permission_flag("manage message") == "manage_messages"
    assert resolve_permission_flag("admin") == "administrator"
    assert resolve_permission_flag("fly to the moon") is None


def test_role_mode_takes_precedence():
    policy = AccessPolicy.from_settings(role_ids=[55], permission_names=["ADMINISTRATOR"])
    assert policy.mode == MODE_ROLES
    assert is_authorized(policy, _perms(administrator=True), role_ids=[1, 2]) is False
    assert is_authorized(policy, 0, role_ids=[2, 55]) is True


def test_permission_mode_uses_named_flags_only():
    policy = AccessPolicy.from_settings(permission_names=["MANAGE_THREADS", "bogus"])
    assert policy.mode == MODE_PERMISSIONS
    assert policy.permission_flags == ("manage_threads",)
    assert is_authorized(policy, _perms(manage_threads=True)) is True
    assert is_authorized(policy, _perms(manage_messages=True)) is False


def test_unrecognised_permission_names_fall_back_to_default():
    policy = AccessPolicy.from_settings(permission_names=["bogus"])
    assert policy.mode == MODE_DEFAULT


@pytest.mark.parametrize(
    "flag",
    ["manage_channels", "manage_roles", "manage_messages", "administrator"],
)
def test_default_mode_accepts_moderator_flags(flag):
    policy = AccessPolicy()
    assert is_authorized(policy, _perms(**{flag: True})) is True


def test_default_mode_rejects_regular_member():
    policy = AccessPolicy()
    assert is_authorized(policy, _perms(send_messages=True, read_message_history=True)) is False


def test_check_access_skips_role_fetch_outside_role_mode():
    gateway = PermissionGateway(permissions=_perms(manage_messages=True))
    assert asyncio.run(check_access(gateway, 7, THREAD, AccessPolicy())) is True
    assert gateway.role_fetches == 0


def test_check_access_role_mode_fetches_roles():
    gateway = PermissionGateway(roles=[55])
    policy = AccessPolicy.from_settings(role_ids=[55])
    assert asyncio.run(check_access(gateway, 7, THREAD, policy)) is True
    assert gateway.role_fetches == 1


def test_lookup_failures_are_not_denials():
    with pytest.raises(LookupFailure):
        asyncio.run(check_access(PermissionGateway(fail_permissions=True), 7, THREAD, AccessPolicy()))
    policy = AccessPolicy.from_settings(role_ids=[55])
    with pytest.raises(LookupFailure):
        asyncio.run(check_access(PermissionGateway(fail_roles=True), 7, THREAD, policy))


def test_role_mode_still_surfaces_permission_lookup_failure():
    gateway = PermissionGateway(roles=[55], fail_permissions=True)
    policy = AccessPolicy.from_settings(role_ids=[55])
    with pytest.raises(LookupFailure):
        asyncio.run(check_access(gateway, 7, THREAD, policy))
    assert gateway.role_fetches == 0
