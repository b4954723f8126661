import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Optional, Sequence, Tuple

import discord

from .errors import LookupFailure

if TYPE_CHECKING:
    from .gateway import ForumGateway
    from .scope import ThreadContainer


_logger = logging.getLogger("kotatsu.permissions")

_TOKEN_RE = re.compile(r"[a-z0-9]+", re.IGNORECASE)

MODE_ROLES = "roles"
MODE_PERMISSIONS = "permissions"
MODE_DEFAULT = "default"

DEFAULT_MODERATOR_FLAGS: Tuple[str, ...] = (
    "manage_channels",
    "manage_roles",
    "manage_messages",
    "administrator",
)

# Names people actually type that don't match a discord.py flag word for word.
_EXTRA_ALIASES: dict[str, Tuple[str, ...]] = {
    "manage_guild": ("manage server",),
    "view_channel": ("see channel", "read messages"),
    "moderate_members": ("timeout members", "timeout member"),
    "manage_threads": ("manage posts", "manage forum posts"),
    "administrator": ("admin",),
}


def _tokenize(text: str) -> Tuple[str, ...]:
    return tuple(token.lower() for token in _TOKEN_RE.findall(text or ""))


def valid_permission_flags() -> frozenset[str]:
    """Return all permission flags supported by the installed discord.py."""
    return frozenset(str(flag) for flag in discord.Permissions.VALID_FLAGS)


def _build_alias_index(flags: Iterable[str]) -> dict[Tuple[str, ...], str]:
    index: dict[Tuple[str, ...], str] = {}
    for flag in flags:
        tokens = tuple(flag.split("_"))
        index[tokens] = flag
        # "manage message" / "ban member" style singulars
        singular = tuple(t.removesuffix("s") if len(t) > 3 else t for t in tokens)
        index.setdefault(singular, flag)
    for flag, aliases in _EXTRA_ALIASES.items():
        if flag not in flags:
            continue
        for alias in aliases:
            index.setdefault(_tokenize(alias), flag)
    return index


_VALID_FLAGS = valid_permission_flags()
_ALIASES = _build_alias_index(_VALID_FLAGS)


def resolve_permission_flag(name: str) -> Optional[str]:
    """
    Resolve a configured permission name to a discord.py flag.

    Accepts the Discord API spelling ("MANAGE_CHANNELS"), snake_case and human
    phrasing ("manage channels", "Manage-Messages").
    """
    if not name:
        return None
    normalized = re.sub(r"[\s-]+", "_", name.strip().lower())
    normalized = re.sub(r"_+", "_", normalized).strip("_")
    if normalized in _VALID_FLAGS:
        return normalized
    tokens = _tokenize(name)
    if not tokens:
        return None
    return _ALIASES.get(tokens)


def permission_mask(flags: Iterable[str]) -> int:
    return discord.Permissions(**{flag: True for flag in flags}).value


@dataclass(frozen=True)
class AccessPolicy:
    """
    Who may run status commands. Exactly one mode is active: explicit role ids
    win over explicit permission names, which win over the moderator default.
    """

    mode: str = MODE_DEFAULT
    role_ids: frozenset[int] = frozenset()
    permission_flags: Tuple[str, ...] = DEFAULT_MODERATOR_FLAGS

    @classmethod
    def from_settings(cls, role_ids: Iterable[int] = (), permission_names: Iterable[str] = ()) -> "AccessPolicy":
        roles = frozenset(int(r) for r in role_ids)
        if roles:
            return cls(mode=MODE_ROLES, role_ids=roles, permission_flags=())
        names = list(permission_names)
        flags: list[str] = []
        for name in names:
            flag = resolve_permission_flag(name)
            if flag is None:
                _logger.warning("Ignoring unknown permission name in config: %r", name)
                continue
            if flag not in flags:
                flags.append(flag)
        if flags:
            return cls(mode=MODE_PERMISSIONS, permission_flags=tuple(flags))
        if names:
            _logger.warning("No configured permission names were recognised; using the moderator default")
        return cls()

    @property
    def required_mask(self) -> int:
        return permission_mask(self.permission_flags)


def is_authorized(policy: AccessPolicy, permissions_value: int, role_ids: Sequence[int] = ()) -> bool:
    if policy.mode == MODE_ROLES:
        return any(int(role_id) in policy.role_ids for role_id in role_ids)
    return (int(permissions_value) & policy.required_mask) != 0


async def check_access(
    gateway: "ForumGateway",
    user_id: int,
    container: "ThreadContainer",
    policy: AccessPolicy,
) -> bool:
    """
    Fetch what the policy needs and evaluate it. A failed fetch raises
    LookupFailure; it is never reported as a plain denial.
    """
    permissions_value = await gateway.fetch_permissions(user_id, container)
    role_ids: Sequence[int] = ()
    if policy.mode == MODE_ROLES:
        if container.guild_id is None:
            raise LookupFailure(f"Channel {container.id} has no guild; cannot resolve roles")
        role_ids = await gateway.fetch_member_roles(container.guild_id, user_id)
    return is_authorized(policy, permissions_value, role_ids)
