import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, TypeVar

import yaml

from .discord_permissions import AccessPolicy
from .scope import ScopeConfig

T = TypeVar("T")

_logger = logging.getLogger("kotatsu.config")

DEFAULT_CONFIG_PATH = Path("config.yaml")


class ConfigError(Exception):
    pass


def _parse_bool(val: Any, default: bool) -> bool:
    if val is None:
        return default
    if isinstance(val, bool):
        return val
    normalized = str(val).strip().lower()
    if not normalized:
        return default
    return normalized in {"1", "true", "yes", "on"}


def _parse(val: Any, caster: Callable[[Any], T], default: T) -> T:
    if val is None or val == "":
        return default
    try:
        return caster(val)
    except (TypeError, ValueError):
        _logger.warning("Could not parse config value %r; using default %r", val, default)
        return default


def _split_list(val: Any) -> tuple[str, ...]:
    if val is None:
        return ()
    if isinstance(val, str):
        items: Iterable[Any] = val.split(",")
    elif isinstance(val, (list, tuple, set)):
        items = val
    else:
        items = [val]
    return tuple(str(item).strip() for item in items if str(item).strip())


def _parse_ids(val: Any, field_name: str) -> frozenset[int]:
    ids: set[int] = set()
    for item in _split_list(val):
        if not item.isdigit():
            _logger.warning("Ignoring non-numeric id %r in %s", item, field_name)
            continue
        ids.add(int(item))
    return frozenset(ids)


@dataclass(frozen=True)
class BotConfig:
    discord_token: str = ""
    forum_parent_ids: frozenset[int] = frozenset()
    allowed_role_ids: frozenset[int] = frozenset()
    allowed_permissions: tuple[str, ...] = ()
    search_enabled: bool = True
    search_channel_ids: frozenset[int] = frozenset()
    write_timeout_seconds: float = 10.0
    lookup_timeout_seconds: float = 8.0
    # Longer Discord rate limits raise instead of being slept through.
    max_ratelimit_timeout: float = 30.0
    log_level: str = "INFO"
    log_path: Optional[Path] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "BotConfig":
        default = cls()
        log_path = data.get("log_path")
        return cls(
            discord_token=str(data.get("discord_token") or ""),
            forum_parent_ids=_parse_ids(data.get("forum_parent_ids"), "forum_parent_ids"),
            allowed_role_ids=_parse_ids(data.get("allowed_role_ids"), "allowed_role_ids"),
            allowed_permissions=_split_list(data.get("allowed_permissions")),
            search_enabled=_parse_bool(data.get("search_enabled"), default.search_enabled),
            search_channel_ids=_parse_ids(data.get("search_channels"), "search_channels"),
            write_timeout_seconds=_parse(data.get("write_timeout_seconds"), float, default.write_timeout_seconds),
            lookup_timeout_seconds=_parse(data.get("lookup_timeout_seconds"), float, default.lookup_timeout_seconds),
            max_ratelimit_timeout=_parse(data.get("max_ratelimit_timeout"), float, default.max_ratelimit_timeout),
            log_level=str(data.get("log_level") or default.log_level).upper(),
            log_path=Path(log_path) if log_path else None,
        )

    def with_env(self, environ: Optional[Mapping[str, str]] = None) -> "BotConfig":
        """
        Apply environment overrides. Only variables that are set and non-empty
        replace the file value.
        """
        env = os.environ if environ is None else environ
        changes: dict[str, Any] = {}
        if env.get("DISCORD_TOKEN"):
            changes["discord_token"] = env["DISCORD_TOKEN"].strip()
        if env.get("FORUM_PARENT_IDS"):
            changes["forum_parent_ids"] = _parse_ids(env["FORUM_PARENT_IDS"], "FORUM_PARENT_IDS")
        if env.get("ALLOWED_ROLE_IDS"):
            changes["allowed_role_ids"] = _parse_ids(env["ALLOWED_ROLE_IDS"], "ALLOWED_ROLE_IDS")
        if env.get("ALLOWED_PERMISSIONS"):
            changes["allowed_permissions"] = _split_list(env["ALLOWED_PERMISSIONS"])
        if env.get("SEARCH_ENABLED", "").strip():
            changes["search_enabled"] = _parse_bool(env["SEARCH_ENABLED"], self.search_enabled)
        if env.get("SEARCH_CHANNELS"):
            changes["search_channel_ids"] = _parse_ids(env["SEARCH_CHANNELS"], "SEARCH_CHANNELS")
        if env.get("KOTATSU_WRITE_TIMEOUT"):
            changes["write_timeout_seconds"] = _parse(env["KOTATSU_WRITE_TIMEOUT"], float, self.write_timeout_seconds)
        if env.get("KOTATSU_LOOKUP_TIMEOUT"):
            changes["lookup_timeout_seconds"] = _parse(env["KOTATSU_LOOKUP_TIMEOUT"], float, self.lookup_timeout_seconds)
        if env.get("KOTATSU_MAX_RATELIMIT_TIMEOUT"):
            changes["max_ratelimit_timeout"] = _parse(
                env["KOTATSU_MAX_RATELIMIT_TIMEOUT"], float, self.max_ratelimit_timeout
            )
        if env.get("KOTATSU_LOG_LEVEL"):
            changes["log_level"] = env["KOTATSU_LOG_LEVEL"].strip().upper()
        if env.get("KOTATSU_LOG_PATH"):
            changes["log_path"] = Path(env["KOTATSU_LOG_PATH"].strip())
        return replace(self, **changes) if changes else self

    def access_policy(self) -> AccessPolicy:
        return AccessPolicy.from_settings(self.allowed_role_ids, self.allowed_permissions)

    def scope(self) -> ScopeConfig:
        return ScopeConfig(
            forum_parent_ids=self.forum_parent_ids,
            search_channel_ids=self.search_channel_ids,
        )


def load_config(path: Path | str = DEFAULT_CONFIG_PATH, environ: Optional[Mapping[str, str]] = None) -> BotConfig:
    """
    Read the YAML config file if it exists, then let environment variables
    override individual fields.
    """
    path = Path(path)
    data: Mapping[str, Any] = {}
    if path.exists():
        try:
            loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ConfigError(f"{path} must contain a mapping at the top level")
        data = loaded
    return BotConfig.from_mapping(data).with_env(environ)
