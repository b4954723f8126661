from pathlib import Path

import pytest

from kotatsu_core.config import BotConfig, ConfigError, load_config
from kotatsu_core.discord_permissions import MODE_DEFAULT, MODE_PERMISSIONS, MODE_ROLES


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_missing_file_uses_defaults(tmp_path):
    config = load_config(tmp_path / "absent.yaml", environ={})
    assert config == BotConfig()
    assert config.search_enabled is True
    assert config.access_policy().mode == MODE_DEFAULT


def test_yaml_file_values(tmp_path):
    path = _write(
        tmp_path,
        """
discord_token: file-token
forum_parent_ids: [111, "222"]
allowed_permissions: [MANAGE_MESSAGES]
search_enabled: false
search_channels: ["333"]
write_timeout_seconds: 4
""",
    )
    config = load_config(path, environ={})
    assert config.discord_token == "file-token"
    assert config.forum_parent_ids == frozenset({111, 222})
    assert config.allowed_permissions == ("MANAGE_MESSAGES",)
    assert config.search_enabled is False
    assert config.search_channel_ids == frozenset({333})
    assert config.write_timeout_seconds == 4.0
    assert config.access_policy().mode == MODE_PERMISSIONS
    assert config.scope().forum_parent_ids == frozenset({111, 222})


def test_env_overrides_file(tmp_path):
    path = _write(tmp_path, "discord_token: file-token\nforum_parent_ids: [111]\nsearch_enabled: true\n")
    env = {
        "DISCORD_TOKEN": "env-token",
        "FORUM_PARENT_IDS": " 5, 6 ,,",
        "ALLOWED_ROLE_IDS": "77",
        "ALLOWED_PERMISSIONS": "ADMINISTRATOR",
        "SEARCH_ENABLED": "no",
        "SEARCH_CHANNELS": "8",
        "KOTATSU_WRITE_TIMEOUT": "2.5",
    }
    config = load_config(path, environ=env)
    assert config.discord_token == "env-token"
    assert config.forum_parent_ids == frozenset({5, 6})
    assert config.allowed_role_ids == frozenset({77})
    assert config.search_enabled is False
    assert config.search_channel_ids == frozenset({8})
    assert config.write_timeout_seconds == 2.5
    # roles beat permission names when both are configured
    assert config.access_policy().mode == MODE_ROLES


def test_empty_env_values_do_not_override(tmp_path):
    path = _write(tmp_path, "discord_token: file-token\n")
    config = load_config(path, environ={"DISCORD_TOKEN": "", "SEARCH_ENABLED": "  "})
    assert config.discord_token == "file-token"
    assert config.search_enabled is True


def test_bad_values_fall_back(tmp_path):
    path = _write(tmp_path, "forum_parent_ids: [abc, 12]\nlookup_timeout_seconds: soon\n")
    config = load_config(path, environ={"KOTATSU_WRITE_TIMEOUT": "later"})
    assert config.forum_parent_ids == frozenset({12})
    assert config.lookup_timeout_seconds == 8.0
    assert config.write_timeout_seconds == 10.0


def test_invalid_yaml_raises(tmp_path):
    with pytest.raises(ConfigError):
        load_config(_write(tmp_path, "forum_parent_ids: [1, 2\n"), environ={})
    with pytest.raises(ConfigError):
        load_config(_write(tmp_path, "- just\n- a list\n"), environ={})


def test_reads_process_environment_by_default(tmp_path, monkeypatch):
    monkeypatch.setenv("DISCORD_TOKEN", "from-os")
    monkeypatch.setenv("KOTATSU_LOG_PATH", str(tmp_path / "logs" / "audit.log"))
    config = load_config(tmp_path / "absent.yaml")
    assert config.discord_token == "from-os"
    assert config.log_path == tmp_path / "logs" / "audit.log"
