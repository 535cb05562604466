"""
tests/test_config.py — YAML configuration loader
=================================================
"""

from __future__ import annotations

import pytest

from gallerysync.config import GallerySyncConfig, config_from_mapping, load_config

BASE = {
    "guild_id": "111",
    "channel_id": 222,
    "approved_role_ids": [333, "444"],
}


class TestConfigFromMapping:
    def test_minimal_mapping_uses_defaults(self):
        cfg = config_from_mapping(BASE, env={"DISCORD_BOT_TOKEN": "abc"})
        assert cfg.channel_id == "222"
        assert cfg.approved_role_ids == frozenset({"333", "444"})
        assert cfg.approval_emoji == "\U0001f451"
        assert cfg.poll_ttl == 30.0
        assert cfg.full_sync_ttl == 300.0
        assert cfg.audit_ttl == 21600.0
        assert cfg.storage_backend == "local"
        assert cfg.cache_key == "gallery.json"

    def test_nested_sections_override_defaults(self):
        raw = {
            **BASE,
            "ttl": {"poll": 5, "full_sync": 60, "audit": 120, "role_cache": 10},
            "timeouts": {"discord": 3, "download": 4, "storage": 2},
            "download_retry": {"max_attempts": 5},
            "storage": {"backend": "database", "public_base_url": "https://x.test/blobs/"},
            "labels": {"untitled": "Sans titre", "alt": "Photo de {author}"},
            "batch_size": 2,
        }
        cfg = config_from_mapping(raw)
        assert (cfg.poll_ttl, cfg.full_sync_ttl, cfg.audit_ttl) == (5.0, 60.0, 120.0)
        assert cfg.role_cache_ttl == 10.0
        assert cfg.discord_timeout == 3.0
        assert cfg.download_max_attempts == 5
        assert cfg.storage_backend == "database"
        assert cfg.public_base_url == "https://x.test/blobs"
        assert cfg.untitled_label == "Sans titre"
        assert cfg.batch_size == 2

    def test_env_guild_id_wins(self):
        cfg = config_from_mapping(BASE, env={"DISCORD_GUILD_ID": "999"})
        assert cfg.guild_id == "999"

    def test_message_limit_is_capped_at_discord_maximum(self):
        cfg = config_from_mapping({**BASE, "message_limit": 500})
        assert cfg.message_limit == 100

    def test_missing_channel_raises(self):
        with pytest.raises(KeyError):
            config_from_mapping({"approved_role_ids": ["1"]})

    def test_blank_channel_is_reported_missing(self):
        cfg = config_from_mapping(
            {"channel_id": None, "approved_role_ids": ["1"]},
            env={"DISCORD_BOT_TOKEN": "abc", "DISCORD_GUILD_ID": "111"},
        )
        assert cfg.channel_id == ""
        assert cfg.missing_settings() == ["channel_id"]

    def test_token_not_in_repr(self):
        cfg = config_from_mapping(BASE, env={"DISCORD_BOT_TOKEN": "super-secret"})
        assert "super-secret" not in repr(cfg)


class TestMissingSettings:
    def test_complete_config_reports_nothing(self):
        cfg = config_from_mapping(BASE, env={"DISCORD_BOT_TOKEN": "abc"})
        assert cfg.missing_settings() == []

    def test_reports_every_missing_name(self):
        cfg = GallerySyncConfig(approval_emoji="")
        assert cfg.missing_settings() == [
            "DISCORD_BOT_TOKEN", "guild_id", "channel_id", "approved_role_ids", "approval_emoji",
        ]


class TestLoadConfig:
    def test_missing_file_has_hint(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "nope.yaml")

    def test_reads_yaml_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DISCORD_BOT_TOKEN", "from-env")
        monkeypatch.delenv("DISCORD_GUILD_ID", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text(
            "guild_id: '1'\nchannel_id: '2'\napproved_role_ids: ['3']\n"
            "ttl:\n  poll: 12\n",
            encoding="utf-8",
        )
        cfg = load_config(path)
        assert cfg.guild_id == "1"
        assert cfg.poll_ttl == 12.0
        assert cfg.bot_token == "from-env"
