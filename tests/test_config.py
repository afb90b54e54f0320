"""Tests for census.config — YAML configuration loading."""

import textwrap

import pytest

from census.config import CensusConfig, ConfigError, load_config
from census.forkid import KNOWN_CHAINS


class TestCensusConfigDefaults:
    """CensusConfig should provide sensible defaults for every field."""

    def test_db_path_default(self) -> None:
        cfg = CensusConfig()
        assert cfg.db_path.endswith(".census/census.db")

    def test_maxmind_default_is_none(self) -> None:
        assert CensusConfig().maxmind_city_db is None

    def test_log_level_default(self) -> None:
        assert CensusConfig().log_level == "INFO"

    def test_registry_defaults_to_known_chains(self) -> None:
        assert CensusConfig().registry == KNOWN_CHAINS


class TestLoadConfigExplicitPath:
    """load_config(path=...) with an explicit file path."""

    def test_full_config(self, tmp_path: pytest.TempPathFactory) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(
            textwrap.dedent("""\
                db_path: /data/census.db
                maxmind_city_db: /data/GeoLite2-City.mmdb
                log_level: debug
                chains:
                  - name: holesky
                    genesis_hash: "0xb5f7f912443c940f21fd611f12828d75b534364ed9e95ca4e307729a4661bde4"
                    time_forks: [1696000704, 1707305664]
            """),
            encoding="utf-8",
        )

        cfg = load_config(cfg_file)

        assert cfg.db_path == "/data/census.db"
        assert cfg.maxmind_city_db == "/data/GeoLite2-City.mmdb"
        assert cfg.log_level == "DEBUG"
        assert len(cfg.chains) == 1
        assert cfg.chains[0].name == "holesky"
        assert cfg.chains[0].time_forks == (1696000704, 1707305664)

    def test_extra_chains_come_after_known_chains(
        self, tmp_path: pytest.TempPathFactory
    ) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(
            textwrap.dedent("""\
                chains:
                  - name: devnet
                    genesis_hash: "0x0101010101010101010101010101010101010101010101010101010101010101"
            """),
            encoding="utf-8",
        )

        cfg = load_config(cfg_file)

        assert [c.name for c in cfg.registry][: len(KNOWN_CHAINS)] == [
            c.name for c in KNOWN_CHAINS
        ]
        assert cfg.registry[-1].name == "devnet"

    def test_partial_config_uses_defaults(
        self, tmp_path: pytest.TempPathFactory
    ) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("db_path: /tmp/test.db\n", encoding="utf-8")

        cfg = load_config(cfg_file)

        assert cfg.db_path == "/tmp/test.db"
        assert cfg.maxmind_city_db is None
        assert cfg.log_level == "INFO"
        assert cfg.chains == []

    def test_empty_file_returns_defaults(
        self, tmp_path: pytest.TempPathFactory
    ) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("", encoding="utf-8")

        cfg = load_config(cfg_file)

        assert cfg == CensusConfig()

    def test_unknown_keys_are_ignored(self, tmp_path: pytest.TempPathFactory) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(
            textwrap.dedent("""\
                db_path: /data/census.db
                some_future_key: true
            """),
            encoding="utf-8",
        )

        cfg = load_config(cfg_file)

        assert cfg.db_path == "/data/census.db"
        assert cfg.maxmind_city_db is None

    def test_accepts_string_path(self, tmp_path: pytest.TempPathFactory) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("db_path: /data/census.db\n", encoding="utf-8")

        cfg = load_config(str(cfg_file))

        assert cfg.db_path == "/data/census.db"


class TestLoadConfigMissingFile:
    """Behavior when the config file doesn't exist."""

    def test_explicit_path_not_found_raises(
        self, tmp_path: pytest.TempPathFactory
    ) -> None:
        missing = tmp_path / "nonexistent.yaml"

        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config(missing)

    def test_no_default_file_returns_defaults(
        self, tmp_path: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        import census.config as config_mod

        monkeypatch.setattr(
            config_mod, "DEFAULT_CONFIG_PATH", tmp_path / "nope" / "config.yaml"
        )

        cfg = load_config()

        assert cfg == CensusConfig()


class TestLoadConfigInvalid:
    """load_config should raise ConfigError on malformed content."""

    def test_invalid_yaml_raises_config_error(
        self, tmp_path: pytest.TempPathFactory
    ) -> None:
        cfg_file = tmp_path / "bad.yaml"
        cfg_file.write_text(":\n  - :\n    bad: [", encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(cfg_file)

    def test_non_mapping_top_level_raises(
        self, tmp_path: pytest.TempPathFactory
    ) -> None:
        cfg_file = tmp_path / "list.yaml"
        cfg_file.write_text("- one\n- two\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="Expected a YAML mapping"):
            load_config(cfg_file)

    def test_invalid_log_level(self, tmp_path: pytest.TempPathFactory) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("log_level: chatty\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="Invalid log_level"):
            load_config(cfg_file)

    def test_chains_must_be_a_list(self, tmp_path: pytest.TempPathFactory) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text("chains: mainnet\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="must be a list"):
            load_config(cfg_file)

    def test_bad_chain_definition(self, tmp_path: pytest.TempPathFactory) -> None:
        cfg_file = tmp_path / "config.yaml"
        cfg_file.write_text(
            "chains:\n  - name: broken\n    genesis_hash: nothex\n",
            encoding="utf-8",
        )

        with pytest.raises(ConfigError, match="broken"):
            load_config(cfg_file)
