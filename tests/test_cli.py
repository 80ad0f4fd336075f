"""Tests for argument parsing, configuration loading and command dispatch."""

import json
from unittest.mock import patch

import pytest

from args import parse_args
from cli_config import feed_config_from_args, load_config, parse_metadata_pairs
from common.errors import ConfigurationError, InstallError
from constants import ExitCodes, LocalRegistryScope
from upackctl import run


class TestParseArgs:
    """Subcommand parsing."""

    def test_pack_defaults(self):
        args = parse_args(["pack", "--name", "pkg", "--version", "1.0.0"])
        assert args.COMMAND == "pack"
        assert args.SOURCE_DIR == "."
        assert args.INCLUDES == []
        assert args.OVERWRITE is False
        assert args.FAIL_ON_SKIP is False

    def test_pack_repeated_masks_and_metadata(self):
        args = parse_args([
            "pack", "--name", "pkg", "--version", "1.0.0", "--group", "tools",
            "--include", "*.txt", "--include", "**/*.dll", "--exclude", "obj",
            "--metadata", "a=1", "--metadata", "b=2", "--overwrite",
        ])
        assert args.GROUP == "tools"
        assert args.INCLUDES == ["*.txt", "**/*.dll"]
        assert args.EXCLUDES == ["obj"]
        assert args.METADATA == ["a=1", "b=2"]
        assert args.OVERWRITE is True

    def test_install_registry_default_and_choices(self):
        args = parse_args(["install", "--name", "pkg", "--version", "latest", "--target", "/tmp/x"])
        assert args.REGISTRY == LocalRegistryScope.NONE.value
        with pytest.raises(SystemExit):
            parse_args(["install", "--name", "p", "--version", "1.0.0", "--target", "t", "--registry", "global"])

    def test_listing_flags_default_off(self):
        assert parse_args(["resolve"]).LIST_SOURCES is False
        args = parse_args(["list-installed"])
        assert args.NAME is None
        assert args.GROUP is None

    def test_pack_requires_name(self):
        with pytest.raises(SystemExit):
            parse_args(["pack", "--version", "1.0.0"])

    def test_feed_flags_populate_configuration(self):
        args = parse_args([
            "resolve", "--source", "internal", "--api-url", "https://h", "--feed", "F",
            "--api-key", "k", "--user", "u", "--password", "p", "--feed-url", "https://h/upack/F",
        ])
        config = feed_config_from_args(args)
        assert config.package_source_name == "internal"
        assert config.api_url == "https://h"
        assert config.feed_name == "F"
        assert config.api_key == "k"
        assert config.user_name == "u"
        assert config.password == "p"
        assert config.feed_url == "https://h/upack/F"


class TestParseMetadataPairs:
    """KEY=VALUE metadata arguments."""

    def test_plain_values_stay_strings(self):
        assert parse_metadata_pairs(["a=1.10", "b=x=y", "c="]) == {"a": "1.10", "b": "x=y", "c": ""}

    def test_collections_are_parsed(self):
        result = parse_metadata_pairs(["tags=[a, b]", "owner={team: core}"])
        assert result == {"tags": ["a", "b"], "owner": {"team": "core"}}

    @pytest.mark.parametrize("pair", ["novalue", "=x", "bad=[unclosed"])
    def test_invalid_pairs_raise(self, pair):
        with pytest.raises(ConfigurationError):
            parse_metadata_pairs([pair])


class TestLoadConfig:
    """YAML configuration file handling."""

    def test_no_path_is_empty(self, monkeypatch):
        monkeypatch.delenv("UPACKCTL_CONFIG", raising=False)
        assert load_config(None) == {}

    def test_missing_file_is_empty(self, tmp_path):
        assert load_config(str(tmp_path / "absent.yml")) == {}

    def test_env_variable_supplies_path(self, tmp_path, monkeypatch):
        path = tmp_path / "cfg.yml"
        path.write_text("package_sources:\n  internal: Url::https://h\n")
        monkeypatch.setenv("UPACKCTL_CONFIG", str(path))
        assert load_config(None) == {"package_sources": {"internal": "Url::https://h"}}

    def test_empty_file_is_empty(self, tmp_path):
        path = tmp_path / "cfg.yml"
        path.write_text("")
        assert load_config(str(path)) == {}

    def test_invalid_yaml_raises(self, tmp_path):
        path = tmp_path / "cfg.yml"
        path.write_text("a: [unclosed\n")
        with pytest.raises(ConfigurationError):
            load_config(str(path))

    def test_non_mapping_raises(self, tmp_path):
        path = tmp_path / "cfg.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_config(str(path))


class TestRun:
    """Command dispatch and exit codes."""

    @pytest.fixture(autouse=True)
    def _no_env_config(self, monkeypatch):
        monkeypatch.delenv("UPACKCTL_CONFIG", raising=False)

    def test_pack_success(self, tmp_path, capsys):
        src = tmp_path / "src"
        src.mkdir()
        (src / "a.txt").write_text("a")
        args = parse_args([
            "pack", "--name", "pkg", "--version", "1.0.0", "--group", "demo",
            "--from", str(src), "--to", str(tmp_path / "out"),
        ])
        assert run(args) == ExitCodes.SUCCESS.value
        assert (tmp_path / "out" / "pkg-1.0.0.upack").is_file()
        assert capsys.readouterr().out.strip() == "demo/pkg 1.0.0"

    def test_pack_skip_exit_codes(self, tmp_path):
        argv = ["pack", "--name", "pkg", "--version", "1.0.0", "--from", str(tmp_path / "absent")]
        assert run(parse_args(argv)) == ExitCodes.SUCCESS.value
        assert run(parse_args(argv + ["--fail-on-skip"])) == ExitCodes.SKIPPED.value

    def test_pack_invalid_identity_is_config_error(self, tmp_path):
        args = parse_args(["pack", "--name", "a/b", "--version", "1.0.0", "--from", str(tmp_path)])
        assert run(args) == ExitCodes.CONFIG_ERROR.value

    def test_resolve_prints_masked_configuration(self, tmp_path, capsys):
        path = tmp_path / "cfg.yml"
        path.write_text(
            "package_sources:\n"
            "  approved: ProGetFeed::svc::Approved\n"
            "credentials:\n"
            "  svc:\n"
            "    type: ProGetService\n"
            "    service_url: https://svc.local\n"
            "    api_key: supersecret\n"
        )
        args = parse_args(["resolve", "-c", str(path), "--source", "approved"])
        assert run(args) == ExitCodes.SUCCESS.value
        printed = json.loads(capsys.readouterr().out)
        assert printed["api_url"] == "https://svc.local"
        assert printed["feed_name"] == "Approved"
        assert printed["api_key"] != "supersecret"

    def test_resolve_unknown_source_is_not_found(self):
        args = parse_args(["resolve", "--source", "ghost"])
        assert run(args) == ExitCodes.NOT_FOUND.value

    def test_resolve_without_feed_is_config_error(self):
        assert run(parse_args(["resolve"])) == ExitCodes.CONFIG_ERROR.value

    def test_list_installed(self, tmp_path, capsys):
        with patch("upack.local_registry.Constants.USER_REGISTRY_ROOT", str(tmp_path)):
            args = parse_args(["list-installed", "--registry", "user"])
            assert run(args) == ExitCodes.SUCCESS.value
        assert json.loads(capsys.readouterr().out) == []

    def test_install_failure_maps_to_connection_error(self, tmp_path):
        args = parse_args([
            "install", "--name", "pkg", "--version", "1.0.0", "--target", str(tmp_path / "t"),
            "--api-url", "http://127.0.0.1:9", "--feed", "F",
        ])
        with patch("cli_install.install_package") as install:
            install.side_effect = InstallError("boom", package="pkg")
            assert run(args) == ExitCodes.CONNECTION_ERROR.value

    def test_resolve_lists_source_names(self, tmp_path, capsys):
        path = tmp_path / "cfg.yml"
        path.write_text(
            "package_sources:\n"
            "  zeta: Url::https://z\n"
            "  alpha: Url::https://a\n"
        )
        args = parse_args(["resolve", "-c", str(path), "--list-sources"])
        assert run(args) == ExitCodes.SUCCESS.value
        assert capsys.readouterr().out.split() == ["alpha", "zeta"]

    def test_list_installed_single_package(self, tmp_path, capsys):
        records = [
            {"Name": "pkg", "Version": "1.0.0", "InstallPath": "/opt/a"},
            {"Group": "tools", "Name": "pkg", "Version": "2.0.0", "InstallPath": "/opt/b"},
        ]
        (tmp_path / "installedPackages.json").write_text(json.dumps(records))
        with patch("upack.local_registry.Constants.USER_REGISTRY_ROOT", str(tmp_path)):
            args = parse_args(["list-installed", "--registry", "user", "--name", "pkg", "--group", "tools"])
            assert run(args) == ExitCodes.SUCCESS.value
            printed = json.loads(capsys.readouterr().out)
            assert printed["Version"] == "2.0.0"

            args = parse_args(["list-installed", "--registry", "user", "--name", "ghost"])
            assert run(args) == ExitCodes.NOT_FOUND.value
