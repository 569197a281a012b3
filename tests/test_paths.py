from pathlib import Path

from onecard_simulator.credentials import resolve_secret
from onecard_simulator.paths import resolve_config_path


def test_resolve_config_uses_cli_override(tmp_path: Path) -> None:
    custom = tmp_path / "custom.yaml"
    assert resolve_config_path(custom, tmp_path) == custom


def test_resolve_config_prefers_yml_when_present(tmp_path: Path) -> None:
    yml = tmp_path / "simulator.yml"
    yaml = tmp_path / "simulator.yaml"
    yml.write_text("version: 1\n", encoding="utf-8")
    yaml.write_text("version: 1\n", encoding="utf-8")

    assert resolve_config_path(None, tmp_path) == yml


def test_resolve_config_falls_back_to_yaml(tmp_path: Path) -> None:
    yaml = tmp_path / "simulator.yaml"
    yaml.write_text("version: 1\n", encoding="utf-8")

    assert resolve_config_path(None, tmp_path) == yaml


def test_resolve_config_defaults_to_missing_yml(tmp_path: Path) -> None:
    assert resolve_config_path(None, tmp_path) == tmp_path / "simulator.yml"


def test_resolve_secret_precedence(monkeypatch) -> None:
    monkeypatch.delenv("ONECARD_TEST_KEY", raising=False)
    assert resolve_secret(None, "ONECARD_TEST_KEY", {}) is None
    assert resolve_secret(None, "ONECARD_TEST_KEY", {"ONECARD_TEST_KEY": "dotenv"}) == "dotenv"
    monkeypatch.setenv("ONECARD_TEST_KEY", "env")
    assert resolve_secret(None, "ONECARD_TEST_KEY", {"ONECARD_TEST_KEY": "dotenv"}) == "env"
    assert resolve_secret("flag", "ONECARD_TEST_KEY", {}) == "flag"
