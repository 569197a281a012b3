import json
from decimal import Decimal
from pathlib import Path

import pytest

import onecard_simulator.service as service
from onecard_simulator.config import ConfigError
from onecard_simulator.models import MailingConfig, OutboundResult
from onecard_simulator.service import MailingSecrets, run_simulation, run_subscribe, run_support
from onecard_simulator.session import SessionError


def _write_config(tmp_path: Path, log_path: Path) -> Path:
    path = tmp_path / "simulator.yml"
    path.write_text(
        f"""
version: 1
app:
  log_path: "{log_path}"
simulator:
  merchant_total: 20
  cards:
    - id: a
      last4: "4242"
      balance: 12
      priority: 1
      pct: 50
    - id: b
      last4: "5555"
      balance: 30
      priority: 2
      pct: 50
mailing:
  support_from_email: "hello@onecard.app"
""".strip(),
        encoding="utf-8",
    )
    return path


def test_run_simulation_applies_split_and_logs_event(tmp_path: Path) -> None:
    log_path = tmp_path / "logs" / "run.log"
    config_path = _write_config(tmp_path, log_path)

    outcome = run_simulation(config_path=config_path, apply=True)

    assert outcome.status == "funded"
    assert outcome.transaction.lines == {"a": Decimal("12.00"), "b": Decimal("8.00")}
    assert [source.balance for source in outcome.sources] == [Decimal("0.00"), Decimal("22.00")]
    assert "All set!" in outcome.confirmation

    event = json.loads(log_path.read_text(encoding="utf-8").strip())
    assert event["event_name"] == "split_simulated"
    assert event["transaction"]["lines"] == {"a": "12.00", "b": "8.00"}
    assert event["transaction"]["applied"] is True
    assert event["balances"] == {"a": "0.00", "b": "22.00"}


def test_run_simulation_overrides_config_values(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, tmp_path / "run.log")

    outcome = run_simulation(config_path=config_path, total="60", strategy="percentage", cap_mode="cap")

    assert outcome.status == "short"
    assert outcome.transaction.lines == {"a": Decimal("12.00"), "b": Decimal("30.00")}
    assert outcome.transaction.remaining == Decimal("18.00")


def test_run_simulation_uses_demo_cards_without_config(tmp_path: Path) -> None:
    outcome = run_simulation(config_path=None, log_path=tmp_path / "run.log")

    assert outcome.transaction.lines == {"c1": Decimal("6.00"), "c2": Decimal("15.00"), "c3": Decimal("7.75")}


def test_run_simulation_logs_failure_and_reraises(tmp_path: Path) -> None:
    log_path = tmp_path / "run.log"
    config_path = _write_config(tmp_path, log_path)

    with pytest.raises(SessionError):
        run_simulation(config_path=config_path, total="-1")

    event = json.loads(log_path.read_text(encoding="utf-8").strip())
    assert event["event_name"] == "split_failed"
    assert event["status"] == "failed"


def test_run_simulation_with_broken_config_logs_to_stdout(tmp_path: Path, capsys) -> None:
    config_path = tmp_path / "simulator.yml"
    config_path.write_text("version: 3", encoding="utf-8")

    with pytest.raises(ConfigError):
        run_simulation(config_path=config_path)

    payload = json.loads(capsys.readouterr().out)
    assert payload["event_name"] == "split_failed"


def test_run_subscribe_merges_resolved_secrets_over_config(tmp_path: Path, monkeypatch) -> None:
    log_path = tmp_path / "run.log"
    config_path = _write_config(tmp_path, log_path)
    seen: dict[str, object] = {}

    def _fake_subscribe(email: str, settings: MailingConfig, log_path: Path | None = None) -> OutboundResult:
        seen["email"] = email
        seen["settings"] = settings
        return OutboundResult(ok=True, message="You're on the list. Check your inbox!")

    monkeypatch.setattr(service, "subscribe_email", _fake_subscribe)

    result = run_subscribe(
        config_path=config_path,
        email="a@b.co",
        secrets=MailingSecrets(mailerlite_api_key="ml-key", mailerlite_group_id="g-9"),
    )

    settings = seen["settings"]
    assert isinstance(settings, MailingConfig)
    assert result.ok is True
    assert settings.mailerlite_api_key == "ml-key"
    assert settings.mailerlite_group_id == "g-9"
    assert settings.support_from_email == "hello@onecard.app"
    event = json.loads(log_path.read_text(encoding="utf-8").strip())
    assert event["event_name"] == "subscribe_completed"
    assert event["status"] == "ok"


def test_run_support_logs_error_kind(tmp_path: Path) -> None:
    log_path = tmp_path / "run.log"
    config_path = _write_config(tmp_path, log_path)

    result = run_support(config_path=config_path, email="a@b.co", message="hi", secrets=MailingSecrets())

    assert result.error_kind == "configuration"
    event = json.loads(log_path.read_text(encoding="utf-8").strip())
    assert event["event_name"] == "support_completed"
    assert event["status"] == "error"
    assert event["error_kind"] == "configuration"
