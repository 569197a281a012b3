from decimal import Decimal
from pathlib import Path

import pytest

from onecard_simulator.config import (
    DEFAULT_APP_LOG_PATH,
    DEFAULT_MAILERLITE_API_URL,
    DEFAULT_MERCHANT_TOTAL,
    ConfigError,
    load_config,
)


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "simulator.yml"
    path.write_text(text.strip(), encoding="utf-8")
    return path


def test_load_config_parses_cards_and_mailing(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        """
version: 1
app:
  log_path: "logs/run.log"
simulator:
  merchant_total: 42.5
  strategy: Percentage
  cap_mode: none
  cards:
    - id: c1
      brand: Visa
      last4: "4242"
      balance: 6
      priority: 2
      pct: 20
    - id: c2
      last4: 1111
mailing:
  mailerlite_group_id: 12345
  support_from_email: "hello@onecard.app"
  support_to_email: "team@onecard.app"
""",
    )

    cfg = load_config(path)

    assert cfg.version == 1
    assert cfg.app.log_path == Path("logs/run.log")
    assert cfg.simulator.merchant_total == Decimal("42.50")
    assert cfg.simulator.strategy == "percentage"
    assert cfg.simulator.cap_mode == "none"
    assert cfg.simulator.sources is not None
    first, second = cfg.simulator.sources
    assert first.id == "c1"
    assert first.balance == Decimal("6.00")
    assert first.priority == 2
    assert first.share_percent == Decimal("20")
    assert second.brand == "Card"
    assert second.last4 == "1111"
    assert second.balance == Decimal("0.00")
    assert second.priority == 2
    assert second.share_percent == Decimal("0")
    assert cfg.mailing.mailerlite_group_id == "12345"
    assert cfg.mailing.mailerlite_api_url == DEFAULT_MAILERLITE_API_URL
    assert cfg.mailing.support_to_email == "team@onecard.app"
    assert cfg.mailing.mailerlite_api_key is None


def test_load_config_defaults_when_sections_are_missing(tmp_path: Path) -> None:
    cfg = load_config(_write(tmp_path, "version: 1"))

    assert cfg.app.log_path == DEFAULT_APP_LOG_PATH
    assert cfg.simulator.merchant_total == DEFAULT_MERCHANT_TOTAL
    assert cfg.simulator.strategy == "sequential"
    assert cfg.simulator.cap_mode == "cap"
    assert cfg.simulator.sources is None
    assert cfg.mailing.support_from_email is None


@pytest.mark.parametrize(
    ("text", "message"),
    [
        ("version: 2", "Unsupported version"),
        ("- just\n- a list", "root value"),
        ("version: 1\nsimulator:\n  strategy: random", "simulator.strategy"),
        ("version: 1\nsimulator:\n  cap_mode: soft", "simulator.cap_mode"),
        ("version: 1\nsimulator:\n  merchant_total: -5", "'merchant_total' must not be negative"),
        ("version: 1\nsimulator:\n  cards: nope", "'simulator.cards' must be a list"),
        ("version: 1\nsimulator:\n  cards:\n    - id: a\n      last4: '42'", "'last4'"),
        ("version: 1\nsimulator:\n  cards:\n    - id: a\n      last4: '4242'\n      pct: 120", "'pct'"),
        ("version: 1\nsimulator:\n  cards:\n    - id: a\n      last4: '4242'\n      balance: lots", "'balance'"),
        (
            "version: 1\nsimulator:\n  cards:\n    - id: a\n      last4: '4242'\n    - id: a\n      last4: '1111'",
            "Duplicate card id",
        ),
        ("version: 1\napp: []", "'app' section"),
    ],
)
def test_load_config_rejects_invalid_values(tmp_path: Path, text: str, message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        load_config(_write(tmp_path, text))


def test_load_config_reports_yaml_syntax_position(tmp_path: Path) -> None:
    path = _write(tmp_path, "version: 1\nsimulator: [unclosed")

    with pytest.raises(ConfigError, match="YAML syntax is invalid near line"):
        load_config(path)
