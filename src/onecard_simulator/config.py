from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from onecard_simulator.models import (
    CAP_MODES,
    STRATEGIES,
    AppConfig,
    FundingSource,
    MailingConfig,
    RuntimeConfig,
    SimulatorConfig,
)
from onecard_simulator.utils import round_money, to_money

DEFAULT_APP_LOG_PATH = Path("~/.onecard/onecard.log").expanduser()
DEFAULT_MERCHANT_TOTAL = Decimal("28.75")
DEFAULT_STRATEGY = "sequential"
DEFAULT_CAP_MODE = "cap"
DEFAULT_MAILERLITE_API_URL = "https://connect.mailerlite.com/api"
DEFAULT_RESEND_API_URL = "https://api.resend.com"


class ConfigError(ValueError):
    pass


def _config_error(message: str) -> ConfigError:
    return ConfigError(f"Invalid config file: {message}")


def _format_yaml_error(exc: Exception) -> str:
    mark = getattr(exc, "problem_mark", None)
    if mark is None:
        return "YAML syntax is invalid."
    return f"YAML syntax is invalid near line {mark.line + 1}, column {mark.column + 1}."


def default_config() -> RuntimeConfig:
    return RuntimeConfig(version=1, app=AppConfig(log_path=DEFAULT_APP_LOG_PATH))


def load_config(path: Path) -> RuntimeConfig:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise _config_error(_format_yaml_error(exc)) from exc
    if not isinstance(raw, dict):
        raise _config_error("The root value must be a mapping/object.")

    version = _required_int(raw, "version")
    if version != 1:
        raise _config_error(f"Unsupported version '{version}'. Expected version '1'.")

    app_raw = _optional_mapping(raw, "app")
    log_path = _optional_str(app_raw, "log_path")
    app = AppConfig(log_path=Path(log_path).expanduser() if log_path else DEFAULT_APP_LOG_PATH)

    return RuntimeConfig(
        version=version,
        app=app,
        simulator=_parse_simulator(_optional_mapping(raw, "simulator")),
        mailing=_parse_mailing(_optional_mapping(raw, "mailing")),
    )


def _parse_simulator(raw: dict[str, Any]) -> SimulatorConfig:
    strategy = (_optional_str(raw, "strategy") or DEFAULT_STRATEGY).lower()
    if strategy not in STRATEGIES:
        raise _config_error(f"'simulator.strategy' must be one of: {', '.join(STRATEGIES)}.")
    cap_mode = (_optional_str(raw, "cap_mode") or DEFAULT_CAP_MODE).lower()
    if cap_mode not in CAP_MODES:
        raise _config_error(f"'simulator.cap_mode' must be one of: {', '.join(CAP_MODES)}.")

    merchant_total = _optional_amount(raw, "merchant_total")

    sources = None
    cards_raw = raw.get("cards")
    if cards_raw is not None:
        if not isinstance(cards_raw, list):
            raise _config_error("'simulator.cards' must be a list when provided.")
        sources = tuple(_parse_card(item, position) for position, item in enumerate(cards_raw, start=1))
        ids = [source.id for source in sources]
        duplicates = sorted({item for item in ids if ids.count(item) > 1})
        if duplicates:
            raise _config_error(f"Duplicate card id(s): {', '.join(duplicates)}.")

    return SimulatorConfig(
        merchant_total=DEFAULT_MERCHANT_TOTAL if merchant_total is None else merchant_total,
        strategy=strategy,
        cap_mode=cap_mode,
        sources=sources,
    )


def _parse_card(raw: Any, position: int) -> FundingSource:
    if not isinstance(raw, dict):
        raise _config_error("Each item in 'simulator.cards' must be a mapping/object.")
    last4 = raw.get("last4")
    if isinstance(last4, int) and not isinstance(last4, bool):
        last4 = f"{last4:04d}"
    if not isinstance(last4, str) or len(last4.strip()) != 4 or not last4.strip().isdigit():
        raise _config_error("'last4' must be exactly four digits.")

    pct = _optional_amount(raw, "pct")
    if pct is not None and not Decimal("0") <= pct <= Decimal("100"):
        raise _config_error("'pct' must be between 0 and 100.")

    priority = raw.get("priority", position)
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise _config_error("'priority' must be an integer.")

    return FundingSource(
        id=_required_str(raw, "id"),
        brand=_optional_str(raw, "brand") or "Card",
        last4=last4.strip(),
        balance=_optional_amount(raw, "balance") or Decimal("0.00"),
        priority=priority,
        share_percent=pct or Decimal("0"),
    )


def _parse_mailing(raw: dict[str, Any]) -> MailingConfig:
    return MailingConfig(
        mailerlite_group_id=_optional_str(raw, "mailerlite_group_id"),
        mailerlite_api_url=_optional_str(raw, "mailerlite_api_url") or DEFAULT_MAILERLITE_API_URL,
        resend_api_url=_optional_str(raw, "resend_api_url") or DEFAULT_RESEND_API_URL,
        support_from_email=_optional_str(raw, "support_from_email"),
        support_to_email=_optional_str(raw, "support_to_email"),
    )


def _optional_mapping(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _config_error(f"The '{key}' section must be a mapping/object when provided.")
    return value


def _required_str(raw: dict[str, Any], key: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        raise _config_error(f"'{key}' must be a non-empty string.")
    return value.strip()


def _optional_str(raw: dict[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    if not isinstance(value, str) or not value.strip():
        raise _config_error(f"'{key}' must be a non-empty string when provided.")
    return value.strip()


def _required_int(raw: dict[str, Any], key: str) -> int:
    value = raw.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise _config_error(f"'{key}' must be an integer.")
    return value


def _optional_amount(raw: dict[str, Any], key: str) -> Decimal | None:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise _config_error(f"'{key}' must be a number when provided.")
    try:
        amount = round_money(to_money(value))
    except ValueError as exc:
        raise _config_error(f"'{key}' must be a number when provided.") from exc
    if amount < 0:
        raise _config_error(f"'{key}' must not be negative.")
    return amount
