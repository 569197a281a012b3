from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from pathlib import Path
from typing import Any

from onecard_simulator.config import default_config, load_config
from onecard_simulator.logger import append_log_event
from onecard_simulator.mailing import send_support_message, subscribe_email
from onecard_simulator.models import FundingSource, MailingConfig, OutboundResult, RuntimeConfig, Transaction
from onecard_simulator.session import SimulatorSession
from onecard_simulator.utils import now_local_iso


@dataclass(frozen=True)
class SimulationOutcome:
    transaction: Transaction
    sources: tuple[FundingSource, ...]
    confirmation: str

    @property
    def status(self) -> str:
        return "funded" if self.transaction.remaining <= 0 else "short"


@dataclass(frozen=True)
class MailingSecrets:
    mailerlite_api_key: str | None = None
    mailerlite_group_id: str | None = None
    resend_api_key: str | None = None
    support_from_email: str | None = None
    support_to_email: str | None = None


def load_runtime_config(config_path: Path | None) -> RuntimeConfig:
    if config_path is None:
        return default_config()
    return load_config(config_path)


def run_simulation(
    config_path: Path | None,
    total: Decimal | str | None = None,
    strategy: str | None = None,
    cap_mode: str | None = None,
    apply: bool = False,
    log_path: Path | None = None,
    log_to_stdout: bool = False,
) -> SimulationOutcome:
    resolved_log_path = log_path
    try:
        runtime_config = load_runtime_config(config_path)
        resolved_log_path = None if log_to_stdout else (log_path or runtime_config.app.log_path)
        simulator = runtime_config.simulator

        session = SimulatorSession(
            sources=simulator.sources,
            merchant_total=simulator.merchant_total if total is None else total,
            strategy=strategy or simulator.strategy,
            cap_mode=cap_mode or simulator.cap_mode,
        )
        transaction = session.simulate(apply=apply)
        snapshot = session.snapshot()
        outcome = SimulationOutcome(
            transaction=transaction,
            sources=snapshot.sources,
            confirmation=session.confirmation_message(),
        )
    except Exception as exc:
        _log_failure(resolved_log_path, "split_failed", exc)
        raise

    append_log_event(resolved_log_path, _build_simulation_event(outcome))
    return outcome


def run_subscribe(
    config_path: Path | None,
    email: str,
    secrets: MailingSecrets,
    log_path: Path | None = None,
    log_to_stdout: bool = False,
) -> OutboundResult:
    resolved_log_path = log_path
    try:
        runtime_config = load_runtime_config(config_path)
        resolved_log_path = None if log_to_stdout else (log_path or runtime_config.app.log_path)
        result = subscribe_email(
            email,
            _merge_secrets(runtime_config.mailing, secrets),
            log_path=resolved_log_path,
        )
    except Exception as exc:
        _log_failure(resolved_log_path, "subscribe_failed", exc)
        raise

    append_log_event(resolved_log_path, _build_outbound_event("subscribe_completed", result))
    return result


def run_support(
    config_path: Path | None,
    email: str,
    message: str,
    secrets: MailingSecrets,
    log_path: Path | None = None,
    log_to_stdout: bool = False,
) -> OutboundResult:
    resolved_log_path = log_path
    try:
        runtime_config = load_runtime_config(config_path)
        resolved_log_path = None if log_to_stdout else (log_path or runtime_config.app.log_path)
        result = send_support_message(email, message, _merge_secrets(runtime_config.mailing, secrets))
    except Exception as exc:
        _log_failure(resolved_log_path, "support_failed", exc)
        raise

    append_log_event(resolved_log_path, _build_outbound_event("support_completed", result))
    return result


def _merge_secrets(mailing: MailingConfig, secrets: MailingSecrets) -> MailingConfig:
    overrides = {key: value for key, value in vars(secrets).items() if value}
    return replace(mailing, **overrides)


def _log_failure(log_path: Path | None, event_name: str, exc: Exception) -> None:
    append_log_event(
        log_path,
        {
            "timestamp": now_local_iso(),
            "event_name": event_name,
            "status": "failed",
            "error_message": str(exc),
        },
    )


def _build_simulation_event(outcome: SimulationOutcome) -> dict[str, Any]:
    transaction = outcome.transaction
    return {
        "timestamp": now_local_iso(),
        "event_name": "split_simulated",
        "status": outcome.status,
        "transaction": {
            "id": transaction.id,
            "total": transaction.total,
            "strategy": transaction.strategy,
            "cap_mode": transaction.cap_mode,
            "applied": transaction.applied,
            "lines": transaction.lines,
            "remaining": transaction.remaining,
        },
        "balances": {source.id: source.balance for source in outcome.sources},
    }


def _build_outbound_event(event_name: str, result: OutboundResult) -> dict[str, Any]:
    event: dict[str, Any] = {
        "timestamp": now_local_iso(),
        "event_name": event_name,
        "status": "ok" if result.ok else "error",
        "status_code": result.status_code,
        "message": result.message,
    }
    if result.error_kind is not None:
        event["error_kind"] = result.error_kind
    return event
