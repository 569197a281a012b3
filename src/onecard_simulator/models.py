from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Literal

from onecard_simulator.utils import to_money

Strategy = Literal["sequential", "percentage"]
CapMode = Literal["none", "cap"]
ErrorKind = Literal["validation", "configuration", "provider", "transport"]

STRATEGIES: tuple[str, ...] = ("sequential", "percentage")
CAP_MODES: tuple[str, ...] = ("none", "cap")


@dataclass(frozen=True)
class FundingSource:
    id: str
    brand: str
    last4: str
    balance: Decimal
    priority: int
    share_percent: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        object.__setattr__(self, "balance", to_money(self.balance))
        object.__setattr__(self, "share_percent", to_money(self.share_percent))

    @property
    def label(self) -> str:
        return f"{self.brand} ••{self.last4}"


@dataclass(frozen=True)
class AllocationResult:
    lines: dict[str, Decimal]
    remaining: Decimal

    @property
    def allocated_total(self) -> Decimal:
        return sum(self.lines.values(), Decimal("0.00"))


@dataclass(frozen=True)
class Transaction:
    id: str
    total: Decimal
    strategy: Strategy
    cap_mode: CapMode
    timestamp: str
    lines: dict[str, Decimal]
    remaining: Decimal
    applied: bool = False


@dataclass(frozen=True)
class SessionSnapshot:
    sources: tuple[FundingSource, ...]
    merchant_total: Decimal
    strategy: Strategy
    cap_mode: CapMode
    splits: dict[str, Decimal]
    transactions: tuple[Transaction, ...] = ()


@dataclass(frozen=True)
class OutboundResult:
    ok: bool
    message: str
    status_code: int = 200
    error_kind: ErrorKind | None = None


@dataclass(frozen=True)
class AppConfig:
    log_path: Path | None = None


@dataclass(frozen=True)
class SimulatorConfig:
    merchant_total: Decimal = Decimal("28.75")
    strategy: Strategy = "sequential"
    cap_mode: CapMode = "cap"
    sources: tuple[FundingSource, ...] | None = None


@dataclass(frozen=True)
class MailingConfig:
    mailerlite_api_key: str | None = None
    mailerlite_group_id: str | None = None
    mailerlite_api_url: str = "https://connect.mailerlite.com/api"
    resend_api_key: str | None = None
    resend_api_url: str = "https://api.resend.com"
    support_from_email: str | None = None
    support_to_email: str | None = None


@dataclass(frozen=True)
class RuntimeConfig:
    version: int
    app: AppConfig = field(default_factory=AppConfig)
    simulator: SimulatorConfig = field(default_factory=SimulatorConfig)
    mailing: MailingConfig = field(default_factory=MailingConfig)
