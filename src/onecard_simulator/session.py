from __future__ import annotations

import re
import threading
import uuid
from dataclasses import replace
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable

from onecard_simulator.models import (
    CAP_MODES,
    STRATEGIES,
    AllocationResult,
    CapMode,
    FundingSource,
    SessionSnapshot,
    Strategy,
    Transaction,
)
from onecard_simulator.split import compute_split
from onecard_simulator.utils import ZERO, format_money, now_local_iso, round_money, to_money

DEFAULT_MERCHANT_TOTAL = Decimal("28.75")
DEMO_SOURCES: tuple[FundingSource, ...] = (
    FundingSource(id="c1", brand="Visa", last4="4242", balance=Decimal("6.00"), priority=1, share_percent=Decimal("20")),
    FundingSource(
        id="c2", brand="Mastercard", last4="4444", balance=Decimal("15.00"), priority=2, share_percent=Decimal("30")
    ),
    FundingSource(
        id="c3", brand="Discover", last4="1111", balance=Decimal("40.00"), priority=3, share_percent=Decimal("50")
    ),
)


class SessionError(ValueError):
    pass


def _default_id_factory(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex[:12]}"


def detect_brand(digits: str) -> str:
    if digits.startswith("4"):
        return "Visa"
    if digits.startswith("5"):
        return "Mastercard"
    if digits.startswith("6"):
        return "Discover"
    return "Card"


class SimulatorSession:
    def __init__(
        self,
        sources: Iterable[FundingSource] | None = None,
        merchant_total: Decimal | int | float | str = DEFAULT_MERCHANT_TOTAL,
        strategy: Strategy = "sequential",
        cap_mode: CapMode = "cap",
        clock: Callable[[], str] | None = None,
        id_factory: Callable[[str], str] | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._sources: list[FundingSource] = list(DEMO_SOURCES if sources is None else sources)
        self._merchant_total = _non_negative_money(merchant_total, "Merchant total")
        self._strategy: Strategy = _validated_strategy(strategy)
        self._cap_mode: CapMode = _validated_cap_mode(cap_mode)
        self._splits: dict[str, Decimal] = {source.id: ZERO for source in self._sources}
        self._transactions: list[Transaction] = []
        self._clock = clock or now_local_iso
        self._id_factory = id_factory or _default_id_factory

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._snapshot()

    def set_merchant_total(self, total: Decimal | int | float | str) -> SessionSnapshot:
        with self._lock:
            self._merchant_total = _non_negative_money(total, "Merchant total")
            return self._snapshot()

    def set_strategy(self, strategy: str) -> SessionSnapshot:
        with self._lock:
            self._strategy = _validated_strategy(strategy)
            return self._snapshot()

    def set_cap_mode(self, cap_mode: str) -> SessionSnapshot:
        with self._lock:
            self._cap_mode = _validated_cap_mode(cap_mode)
            return self._snapshot()

    def update_balance(self, source_id: str, balance: Decimal | int | float | str) -> SessionSnapshot:
        with self._lock:
            amount = _non_negative_money(balance, "Balance")
            self._replace_source(source_id, balance=amount)
            return self._snapshot()

    def set_priority(self, source_id: str, priority: int) -> SessionSnapshot:
        if isinstance(priority, bool) or not isinstance(priority, int):
            raise SessionError(f"Priority must be an integer, got {priority!r}.")
        with self._lock:
            self._replace_source(source_id, priority=priority)
            return self._snapshot()

    def set_percent(self, source_id: str, percent: Decimal | int | float | str) -> SessionSnapshot:
        try:
            value = to_money(percent)
        except ValueError as exc:
            raise SessionError(str(exc)) from exc
        whole = value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        clamped = max(Decimal("0"), min(Decimal("100"), whole))
        with self._lock:
            self._replace_source(source_id, share_percent=clamped)
            return self._snapshot()

    def set_manual_split(self, source_id: str, amount: Decimal | int | float | str) -> SessionSnapshot:
        with self._lock:
            self._find_source(source_id)
            try:
                self._splits[source_id] = round_money(amount)
            except ValueError as exc:
                raise SessionError(str(exc)) from exc
            return self._snapshot()

    def recompute(self) -> AllocationResult:
        with self._lock:
            result = self._compute()
            self._splits = dict(result.lines)
            return result

    def simulate(self, apply: bool = False) -> Transaction:
        with self._lock:
            result = self._compute()
            transaction = Transaction(
                id=self._id_factory("tx_"),
                total=self._merchant_total,
                strategy=self._strategy,
                cap_mode=self._cap_mode,
                timestamp=self._clock(),
                lines=dict(result.lines),
                remaining=result.remaining,
                applied=apply,
            )
            self._transactions.insert(0, transaction)
            if apply:
                self._sources = [
                    replace(source, balance=round_money(source.balance - result.lines.get(source.id, ZERO)))
                    for source in self._sources
                ]
            self._splits = dict(result.lines)
            return transaction

    def remove_transaction(self, transaction_id: str) -> SessionSnapshot:
        with self._lock:
            kept = [item for item in self._transactions if item.id != transaction_id]
            if len(kept) == len(self._transactions):
                raise SessionError(f"Unknown transaction '{transaction_id}'.")
            self._transactions = kept
            return self._snapshot()

    def clear_transactions(self) -> SessionSnapshot:
        with self._lock:
            self._transactions = []
            return self._snapshot()

    def link_card(self, card_number: str) -> FundingSource:
        digits = re.sub(r"\D", "", card_number or "")
        if len(digits) < 4:
            raise SessionError("Enter a valid card number (last 4 digits required).")
        with self._lock:
            source = FundingSource(
                id=self._id_factory("c_"),
                brand=detect_brand(digits),
                last4=digits[-4:],
                balance=ZERO,
                priority=len(self._sources) + 1,
                share_percent=Decimal("0"),
            )
            self._sources.append(source)
            self._splits[source.id] = ZERO
            return source

    def delete_source(self, source_id: str) -> SessionSnapshot:
        with self._lock:
            self._find_source(source_id)
            self._sources = [source for source in self._sources if source.id != source_id]
            self._splits.pop(source_id, None)
            return self._snapshot()

    def remaining(self) -> Decimal:
        with self._lock:
            return self._remaining()

    def confirmation_message(self) -> str:
        with self._lock:
            funded = [
                f"{source.label}: {format_money(self._splits.get(source.id, ZERO))}"
                for source in self._sources
                if self._splits.get(source.id, ZERO) > 0
            ]
            remaining = self._remaining()
            message = f'Charging {format_money(self._merchant_total)} via "{self._strategy}" strategy as:\n'
            message += "\n".join(funded)
            if remaining > 0:
                return message + f"\n\nRemaining: {format_money(remaining)} (needs funding)"
            return message + "\n\nAll set!"

    def _compute(self) -> AllocationResult:
        return compute_split(self._merchant_total, self._sources, self._strategy, self._cap_mode)

    def _remaining(self) -> Decimal:
        return max(ZERO, round_money(self._merchant_total - sum(self._splits.values(), ZERO)))

    def _snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            sources=tuple(self._sources),
            merchant_total=self._merchant_total,
            strategy=self._strategy,
            cap_mode=self._cap_mode,
            splits=dict(self._splits),
            transactions=tuple(self._transactions),
        )

    def _find_source(self, source_id: str) -> FundingSource:
        for source in self._sources:
            if source.id == source_id:
                return source
        raise SessionError(f"Unknown funding source '{source_id}'.")

    def _replace_source(self, source_id: str, **changes: object) -> None:
        current = self._find_source(source_id)
        updated = replace(current, **changes)
        self._sources = [updated if source.id == source_id else source for source in self._sources]


def _non_negative_money(value: Decimal | int | float | str, label: str) -> Decimal:
    try:
        amount = round_money(value)
    except ValueError as exc:
        raise SessionError(f"{label} must be a finite number, got {value!r}.") from exc
    if amount < 0:
        raise SessionError(f"{label} must not be negative, got {amount}.")
    return amount


def _validated_strategy(strategy: str) -> Strategy:
    if strategy not in STRATEGIES:
        allowed = ", ".join(STRATEGIES)
        raise SessionError(f"Unsupported strategy '{strategy}'. Expected one of: {allowed}.")
    return strategy  # type: ignore[return-value]


def _validated_cap_mode(cap_mode: str) -> CapMode:
    if cap_mode not in CAP_MODES:
        allowed = ", ".join(CAP_MODES)
        raise SessionError(f"Unsupported cap mode '{cap_mode}'. Expected one of: {allowed}.")
    return cap_mode  # type: ignore[return-value]
