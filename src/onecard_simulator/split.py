from __future__ import annotations

from decimal import Decimal
from typing import Sequence

from onecard_simulator.models import CAP_MODES, AllocationResult, FundingSource
from onecard_simulator.utils import ZERO, round_money, to_money


class SplitInputError(ValueError):
    pass


def compute_split(
    total: Decimal | int | float | str,
    sources: Sequence[FundingSource],
    strategy: str,
    cap_mode: str,
) -> AllocationResult:
    if strategy == "sequential":
        return compute_sequential_split(total, sources, cap_mode)
    if strategy == "percentage":
        return compute_percentage_split(total, sources, cap_mode)
    raise SplitInputError(f"Unsupported strategy '{strategy}'. Expected 'sequential' or 'percentage'.")


def compute_sequential_split(
    total: Decimal | int | float | str,
    sources: Sequence[FundingSource],
    cap_mode: str,
) -> AllocationResult:
    capped = _is_capped(cap_mode)
    need = round_money(_validated_total(total))
    lines = {source.id: ZERO for source in sources}

    # sorted() is stable, so equal priorities keep their input order.
    for source in sorted(sources, key=lambda item: item.priority):
        if need <= 0:
            break
        limit = _limit_for(source, capped)
        take = round_money(need if limit is None else min(limit, need))
        lines[source.id] = take
        need = round_money(need - take)

    return AllocationResult(lines=lines, remaining=need)


def compute_percentage_split(
    total: Decimal | int | float | str,
    sources: Sequence[FundingSource],
    cap_mode: str,
) -> AllocationResult:
    capped = _is_capped(cap_mode)
    total_amount = _validated_total(total)
    pct_sum = sum((source.share_percent for source in sources), Decimal("0")) or Decimal("1")
    need = round_money(total_amount)
    lines = {source.id: ZERO for source in sources}

    for source in sources:
        share = round_money(need * (source.share_percent / pct_sum))
        limit = _limit_for(source, capped)
        if limit is not None:
            share = min(share, limit)
        lines[source.id] = round_money(share)

    leftover = round_money(total_amount - _sum_lines(lines))
    if leftover > 0:
        for source in sources:
            if leftover <= 0:
                break
            limit = _limit_for(source, capped)
            if limit is None:
                add = leftover
            else:
                headroom = round_money(max(ZERO, limit - lines[source.id]))
                add = round_money(min(headroom, leftover))
            if add > 0:
                lines[source.id] = round_money(lines[source.id] + add)
                leftover = round_money(leftover - add)

    return AllocationResult(lines=lines, remaining=round_money(total_amount - _sum_lines(lines)))


def _validated_total(total: Decimal | int | float | str) -> Decimal:
    try:
        amount = to_money(total)
    except ValueError as exc:
        raise SplitInputError(f"Purchase total must be a finite number, got {total!r}.") from exc
    if amount < 0:
        raise SplitInputError(f"Purchase total must not be negative, got {amount}.")
    return amount


def _is_capped(cap_mode: str) -> bool:
    if cap_mode not in CAP_MODES:
        allowed = ", ".join(CAP_MODES)
        raise SplitInputError(f"Unsupported cap mode '{cap_mode}'. Expected one of: {allowed}.")
    return cap_mode == "cap"


def _limit_for(source: FundingSource, capped: bool) -> Decimal | None:
    return source.balance if capped else None


def _sum_lines(lines: dict[str, Decimal]) -> Decimal:
    return sum(lines.values(), ZERO)
