"""Risk-reward arithmetic for a single position.

Pure functions turning (entry, stop, take, size, account balance) into
risk / reward in USD and percent-of-balance plus the R:R ratio.

"Undefined" is ``None`` throughout: a position without a stop has no
risk figure, which is different from a stop sitting at entry (risk
exactly ``0.0``).  Callers must never see the former coerced to the
latter.

Breakeven R:R
-------------
Once a stop has been moved to entry the live risk is 0 and
``reward / risk`` is meaningless.  The ratio then falls back to
``reward / basis_risk`` where the basis is the worst risk ever held on
the position (``max_risk_usd``).  If that is also zero the ratio is
``reward / 1`` and flagged ``rr_degenerate``, or ``None`` when
``strict`` is set.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from trade_journal.core.enums import Direction
from trade_journal.core.errors import InvalidPositionState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskReward:
    """Risk / reward snapshot.  ``None`` = not computable from inputs."""

    risk_usd: float | None
    risk_percent: float | None
    reward_usd: float | None
    reward_percent: float | None
    rr_ratio: float | None
    rr_degenerate: bool = False


def _check_price(name: str, value: float) -> None:
    if not math.isfinite(value) or value <= 0:
        raise InvalidPositionState(f"{name} must be a positive number, got {value!r}")


def _check_size(value: float) -> None:
    if not math.isfinite(value) or value < 0:
        raise InvalidPositionState(f"size must be non-negative, got {value!r}")


def distance_usd(entry: float, level: float | None, size_usd: float) -> float | None:
    """``|entry - level| / entry * size`` or ``None`` without a level."""
    if level is None:
        return None
    return abs(entry - level) / entry * size_usd


def percent_of_balance(amount: float | None, balance: float) -> float | None:
    if amount is None:
        return None
    return amount / balance * 100.0


def directional_pnl(
    entry: float,
    exit_price: float,
    size_usd: float,
    direction: Direction | str,
) -> float:
    """PnL of *size_usd* notional moved from *entry* to *exit_price*."""
    direction = Direction(direction)
    return direction.sign * (exit_price - entry) / entry * size_usd


def rr_ratio(
    risk_usd: float | None,
    reward_usd: float | None,
    *,
    basis_risk_usd: float | None = None,
    strict: bool = False,
) -> tuple[float | None, bool]:
    """Return ``(ratio, degenerate)``.

    ``degenerate`` is True only when the breakeven fallback had to
    divide by the 1-unit guard.
    """
    if risk_usd is None or reward_usd is None:
        return None, False
    if risk_usd > 0:
        return reward_usd / risk_usd, False

    # Breakeven stop: measure reward against the worst risk actually taken
    if basis_risk_usd is not None and basis_risk_usd > 0:
        return reward_usd / basis_risk_usd, False
    if strict:
        return None, True
    logger.warning(
        "Degenerate breakeven R:R: no basis risk, reward %.4f divided by 1",
        reward_usd,
    )
    return reward_usd / 1.0, True


def calculate(
    *,
    entry: float,
    size_usd: float,
    balance: float,
    stop: float | None = None,
    take: float | None = None,
    basis_risk_usd: float | None = None,
    strict: bool = False,
) -> RiskReward:
    """Compute the full :class:`RiskReward` snapshot.

    Raises:
        InvalidPositionState: non-positive entry / balance / levels or
            negative size.
    """
    _check_price("entry", entry)
    _check_price("balance", balance)
    _check_size(size_usd)
    if stop is not None:
        _check_price("stop", stop)
    if take is not None:
        _check_price("take", take)

    risk = distance_usd(entry, stop, size_usd)
    reward = distance_usd(entry, take, size_usd)
    ratio, degenerate = rr_ratio(
        risk, reward, basis_risk_usd=basis_risk_usd, strict=strict
    )
    return RiskReward(
        risk_usd=risk,
        risk_percent=percent_of_balance(risk, balance),
        reward_usd=reward,
        reward_percent=percent_of_balance(reward, balance),
        rr_ratio=ratio,
        rr_degenerate=degenerate,
    )
