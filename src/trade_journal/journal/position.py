"""Position snapshot: the core data model.

A Position captures one trade from first fill to full close, including
every averaging add, partial close and stop adjustment.  Snapshots are
immutable: :class:`~trade_journal.journal.ledger.PositionLedger`
produces a new snapshot per event and appends to ``action_history``.

Persistence stores the whole snapshot (``model_dump(mode="json")``)
atomically, since risk, max risk and R-multiple depend on each other.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from trade_journal.core.enums import (
    ActionKind,
    CloseReason,
    Direction,
    PositionStatus,
)

from .temporal import parse_timestamp


def _aware(value: Any) -> Any:
    if value is None:
        return None
    return parse_timestamp(value)


# Naive / string timestamps are normalised to aware UTC on load
UtcDatetime = Annotated[datetime, BeforeValidator(_aware)]


class ActionEntry(BaseModel):
    """One line of the append-only action log."""

    model_config = ConfigDict(frozen=True)

    timestamp: UtcDatetime
    action_kind: ActionKind
    description: str


class AddLeg(BaseModel):
    """An averaging add (the opening fill is not an add)."""

    model_config = ConfigDict(frozen=True)

    price: float = Field(gt=0)
    size_usd: float = Field(gt=0)
    timestamp: UtcDatetime


class PartialCloseLeg(BaseModel):
    """A partial scale-out with its realized PnL."""

    model_config = ConfigDict(frozen=True)

    percent: float = Field(gt=0, le=100)
    price: float = Field(gt=0)
    size_usd: float = Field(default=0.0, ge=0)
    pnl_usd: float = 0.0
    timestamp: UtcDatetime


class Position(BaseModel):
    """Snapshot of one position.

    ``None`` on a derived field means "not computable" (e.g. no stop →
    no risk), never zero.
    """

    model_config = ConfigDict(frozen=True)

    # Identity
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    direction: Direction
    symbol: str = ""
    strategy: str = ""
    timeframe: str = ""

    # Current levels
    entry_price: float = Field(gt=0)  # Weighted average
    position_size_usd: float = Field(ge=0)
    stop_price: float | None = Field(default=None, gt=0)
    take_price: float | None = Field(default=None, gt=0)

    # First-ever values, immutable once set
    original_entry_price: float | None = None
    original_stop_price: float | None = None
    initial_size_usd: float | None = None

    # Risk context (derived from current stop / take)
    risk_usd: float | None = None
    risk_percent: float | None = None
    reward_usd: float | None = None
    reward_percent: float | None = None
    rr_ratio: float | None = None
    rr_degenerate: bool = False
    max_risk_usd: float = Field(default=0.0, ge=0)

    account_balance_at_entry: float = Field(gt=0)
    realized_pnl_usd: float = 0.0

    # Lifecycle
    status: PositionStatus = PositionStatus.OPEN
    date_open: UtcDatetime
    date_close: UtcDatetime | None = None
    close_price: float | None = None
    close_reason: CloseReason | None = None
    pnl_usd: float | None = None
    pnl_percent: float | None = None
    r_multiple: float | None = None
    r_multiple_degenerate: bool = False
    duration_minutes: float | None = None

    # Audit trail
    action_history: tuple[ActionEntry, ...] = ()
    adds: tuple[AddLeg, ...] = ()
    partial_closes: tuple[PartialCloseLeg, ...] = ()

    # Annotations (no risk semantics)
    notes: str = ""
    tags: tuple[str, ...] = ()

    # ------------------------------------------------------------------ #
    # Convenience                                                          #
    # ------------------------------------------------------------------ #

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status == PositionStatus.CLOSED

    @property
    def reference_date(self) -> datetime:
        """Close date if present, else open date."""
        return self.date_close or self.date_open

    def annotate(self, *, notes: str | None = None, tags: list[str] | None = None) -> Position:
        """Return a copy with updated annotations.

        Allowed on CLOSED positions too; annotations carry no risk semantics.
        """
        update: dict[str, Any] = {}
        if notes is not None:
            update["notes"] = notes
        if tags is not None:
            update["tags"] = tuple(tags)
        return self.model_copy(update=update)
