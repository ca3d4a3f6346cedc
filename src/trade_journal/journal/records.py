"""Persistence boundary: raw store records <-> Position snapshots.

The hosted store has accumulated several spellings for the same field
over time (``pnl_total_usd`` vs ``pnl_usd``, ``position_size`` vs
``position_size_usd``...) and keeps audit trails as JSON strings.
All of that is normalised here so the ledger and analytics only ever
see one canonical :class:`Position` schema.

Loading is failure-isolated: one record with an unparsable timestamp
or an impossible price is rejected and logged, the rest load.

Usage::

    positions, rejected = positions_from_records(store.list_trades())
    record = position_to_record(ledger.close(positions[0], price=110))
    store.replace(record["id"], record)   # whole snapshot, atomically
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from pydantic import ValidationError

from trade_journal.core.enums import PositionStatus
from trade_journal.core.errors import InvalidTimestamp, JournalError

from .ledger import risk_basis
from .position import Position
from .risk import directional_pnl

logger = logging.getLogger(__name__)

# legacy name -> canonical name; first match wins when both are present
LEGACY_ALIASES: dict[str, str] = {
    "pnl_total_usd": "pnl_usd",
    "position_size": "position_size_usd",
    "close_price_final": "close_price",
    "stop_price_current": "stop_price",
    "balance_entry": "account_balance_at_entry",
    "date": "date_open",
    "pnl_percent_of_balance": "pnl_percent",
    "partials": "partial_closes",
    "adds_history": "adds",
    "coin": "symbol",
    "strategy_tag": "strategy",
    "actual_duration_minutes": "duration_minutes",
}

_JSON_FIELDS = ("action_history", "adds", "partial_closes", "tags")

_DIRECTIONS = {"long": "Long", "short": "Short"}


@dataclass(frozen=True)
class RejectedRecord:
    """A record that could not be turned into a Position."""

    record_id: Any
    reason: str


class InvalidRecord(JournalError):
    """A raw record cannot be mapped onto the Position schema."""


def _decode_json(value: Any, field: str) -> Any:
    if not isinstance(value, str):
        return value
    if field == "tags" and not value.lstrip().startswith("["):
        return [t.strip() for t in value.split(",") if t.strip()]
    if not value.strip():
        return []
    try:
        return json.loads(value)
    except json.JSONDecodeError as exc:
        raise InvalidRecord(f"{field} is not valid JSON: {exc.msg}") from exc


def normalise_record(
    record: Mapping[str, Any],
    *,
    default_balance: float | None = None,
) -> dict[str, Any]:
    """Apply alias migration and JSON decoding; no validation.

    *default_balance* fills ``account_balance_at_entry`` for records
    created before the balance snapshot existed.
    """
    data: dict[str, Any] = {}
    for key, value in record.items():
        canonical = LEGACY_ALIASES.get(key, key)
        # A canonical key present in the record takes precedence over its alias
        if canonical != key and canonical in record and record[canonical] not in (None, ""):
            continue
        if canonical in data and data[canonical] not in (None, ""):
            continue
        data[canonical] = value

    for field in _JSON_FIELDS:
        if field in data:
            decoded = _decode_json(data[field], field)
            data[field] = decoded if decoded is not None else []

    direction = data.get("direction")
    if isinstance(direction, str):
        data["direction"] = _DIRECTIONS.get(direction.strip().lower(), direction)

    if isinstance(data.get("status"), str):
        data["status"] = data["status"].upper()
    # A close price is the authoritative "closed" marker in stored data
    if data.get("close_price") not in (None, "", 0):
        data["status"] = PositionStatus.CLOSED.value
    elif "status" not in data or data.get("status") not in ("OPEN", "CLOSED"):
        data["status"] = PositionStatus.OPEN.value

    for key in ("stop_price", "take_price", "close_price"):
        if data.get(key) in ("", 0):
            data[key] = None
    if not data.get("account_balance_at_entry") and default_balance:
        data["account_balance_at_entry"] = default_balance
    # Older rows never tracked the high-water mark; max risk >= live risk
    live_risk = data.get("risk_usd")
    if isinstance(live_risk, (int, float)) and live_risk > (data.get("max_risk_usd") or 0):
        data["max_risk_usd"] = live_risk
    return data


def position_from_record(
    record: Mapping[str, Any],
    *,
    default_balance: float | None = None,
) -> Position:
    """Build a :class:`Position` from a raw store record.

    Raises:
        InvalidRecord: when the record fails validation.
        InvalidTimestamp: when ``date_open`` / ``date_close`` is unparsable.
    """
    data = normalise_record(record, default_balance=default_balance)
    try:
        position = Position.model_validate(data)
    except ValidationError as exc:
        for err in exc.errors():
            loc = err.get("loc") or ()
            if loc and loc[0] in ("date_open", "date_close"):
                raise InvalidTimestamp(data.get(loc[0]), err.get("msg", "")) from exc
        raise InvalidRecord(str(exc)) from exc
    return _backfill_close(position)


def _backfill_close(position: Position) -> Position:
    """Derive pnl / R for closed rows stored before those fields existed."""
    if not position.is_closed or position.close_price is None:
        return position
    update: dict[str, Any] = {}
    pnl = position.pnl_usd
    if pnl is None:
        pnl = position.realized_pnl_usd + directional_pnl(
            position.entry_price,
            position.close_price,
            position.position_size_usd,
            position.direction,
        )
        update["pnl_usd"] = pnl
        update["pnl_percent"] = pnl / position.account_balance_at_entry * 100.0
    if position.r_multiple is None:
        basis, degenerate = risk_basis(position)
        update["r_multiple"] = pnl / basis
        update["r_multiple_degenerate"] = degenerate
    return position.model_copy(update=update) if update else position


def positions_from_records(
    records: Iterable[Mapping[str, Any]],
    *,
    default_balance: float | None = None,
) -> tuple[list[Position], list[RejectedRecord]]:
    """Load many records, isolating failures per record."""
    positions: list[Position] = []
    rejected: list[RejectedRecord] = []
    for record in records:
        try:
            positions.append(
                position_from_record(record, default_balance=default_balance)
            )
        except (InvalidRecord, InvalidTimestamp) as exc:
            rid = record.get("id")
            logger.warning("Excluding record %s: %s", rid, exc)
            rejected.append(RejectedRecord(record_id=rid, reason=str(exc)))
    if rejected:
        logger.warning(
            "Loaded %d positions, excluded %d invalid records",
            len(positions),
            len(rejected),
        )
    return positions, rejected


def position_to_record(position: Position) -> dict[str, Any]:
    """JSON-compatible snapshot for atomic persistence."""
    return position.model_dump(mode="json")
