"""
assetchain/commands/base.py

Shared plumbing for the per-asset command handlers.

Every write command follows the same shape: validate required fields, build
one Transaction, submit it through the LedgerGateway and return a
CommandResult carrying the transaction id and, for creations, the id of the
new object taken from the ledger's change-set.
"""

from __future__ import annotations

import logging
import time
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from assetchain.errors import AssetChainError, InvalidParameter, MissingField, NotFound
from assetchain.ledger.bcs import normalize_address
from assetchain.ledger.gateway import LedgerGateway
from assetchain.ledger.transaction import Transaction
from assetchain.types import CommandResult

LOGGER = logging.getLogger("assetchain.commands")

Clock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def require_fields(values: Mapping[str, Any]) -> None:
    """Raise MissingField naming every value that is None or blank."""
    missing = [
        name
        for name, value in values.items()
        if value is None or (isinstance(value, str) and not value.strip())
    ]
    if missing:
        raise MissingField(missing)


def as_u64(name: str, value: Any, *, positive: bool = False) -> int:
    if isinstance(value, bool):
        raise InvalidParameter(f"{name} must be an integer, got {value!r}")
    if isinstance(value, str):
        value = value.strip()
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidParameter(f"{name} must be an integer, got {value!r}") from exc
    if isinstance(value, float) and value != number:
        raise InvalidParameter(f"{name} must be a whole number, got {value!r}")
    if number < 0 or (positive and number == 0):
        raise InvalidParameter(f"{name} must be {'> 0' if positive else '>= 0'}, got {number}")
    return number


def as_timestamp_ms(name: str, value: Any) -> int:
    """Accept epoch milliseconds or an ISO-8601 date/datetime string."""
    if isinstance(value, str) and not value.strip().isdigit():
        raw = value.strip()
        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            try:
                d = date.fromisoformat(raw)
            except ValueError as exc:
                raise InvalidParameter(f"{name} must be epoch millis or an ISO date, got {value!r}") from exc
            parsed = datetime(d.year, d.month, d.day)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)
    return as_u64(name, value)


def same_id(a: Any, b: Any) -> bool:
    if not a or not b:
        return False
    try:
        return normalize_address(str(a)) == normalize_address(str(b))
    except InvalidParameter:
        return False


def object_fields(obj: Mapping[str, Any]) -> Dict[str, Any]:
    content = obj.get("content") or {}
    fields = content.get("fields") if isinstance(content, dict) else None
    return dict(fields or {})


# ---------------------------------------------------------------------------
# Base handler
# ---------------------------------------------------------------------------


class AssetCommands:
    """Base class binding a handler to the gateway and contract package."""

    module: str = ""

    def __init__(self, gateway: LedgerGateway, package_id: str, *, clock: Clock = now_ms) -> None:
        self._gateway = gateway
        self._package_id = package_id
        self._clock = clock

    def _target(self, function: str, module: Optional[str] = None) -> str:
        return f"{self._package_id}::{module or self.module}::{function}"

    def _submit(self, tx: Transaction, action: str, *, created_struct: Optional[str] = None) -> CommandResult:
        result = self._gateway.submit(tx)
        created_id: Optional[str] = None
        if created_struct is not None:
            created_id = result.created_object_id(f"::{created_struct}")
            if created_id is None:
                raise AssetChainError(
                    f"Transaction {result.transaction_id} did not create a {created_struct}",
                    details={"transactionId": result.transaction_id},
                )
        LOGGER.info("%s: tx=%s created=%s", action, result.transaction_id, created_id or "-")
        return CommandResult(transaction_id=result.transaction_id, created_object_id=created_id)

    def _get(self, object_id: str, struct: str, label: str) -> Dict[str, Any]:
        require_fields({"id": object_id})
        data = self._gateway.get_object(object_id)
        object_type = str(data.get("type") or "")
        if object_type and f"::{struct}" not in object_type:
            raise NotFound(f"{label} {object_id} not found", details={"objectId": object_id})
        return data

    def _owned(self, owner: Optional[str], struct: str) -> List[Dict[str, Any]]:
        """Objects of type ``<package>::<struct>`` held by ``owner`` (default: the service address)."""
        return self._gateway.get_owned_objects(owner or self._gateway.address, f"{self._package_id}::{struct}")
