"""
assetchain/ledger/gateway.py

LedgerGateway: the single choke point for every ledger read and write.

Writes
------
submit(tx) resolves the objects the transaction touches, leases a gas coin,
serializes and signs the TransactionData with the service credential, and
executes it with WaitForLocalExecution. A non-success effects status raises
TransactionRejected. Nothing is retried here.

Owned objects a transaction touches are leased for the whole submission, so
two submissions never build against the same object version; a busy object
is waited on for up to ``object_wait_s``. Shared objects are released as soon
as they are resolved. Gas coins are leased the same way, and when every coin
is busy a submission waits up to ``gas_wait_s`` for one. A gas coin that
vanishes between listing and execution surfaces as TransportFailure, never
NotFound.

Reads
-----
get_object, get_owned_objects and query_events wrap the matching fullnode
queries. A missing object raises NotFound.
"""

from __future__ import annotations

import base64
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from assetchain.errors import NotFound, TransactionRejected, TransportFailure
from assetchain.ledger.keys import SigningCredential
from assetchain.ledger.rpc import JsonRpcClient
from assetchain.ledger.transaction import (
    Transaction,
    object_ref,
    owned_object_input,
    serialize_transaction,
    shared_object_input,
)

LOGGER = logging.getLogger("assetchain.ledger.gateway")

SUI_COIN_TYPE = "0x2::sui::SUI"
_MISSING_OBJECT_CODES = frozenset({"notExists", "deleted", "dynamicFieldNotFound"})


@dataclass(frozen=True)
class SubmitResult:
    transaction_id: str
    object_changes: Tuple[Dict[str, Any], ...] = ()
    events: Tuple[Dict[str, Any], ...] = ()
    effects: Optional[Dict[str, Any]] = None

    def created_object_id(self, struct_suffix: str) -> Optional[str]:
        """Id of the first created object whose type contains ``struct_suffix``."""
        for change in self.object_changes:
            if change.get("type") == "created" and struct_suffix in str(change.get("objectType", "")):
                object_id = change.get("objectId")
                return str(object_id) if object_id else None
        return None


class _Leases:
    """Ids (gas coins or owned inputs) reserved by in-flight submissions."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._leased: Set[str] = set()

    def try_lease(self, candidates: Sequence[str]) -> Optional[str]:
        with self._cond:
            for item in candidates:
                if item not in self._leased:
                    self._leased.add(item)
                    return item
        return None

    def lease_all(self, items: Sequence[str], timeout: float) -> bool:
        """Reserve every id at once, waiting up to ``timeout`` for busy ones."""
        deadline = time.monotonic() + timeout
        with self._cond:
            while any(item in self._leased for item in items):
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._cond.wait(remaining)
            self._leased.update(items)
        return True

    def wait(self, timeout: float) -> None:
        with self._cond:
            self._cond.wait(timeout)

    def release(self, *items: str) -> None:
        with self._cond:
            self._leased.difference_update(items)
            self._cond.notify_all()

    @property
    def in_use(self) -> int:
        with self._cond:
            return len(self._leased)


class LedgerGateway:
    def __init__(
        self,
        rpc: JsonRpcClient,
        credential: SigningCredential,
        *,
        gas_budget: int = 50_000_000,
        gas_wait_s: float = 10.0,
        object_wait_s: float = 30.0,
    ) -> None:
        self._rpc = rpc
        self._credential = credential
        self._gas_budget = int(gas_budget)
        self._gas_wait_s = float(gas_wait_s)
        self._object_wait_s = float(object_wait_s)
        self._gas = _Leases()
        self._objects = _Leases()

    @property
    def address(self) -> str:
        """Ledger address of the service credential (safe to expose)."""
        return self._credential.address

    @property
    def gas_coins_in_use(self) -> int:
        return self._gas.in_use

    @property
    def objects_in_use(self) -> int:
        return self._objects.in_use

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def submit(self, tx: Transaction) -> SubmitResult:
        object_ids = tx.object_ids()
        if not self._objects.lease_all(object_ids, self._object_wait_s):
            raise TransportFailure(
                "Objects are busy with in-flight transactions",
                details={"objectIds": object_ids},
            )
        held = list(object_ids)
        try:
            object_inputs: Dict[str, bytes] = {}
            for object_id in object_ids:
                encoded, owned = self._object_input(object_id)
                object_inputs[object_id] = encoded
                if not owned:
                    # consensus orders shared objects; only owned versions can collide
                    self._objects.release(object_id)
                    held.remove(object_id)
            gas_price = int(self._rpc.call("suix_getReferenceGasPrice", []))
            result = self._execute(tx, object_inputs, gas_price)
        finally:
            self._objects.release(*held)

        return self._parse_execution(result, tx)

    def _execute(self, tx: Transaction, object_inputs: Dict[str, bytes], gas_price: int) -> Any:
        coin_id = self._lease_gas_coin()
        try:
            try:
                gas = self.get_object(coin_id)
            except NotFound as exc:
                raise TransportFailure(
                    f"Gas coin {coin_id} disappeared before execution",
                    details={"coinId": coin_id},
                ) from exc
            tx_bytes = serialize_transaction(
                tx,
                sender=self.address,
                object_inputs=object_inputs,
                gas_payment=[object_ref(coin_id, int(gas["version"]), str(gas["digest"]))],
                gas_price=gas_price,
                gas_budget=self._gas_budget,
            )
            signature = self._credential.sign_transaction(tx_bytes)
            return self._rpc.call(
                "sui_executeTransactionBlock",
                [
                    base64.b64encode(tx_bytes).decode("ascii"),
                    [signature],
                    {"showEffects": True, "showObjectChanges": True, "showEvents": True},
                    "WaitForLocalExecution",
                ],
            )
        finally:
            self._gas.release(coin_id)


    def _parse_execution(self, result: Any, tx: Transaction) -> SubmitResult:
        if not isinstance(result, dict):
            raise TransportFailure("Ledger returned no execution result")
        digest = str(result.get("digest") or "")
        effects = result.get("effects") or {}
        status = (effects.get("status") or {}) if isinstance(effects, dict) else {}
        if status.get("status") != "success":
            error = status.get("error") or "unknown failure"
            LOGGER.error("Transaction %s failed: %s", digest or "<no digest>", error)
            raise TransactionRejected(
                f"Transaction failed: {error}",
                details={"transactionId": digest, "targets": [c.target for c in tx.calls]},
            )

        LOGGER.info("Transaction %s executed (%d calls)", digest, len(tx))
        return SubmitResult(
            transaction_id=digest,
            object_changes=tuple(result.get("objectChanges") or ()),
            events=tuple(result.get("events") or ()),
            effects=effects,
        )

    def _object_input(self, object_id: str) -> Tuple[bytes, bool]:
        data = self.get_object(object_id)
        owner = data.get("owner")
        if isinstance(owner, dict) and "Shared" in owner:
            shared = owner["Shared"] or {}
            return shared_object_input(object_id, int(shared.get("initial_shared_version", 0))), False
        return owned_object_input(object_id, int(data["version"]), str(data["digest"])), True

    def _lease_gas_coin(self) -> str:
        deadline = time.monotonic() + self._gas_wait_s
        while True:
            coins = self._rpc.call("suix_getCoins", [self.address, SUI_COIN_TYPE, None, 50]) or {}
            candidates = [
                str(c["coinObjectId"])
                for c in sorted(coins.get("data") or [], key=lambda c: int(c.get("balance", 0)), reverse=True)
                if int(c.get("balance", 0)) >= self._gas_budget
            ]
            if not candidates:
                raise TransactionRejected(
                    f"No gas coin with balance >= {self._gas_budget} owned by {self.address}"
                )
            coin_id = self._gas.try_lease(candidates)
            if coin_id is not None:
                return coin_id
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TransportFailure("All gas coins are busy with in-flight transactions")
            self._gas.wait(min(remaining, 1.0))

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get_object(self, object_id: str) -> Dict[str, Any]:
        result = self._rpc.call(
            "sui_getObject",
            [object_id, {"showContent": True, "showType": True, "showOwner": True}],
        ) or {}
        error = result.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else str(error)
            if code in _MISSING_OBJECT_CODES:
                raise NotFound(f"Object {object_id} not found", details={"objectId": object_id})
            raise TransactionRejected(f"Object query failed for {object_id}: {code}")
        data = result.get("data")
        if not data:
            raise NotFound(f"Object {object_id} not found", details={"objectId": object_id})
        return data

    def get_owned_objects(
        self,
        owner: str,
        type_filter: Optional[str] = None,
        *,
        limit: int = 200,
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"options": {"showContent": True, "showType": True}}
        if type_filter:
            query["filter"] = {"StructType": type_filter}

        out: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while len(out) < limit:
            page = self._rpc.call("suix_getOwnedObjects", [owner, query, cursor, min(50, limit - len(out))]) or {}
            for item in page.get("data") or []:
                data = item.get("data") if isinstance(item, dict) else None
                if data:
                    out.append(data)
            cursor = page.get("nextCursor")
            if not page.get("hasNextPage") or not cursor:
                break
        return out

    def query_events(self, event_type: str, *, limit: int = 100, descending: bool = True) -> List[Dict[str, Any]]:
        page = self._rpc.call("suix_queryEvents", [{"MoveEventType": event_type}, None, int(limit), bool(descending)]) or {}
        return list(page.get("data") or [])
