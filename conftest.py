from __future__ import annotations

import threading
from collections import deque
from typing import Any, Deque, Dict, List, Optional

import pytest

from assetchain.errors import NotFound
from assetchain.ledger.gateway import SubmitResult
from assetchain.ledger.transaction import Transaction

PACKAGE_ID = "0x" + "9" * 64
SERVICE_ADDRESS = "0x" + "ab" * 32


class FakeGateway:
    """
    In-memory stand-in for LedgerGateway.

    - submit() records the transaction and returns tx1, tx2, ... unless an
      exception was queued with fail_next().
    - objects / owned / events are plain containers the test fills in.
    """

    address = SERVICE_ADDRESS

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.submitted: List[Transaction] = []
        self.object_changes: List[Dict[str, Any]] = []
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.owned: List[Dict[str, Any]] = []
        self.owned_queries: List[tuple] = []
        self.events: Dict[str, List[Dict[str, Any]]] = {}
        self.gas_coins_in_use = 0
        self.objects_in_use = 0
        self._failures: Deque[Exception] = deque()
        self._always: Optional[Exception] = None

    def fail_next(self, *errors: Exception) -> None:
        self._failures.extend(errors)

    def fail_always(self, error: Optional[Exception]) -> None:
        self._always = error

    def creates(self, object_type: str, object_id: str) -> None:
        self.object_changes = [{"type": "created", "objectType": object_type, "objectId": object_id}]

    def submit(self, tx: Transaction) -> SubmitResult:
        with self._lock:
            self.submitted.append(tx)
            if self._failures:
                raise self._failures.popleft()
            if self._always is not None:
                raise self._always
            n = len(self.submitted)
        return SubmitResult(transaction_id=f"tx{n}", object_changes=tuple(self.object_changes))

    def get_object(self, object_id: str) -> Dict[str, Any]:
        try:
            return self.objects[object_id]
        except KeyError:
            raise NotFound(f"Object {object_id} not found") from None

    def get_owned_objects(self, owner: str, type_filter: Optional[str] = None, *, limit: int = 200) -> List[Dict[str, Any]]:
        self.owned_queries.append((owner, type_filter))
        return [o for o in self.owned if type_filter is None or o.get("type") == type_filter][:limit]

    def query_events(self, event_type: str, *, limit: int = 100, descending: bool = True) -> List[Dict[str, Any]]:
        return list(self.events.get(event_type, []))[:limit]


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def package_id() -> str:
    return PACKAGE_ID
