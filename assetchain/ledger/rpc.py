"""
assetchain/ledger/rpc.py

Thin JSON-RPC 2.0 client for a Sui fullnode, built on requests.

- One attempt per call; retry policy belongs to callers (and the gateway
  deliberately has none).
- Network errors, timeouts, HTTP 429/5xx and undecodable bodies surface as
  TransportFailure.
- JSON-RPC error objects surface as TransactionRejected carrying the node's
  code and message.
"""

from __future__ import annotations

import itertools
import logging
import time
from typing import Any, Dict, List, Optional

import requests
from requests import Response, Session

from assetchain.errors import TransactionRejected, TransportFailure

LOGGER = logging.getLogger("assetchain.ledger.rpc")

_RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


class JsonRpcClient:
    def __init__(self, url: str, *, timeout_s: float = 15.0, session: Optional[Session] = None) -> None:
        self._url = url
        self._timeout_s = float(timeout_s)
        self._session: Session = session or requests.Session()
        self._ids = itertools.count(1)

    @property
    def url(self) -> str:
        return self._url

    def call(self, method: str, params: List[Any]) -> Any:
        payload: Dict[str, Any] = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": params,
        }
        t0 = time.monotonic()
        try:
            resp: Response = self._session.post(self._url, json=payload, timeout=self._timeout_s)
        except requests.RequestException as exc:
            LOGGER.error("RPC %s to %s failed: %s", method, self._url, exc)
            raise TransportFailure(f"Ledger node unreachable: {exc}") from exc

        if resp.status_code in _RETRYABLE_STATUS:
            raise TransportFailure(
                f"Ledger node returned HTTP {resp.status_code} for {method}",
                details={"status": resp.status_code},
            )
        if resp.status_code != 200:
            raise TransactionRejected(
                f"Ledger node refused {method} (HTTP {resp.status_code}): {resp.text[:256]}",
                details={"status": resp.status_code},
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise TransportFailure(f"Undecodable response from ledger node for {method}") from exc
        if not isinstance(body, dict):
            raise TransportFailure(f"Unexpected response shape from ledger node for {method}")

        LOGGER.debug("RPC %s completed in %.3fs", method, time.monotonic() - t0)

        error = body.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise TransactionRejected(
                f"Ledger rejected {method}: {message}",
                details={"code": code, "method": method},
            )
        return body.get("result")
