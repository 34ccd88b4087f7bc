# assetchain/__init__.py
"""
AssetChain: ledger-backed asset tracking (top-level package marker).

Aircraft, parts, buildings and structural columns live as objects on the Sui
ledger; this package assembles the transactions that mutate them, reads their
state back, and simulates sensor telemetry for live dashboards.
"""

from __future__ import annotations

__all__ = [
    "__version__",
]

__version__ = "0.1.0"
