"""Shared fixtures for supple-sql tests."""

from __future__ import annotations

import pytest

from supple_sql import pools


@pytest.fixture(autouse=True)
def _clear_pools():
    """Every test starts without a default pool."""
    pools.clear()
    yield
    pools.clear()
