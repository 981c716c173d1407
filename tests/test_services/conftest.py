"""Service-layer test fixtures."""
from __future__ import annotations

import pytest


@pytest.fixture
def store_errors():
    """Collects errors reported through the store's error observer."""
    return []
