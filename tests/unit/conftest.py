"""Unit test conftest: no Redis, no DB, no I/O."""
import pytest


@pytest.fixture(autouse=True)
def _no_io_in_unit_tests(request):
    """Guard: unit tests must not use store or DB fixtures."""
    for name in ("fake_redis", "db_session_factory", "app_client"):
        if name in request.fixturenames:
            pytest.fail(f"Unit tests must not use {name}. Use @pytest.mark.integration.")
