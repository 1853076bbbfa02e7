import pytest

from reftest import bootstrap


@pytest.fixture(scope="session", autouse=True)
def setup_reftest_adapters() -> None:
    """Register built-in render adapters once for the entire test session."""

    bootstrap()
