import os

import pytest

from clients.embedding_provider import get_default_cache

pytest_plugins = ["tests.fixtures.agents"]


def pytest_collection_modifyitems(config, items):
    """Model-backed tests download weights; run them only when asked."""
    if os.environ.get("RUN_MODEL_TESTS") == "1":
        return
    skip_model = pytest.mark.skip(reason="set RUN_MODEL_TESTS=1 to run real model tests")
    for item in items:
        if item.get_closest_marker("model") is not None:
            item.add_marker(skip_model)


@pytest.fixture(autouse=True)
def clear_shared_embedding_cache():
    """Providers share one process-wide cache; isolate it per test."""
    get_default_cache().clear()
    yield
    get_default_cache().clear()
