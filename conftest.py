"""Shared pytest fixtures for Linkdrop."""

import pytest


@pytest.fixture(autouse=True)
def _fresh_object_store():
    """Give every test an empty configured object store."""
    from uploads.storage import reset_object_store

    reset_object_store()
    yield
    reset_object_store()
