"""
Project-wide pytest fixtures.

Fakes live in tests.common.
"""
from __future__ import annotations

import pytest
from solders.keypair import Keypair

from tests.common import FakeNotifier, FakePool, FakeSleep


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def pool() -> FakePool:
    return FakePool()


@pytest.fixture
def wallets():
    """Five throwaway bot wallets."""
    return [Keypair() for _ in range(5)]
