"""Pytest configuration for background-service tests."""

import signal

import pytest

from background_service.management.signal_relay import FORWARDED_SIGNALS, TERMINATION_SIGNAL
from tests.services import mock_services


@pytest.fixture
def events():
    """Shared lifecycle event log of the mock services, cleared for each test."""
    mock_services.EVENTS.clear()
    yield mock_services.EVENTS
    mock_services.EVENTS.clear()


@pytest.fixture
def exits():
    """Recorded exit statuses, used in place of sys.exit."""
    return []


@pytest.fixture(autouse=True)
def restore_signal_dispositions():
    """Teardown leaves monitored signals ignored; put the test process back as it was."""
    saved = {signum: signal.getsignal(signum) for signum in (TERMINATION_SIGNAL, *FORWARDED_SIGNALS)}
    yield
    for signum, handler in saved.items():
        if handler is not None:
            signal.signal(signum, handler)
