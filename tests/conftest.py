"""Shared fixtures for the PickIT test suite."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from app import create_app
from config import TestingConfig
from models.profile import Role
from models.shop import RateTable, Shop
from services.job_service import JobLifecycleMachine


SHOP_ID = "SHOP-AB12CD"


class StepClock:
    """Deterministic clock: each call is one minute after the previous one."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        current = self.now
        self.now = self.now + timedelta(minutes=1)
        return current


@pytest.fixture
def rates():
    """Default campus rates."""
    return RateTable(bw_ss=2, bw_ds=3, color_ss=10, color_ds=15)


@pytest.fixture
def shop(rates):
    """A configured shop accepting jobs."""
    return Shop(
        shop_id=SHOP_ID,
        rates=rates,
        name="Campus Fast-Print Hub",
        location="Central Library, Ground Floor",
        printer_count=1,
        ppm=20,
        is_configured=True,
    )


@pytest.fixture
def dispatcher():
    """Mock dispatcher recording every dispatched transition."""
    return MagicMock()


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def machine(shop, dispatcher, clock):
    return JobLifecycleMachine(shop, dispatcher=dispatcher, clock=clock)


@pytest.fixture
def submit(machine):
    """Submit the standard 15-page mono duplex job."""

    def _submit(file_name="notes.pdf", page_count=15, is_color=False, is_double_sided=True):
        return machine.submit(
            Role.CUSTOMER, SHOP_ID, file_name, page_count,
            is_color=is_color, is_double_sided=is_double_sided,
        )

    return _submit


@pytest.fixture
def app():
    """Flask app built from TestingConfig (memory store, no delays, no network)."""
    app = create_app(TestingConfig)
    yield app
    app.config["PAYMENT_SERVICE"].shutdown(timeout_per_thread=1.0)


@pytest.fixture
def client(app):
    return app.test_client()
