from datetime import datetime, timezone

import pytest


@pytest.fixture
def trip_start():
    return datetime(2026, 5, 9, 7, 0, tzinfo=timezone.utc)
