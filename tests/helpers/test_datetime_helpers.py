# -*- coding: utf-8 -*-
from datetime import datetime, timedelta, timezone

import pytest

from utils.datetime_helpers import datetime_to_iso, utc_now


def test_utc_now_is_naive():
    now = utc_now()

    assert now.tzinfo is None
    assert abs((datetime.now(timezone.utc).replace(tzinfo=None) - now).total_seconds()) < 5


def test_datetime_to_iso_from_aware_non_utc():
    paris_tz = timezone(timedelta(hours=2))
    aware_dt = datetime(2025, 10, 20, 18, 0, 0, tzinfo=paris_tz)

    assert datetime_to_iso(aware_dt) == "2025-10-20T16:00:00+00:00"


@pytest.mark.parametrize(
    "dt, expected",
    [
        (datetime(2025, 10, 20, 16, 0, 0), "2025-10-20T16:00:00+00:00"),
        (
            datetime(2025, 10, 20, 16, 0, 0, tzinfo=timezone.utc),
            "2025-10-20T16:00:00+00:00",
        ),
        (None, None),
    ],
)
def test_datetime_to_iso(dt, expected):
    assert datetime_to_iso(dt) == expected
