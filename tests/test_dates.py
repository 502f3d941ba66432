from datetime import date

import pytest

from oficina.core import dates
from oficina.core.errors import ValidationError


def test_parse_day_keeps_calendar_date():
    assert dates.parse_day("2024-03-10") == date(2024, 3, 10)


def test_parse_day_ignores_time_suffix():
    # meia-noite UTC não pode virar o dia anterior
    assert dates.parse_day("2024-03-10T00:00:00.000Z") == date(2024, 3, 10)
    assert dates.parse_day("2024-03-10T23:59:59-03:00") == date(2024, 3, 10)


@pytest.mark.parametrize("raw", ["", "10/03/2024", "2024-3-10", "2024-02-30", None, 20240310])
def test_parse_day_rejects_malformed(raw):
    with pytest.raises(ValidationError) as exc:
        dates.parse_day(raw, "date")
    assert "date" in exc.value.fields


def test_parse_optional_day_blank_is_none():
    assert dates.parse_optional_day("") is None
    assert dates.parse_optional_day("   ") is None
    assert dates.parse_optional_day(None) is None


def test_parse_month():
    assert dates.parse_month("2024-02") == date(2024, 2, 1)
    with pytest.raises(ValidationError):
        dates.parse_month("2024-13")
    with pytest.raises(ValidationError):
        dates.parse_month("2024-02-01")


@pytest.mark.parametrize("base,months,expected", [
    (date(2024, 1, 31), 1, date(2024, 2, 29)),
    (date(2023, 1, 31), 1, date(2023, 2, 28)),
    (date(2024, 1, 31), 2, date(2024, 3, 31)),
    (date(2024, 3, 31), 1, date(2024, 4, 30)),
    (date(2024, 11, 15), 3, date(2025, 2, 15)),
])
def test_add_months_clips_to_month_end(base, months, expected):
    assert dates.add_months(base, months) == expected


def test_month_end():
    assert dates.month_end(date(2024, 2, 1)) == date(2024, 2, 29)
    assert dates.month_end(date(2024, 12, 1)) == date(2024, 12, 31)


def test_period_keys_cover_whole_range():
    assert dates.month_keys(date(2023, 11, 1), date(2024, 2, 1)) == ["2023-11", "2023-12", "2024-01", "2024-02"]
    assert dates.day_keys(date(2024, 2, 28), date(2024, 3, 1)) == ["2024-02-28", "2024-02-29", "2024-03-01"]


# ----------------------------
# Limites do calendário
# ----------------------------
def test_parse_month_rejects_year_zero():
    with pytest.raises(ValidationError) as exc:
        dates.parse_month("0000-01", "dateFrom")
    assert "dateFrom" in exc.value.fields


def test_month_end_of_last_supported_month():
    assert dates.month_end(date(9999, 12, 1)) == date(9999, 12, 31)
    assert dates.month_keys(date(9999, 11, 1), date(9999, 12, 1)) == ["9999-11", "9999-12"]


def test_day_keys_stop_at_last_supported_day():
    assert dates.day_keys(date(9999, 12, 30), date(9999, 12, 31)) == ["9999-12-30", "9999-12-31"]


def test_add_months_past_year_9999_is_a_validation_error():
    with pytest.raises(ValidationError) as exc:
        dates.add_months(date(9999, 6, 15), 11, "firstDueDate")
    assert "firstDueDate" in exc.value.fields


def test_months_between_counts_both_ends():
    assert dates.months_between(date(2023, 11, 1), date(2024, 2, 1)) == 4
    assert dates.months_between(date(1, 1, 1), date(9999, 12, 1)) == 9999 * 12
