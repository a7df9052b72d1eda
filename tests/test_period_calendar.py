"""Tests for the semi-monthly period calendar."""

from datetime import date, datetime, timezone

import pytest

from payroll_reconciler.calculators.period_calendar import (
    CalendarConfig,
    current_period,
    next_period,
    period_for_pay_date,
    period_for_work_date,
    period_from_id,
    previous_period,
)
from payroll_reconciler.errors import InvalidPayDateError


class TestPeriodForWorkDate:
    """Work dates map to the period that pays them."""

    def test_first_half_paid_on_split_day(self):
        period = period_for_work_date(date(2024, 1, 3))

        assert period.period_id == "2024-01-15"
        assert period.work_period_start == date(2024, 1, 1)
        assert period.work_period_end == date(2024, 1, 16)
        assert period.pay_date == date(2024, 1, 15)

    def test_split_day_itself_is_first_half(self):
        assert period_for_work_date(date(2024, 3, 15)).period_id == "2024-03-15"

    def test_second_half_paid_first_of_next_month(self):
        period = period_for_work_date(date(2024, 1, 16))

        assert period.period_id == "2024-02-01"
        assert period.work_period_start == date(2024, 1, 16)
        assert period.work_period_end == date(2024, 2, 1)
        assert period.last_work_day == date(2024, 1, 31)

    def test_december_rolls_into_next_year(self):
        period = period_for_work_date(date(2023, 12, 31))

        assert period.period_id == "2024-01-01"
        assert period.work_period_start == date(2023, 12, 16)

    def test_leap_february(self):
        period = period_for_work_date(date(2024, 2, 29))

        assert period.period_id == "2024-03-01"
        assert period.last_work_day == date(2024, 2, 29)

    def test_accepts_datetimes(self):
        moment = datetime(2024, 5, 20, 23, 30, tzinfo=timezone.utc)
        assert period_for_work_date(moment).period_id == "2024-06-01"

    def test_range_is_half_open(self):
        period = period_for_work_date(date(2024, 1, 10))

        assert period.contains(date(2024, 1, 15))
        assert not period.contains(date(2024, 1, 16))
        assert not period.contains(date(2023, 12, 31))

    def test_custom_split_day(self):
        config = CalendarConfig(split_day=20)
        period = period_for_work_date(date(2024, 4, 18), config)

        assert period.period_id == "2024-04-20"
        assert period_for_work_date(date(2024, 4, 21), config).period_id == "2024-05-01"

    @pytest.mark.parametrize("split_day", [0, 1, 28, 31])
    def test_split_day_out_of_range_rejected(self, split_day):
        with pytest.raises(ValueError):
            CalendarConfig(split_day=split_day)


class TestPeriodForPayDate:
    """Pay dates map back to their period."""

    def test_split_day(self):
        assert period_for_pay_date(date(2024, 1, 15)).work_period_start == date(2024, 1, 1)

    def test_first_of_month(self):
        period = period_for_pay_date(date(2024, 3, 1))

        assert period.work_period_start == date(2024, 2, 16)
        assert period.work_period_end == date(2024, 3, 1)

    def test_first_of_january(self):
        assert period_for_pay_date(date(2024, 1, 1)).work_period_start == date(2023, 12, 16)

    def test_other_days_rejected(self):
        with pytest.raises(InvalidPayDateError) as exc_info:
            period_for_pay_date(date(2024, 1, 10))

        assert exc_info.value.split_day == 15

    def test_round_trip_through_id(self):
        for work_date in (date(2024, 1, 1), date(2024, 1, 31), date(2024, 7, 15)):
            period = period_for_work_date(work_date)
            assert period_from_id(period.period_id) == period

    def test_malformed_id_rejected(self):
        with pytest.raises(InvalidPayDateError):
            period_from_id("not-a-date")


class TestNeighbours:
    def test_previous_and_next(self):
        period = period_from_id("2024-02-01")

        assert previous_period(period).period_id == "2024-01-15"
        assert next_period(period).period_id == "2024-02-15"

    def test_current_period_uses_reference_date(self):
        assert current_period(date(2024, 8, 30)).period_id == "2024-09-01"
