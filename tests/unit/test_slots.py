from datetime import date, datetime, time

import pytest
from pydantic import ValidationError

from booking_engine.core.exceptions import OutOfWindowError
from booking_engine.schemas.scheduling import AvailabilityConfig, Weekday
from booking_engine.services.slots import SlotGenerator, day_slots
from tests.fixtures.scheduling_fixtures import NOW


@pytest.fixture
def generator() -> SlotGenerator:
    return SlotGenerator()


class TestAvailabilityConfig:
    """Test configuration validation at the boundary."""

    def test_lowercase_weekdays_are_accepted(self):
        config = AvailabilityConfig(
            duration_minutes="45", available_days=["Monday", "friday"]
        )
        assert config.duration_minutes == 45
        assert config.available_days == {Weekday.MONDAY, Weekday.FRIDAY}

    def test_rejects_non_numeric_duration(self):
        with pytest.raises(ValidationError):
            AvailabilityConfig(duration_minutes="an hour")

    def test_rejects_zero_duration(self):
        with pytest.raises(ValidationError):
            AvailabilityConfig(duration_minutes=0)

    def test_rejects_negative_buffers(self):
        with pytest.raises(ValidationError):
            AvailabilityConfig(duration_minutes=30, buffer_after_minutes=-5)

    def test_rejects_unknown_weekday(self):
        with pytest.raises(ValidationError):
            AvailabilityConfig(duration_minutes=30, available_days=["caturday"])

    def test_rejects_inverted_working_hours(self):
        with pytest.raises(ValidationError):
            AvailabilityConfig(
                duration_minutes=30, start_time=time(17, 0), end_time=time(9, 0)
            )

    def test_rejects_unknown_timezone(self):
        with pytest.raises(ValidationError):
            AvailabilityConfig(duration_minutes=30, timezone="Mars/Olympus_Mons")

    def test_config_is_immutable(self, mon_wed_config):
        with pytest.raises(ValidationError):
            mon_wed_config.duration_minutes = 15

    def test_to_local_converts_aware_datetimes(self):
        config = AvailabilityConfig(duration_minutes=30, timezone="Europe/Moscow")
        aware = datetime.fromisoformat("2024-01-15T06:00:00+00:00")

        assert config.to_local(aware) == datetime(2024, 1, 15, 9, 0)
        assert config.to_local(datetime(2024, 1, 15, 9, 0)) == datetime(
            2024, 1, 15, 9, 0
        )


class TestSlotGeneration:
    """Test candidate slot generation."""

    def test_mon_wed_example_yields_four_slots(self, generator, mon_wed_config):
        """A week containing one Monday and one Wednesday has four slots."""
        result = generator.generate(
            mon_wed_config, date(2024, 1, 14), date(2024, 1, 21), NOW
        )

        assert result.ok
        assert list(result.value) == [
            datetime(2024, 1, 15, 9, 0),
            datetime(2024, 1, 15, 10, 0),
            datetime(2024, 1, 17, 9, 0),
            datetime(2024, 1, 17, 10, 0),
        ]

    def test_generation_is_deterministic(self, generator, grooming_config):
        """Same config and window give the same sequence, however often consumed."""
        first = generator.generate(
            grooming_config, date(2024, 1, 15), date(2024, 1, 29), NOW
        ).value
        second = generator.generate(
            grooming_config, date(2024, 1, 15), date(2024, 1, 29), NOW
        ).value

        assert list(first) == list(first)
        assert list(first) == list(second)
        assert list(first) == sorted(first)

    @pytest.mark.parametrize(
        "duration,start,end",
        [
            (45, time(9, 0), time(11, 0)),
            (50, time(8, 30), time(17, 0)),
            (25, time(10, 0), time(10, 40)),
            (90, time(9, 0), time(10, 0)),
        ],
    )
    def test_no_partial_trailing_slot(self, generator, duration, start, end):
        config = AvailabilityConfig(
            duration_minutes=duration,
            available_days=["monday"],
            start_time=start,
            end_time=end,
        )
        slots = list(
            generator.generate(config, date(2024, 1, 15), date(2024, 1, 16), NOW).value
        )

        day_end = datetime.combine(date(2024, 1, 15), end)
        assert all(slot + config.duration <= day_end for slot in slots)
        assert len(slots) == (
            (day_end - datetime.combine(date(2024, 1, 15), start)) // config.duration
        )

    def test_empty_available_days_yields_nothing(self, generator):
        config = AvailabilityConfig(duration_minutes=30)
        result = generator.generate(config, date(2024, 1, 15), date(2024, 1, 22), NOW)

        assert result.ok
        assert list(result.value) == []

    def test_equal_start_and_end_yields_nothing(self, generator):
        config = AvailabilityConfig(
            duration_minutes=30,
            available_days=["monday"],
            start_time=time(9, 0),
            end_time=time(9, 0),
        )
        assert list(day_slots(config, date(2024, 1, 15))) == []

    def test_inverted_range_yields_nothing(self, generator, mon_wed_config):
        result = generator.generate(
            mon_wed_config, date(2024, 1, 20), date(2024, 1, 15), NOW
        )

        assert result.ok
        assert list(result.value) == []

    def test_range_before_today_is_out_of_window(self, generator, mon_wed_config):
        result = generator.generate(
            mon_wed_config, date(2024, 1, 8), date(2024, 1, 16), NOW
        )

        assert isinstance(result.error, OutOfWindowError)
        assert result.error.context["earliest_date"] == "2024-01-14"

    def test_range_past_advance_window_is_out_of_window(
        self, generator, mon_wed_config
    ):
        # Default window is 30 days from 2024-01-14
        result = generator.generate(
            mon_wed_config, date(2024, 1, 15), date(2024, 2, 14), NOW
        )

        assert isinstance(result.error, OutOfWindowError)

    def test_range_up_to_window_end_is_allowed(self, generator, mon_wed_config):
        result = generator.generate(
            mon_wed_config, date(2024, 1, 15), date(2024, 2, 13), NOW
        )
        assert result.ok


class TestSlotAlignment:
    """Test slot boundary checks."""

    def test_generated_boundaries_are_aligned(self, generator, grooming_config):
        assert generator.is_aligned(grooming_config, datetime(2024, 1, 15, 9, 0))
        assert generator.is_aligned(grooming_config, datetime(2024, 1, 15, 16, 0))

    def test_off_boundary_start_is_not_aligned(self, generator, grooming_config):
        assert not generator.is_aligned(grooming_config, datetime(2024, 1, 15, 9, 30))

    def test_slot_overrunning_day_is_not_aligned(self, generator, grooming_config):
        assert not generator.is_aligned(grooming_config, datetime(2024, 1, 15, 17, 0))

    def test_unavailable_weekday_is_not_aligned(self, generator, grooming_config):
        # 2024-01-13 is a Saturday
        assert not generator.is_aligned(grooming_config, datetime(2024, 1, 13, 9, 0))

    def test_check_bookable_rejects_started_slot(self, generator, grooming_config):
        error = generator.check_bookable(
            grooming_config, datetime(2024, 1, 15, 9, 0), datetime(2024, 1, 15, 9, 5)
        )
        assert isinstance(error, OutOfWindowError)

    def test_check_bookable_rejects_date_past_window(self, generator, grooming_config):
        error = generator.check_bookable(
            grooming_config, datetime(2024, 2, 13, 9, 0), NOW
        )
        assert isinstance(error, OutOfWindowError)
        assert error.context["latest_date"] == "2024-02-13"

    def test_check_bookable_accepts_aligned_future_slot(
        self, generator, grooming_config
    ):
        assert (
            generator.check_bookable(grooming_config, datetime(2024, 1, 15, 11, 0), NOW)
            is None
        )
