import pytest
from datetime import date, datetime, timedelta
import pytz

from services.streak_service import calculate_current_streak, streak_badge
from utils.error_handler import ValidationError

TODAY = datetime(2024, 1, 3, 12, 0, tzinfo=pytz.utc)


class TestCalculateCurrentStreak:

    def test_three_consecutive_days(self):
        active_days = {'2024-01-01': True, '2024-01-02': True, '2024-01-03': True}

        assert calculate_current_streak(active_days, TODAY) == 3

    def test_gap_breaks_streak(self):
        active_days = {'2024-01-01': True, '2024-01-03': True}

        assert calculate_current_streak(active_days, TODAY) == 1

    def test_inactive_today_is_zero(self):
        active_days = {'2024-01-01': True, '2024-01-02': True}

        assert calculate_current_streak(active_days, TODAY) == 0

    def test_accepts_plain_dates(self):
        assert calculate_current_streak({'2024-01-03': True}, date(2024, 1, 3)) == 1


class TestStreakService:

    def test_record_creates_account(self, streak_service, store):
        result = streak_service.record_reading_session('reader-1')

        assert result['current_streak'] == 1
        assert result['last_date'] == '2024-01-03'
        assert store.get('users', 'reader-1')['active_days'] == {'2024-01-03': True}

    def test_same_day_is_idempotent(self, streak_service, make_account):
        make_account('reader-1', active_days={'2024-01-01': True, '2024-01-02': True})

        first = streak_service.record_reading_session('reader-1')
        second = streak_service.record_reading_session('reader-1')

        assert first['current_streak'] == 3
        assert second['current_streak'] == 3
        assert second['longest_streak'] == 3
        assert second['badges'] == ['streak-3']

    def test_streak_across_days_and_milestone_badge(self, streak_service, clock):
        start = clock.now - timedelta(days=2)
        for offset in range(3):
            clock.now = start + timedelta(days=offset)
            result = streak_service.record_reading_session('reader-1')

        assert result['current_streak'] == 3
        assert result['badges'] == [streak_badge(3)]

    def test_longest_streak_survives_a_gap(self, streak_service, make_account, clock):
        make_account('reader-1', longest_streak=5)

        clock.now = clock.now + timedelta(days=10)
        result = streak_service.record_reading_session('reader-1')

        assert result['current_streak'] == 1
        assert result['longest_streak'] == 5

    def test_explicit_session_date(self, streak_service):
        result = streak_service.record_reading_session('reader-1', '2024-01-02T20:00:00Z')

        assert result['active_days'] == {'2024-01-02': True}
        assert result['current_streak'] == 0

    def test_invalid_session_date(self, streak_service):
        with pytest.raises(ValidationError):
            streak_service.record_reading_session('reader-1', 'not-a-date')

    def test_get_streak_recomputes(self, streak_service, make_account):
        make_account('reader-1', active_days={'2024-01-02': True, '2024-01-03': True}, current_streak=9)

        result = streak_service.get_streak('reader-1')

        assert result['current_streak'] == 2

    def test_get_streak_for_new_user(self, streak_service):
        result = streak_service.get_streak('nobody')

        assert result['current_streak'] == 0
        assert result['badges'] == []

    def test_requires_user(self, streak_service):
        with pytest.raises(ValidationError):
            streak_service.record_reading_session('')
