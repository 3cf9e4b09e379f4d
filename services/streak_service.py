"""
Streak Service for CozyClip Platform
Daily reading activity, current/longest streaks and streak badges
"""

from datetime import timedelta
import logging

from schemas import Account
from utils.error_handler import ValidationError
from utils.time_utils import as_utc, parse_datetime, to_date_key, utc_now

logger = logging.getLogger(__name__)

USERS_COLLECTION = 'users'

STREAK_MILESTONES = (3, 7, 30)


def calculate_current_streak(active_days, today):
    """
    Count consecutive active UTC days ending today; 0 if today is not active
    """
    day = as_utc(today)
    streak = 0
    while active_days.get(to_date_key(day)):
        streak += 1
        day -= timedelta(days=1)
    return streak


def streak_badge(days):
    return f"streak-{days}"


class StreakService:
    def __init__(self, store, clock=utc_now):
        self.store = store
        self.clock = clock

    def get_streak(self, user_id):
        """
        Current streak is always recomputed from the activity map
        """
        if not user_id:
            raise ValidationError("userId is required", field='user_id')

        try:
            data = self.store.get(USERS_COLLECTION, user_id) or {}
            account = Account.model_validate(data)

            return {
                'user_id': user_id,
                'last_date': data.get('last_active_date'),
                'current_streak': calculate_current_streak(account.active_days, self.clock()),
                'longest_streak': account.longest_streak,
                'badges': account.badges,
                'active_days': account.active_days
            }
        except Exception as e:
            logger.error(f"Error getting streak for {user_id}: {str(e)}")
            raise

    def record_reading_session(self, user_id, session_date=None):
        """
        Mark the session's UTC day as active and refresh the cached streak fields
        """
        if not user_id:
            raise ValidationError("userId is required", field='user_id')

        session_moment = parse_datetime(session_date) if session_date is not None else None

        def _record(transaction):
            data = transaction.get(USERS_COLLECTION, user_id)
            account = Account.model_validate(data or {})
            now = self.clock()
            date_key = to_date_key(session_moment or now)

            active_days = dict(account.active_days)
            active_days[date_key] = True

            current_streak = calculate_current_streak(active_days, now)
            longest_streak = max(account.longest_streak, current_streak)

            badges = list(account.badges)
            if current_streak in STREAK_MILESTONES and streak_badge(current_streak) not in badges:
                badges.append(streak_badge(current_streak))

            fields = {
                'active_days': active_days,
                'last_active_date': date_key,
                'current_streak': current_streak,
                'longest_streak': longest_streak,
                'badges': badges,
                'updated_at': now
            }

            if data is None:
                transaction.set(USERS_COLLECTION, user_id, {
                    **Account.new_document(),
                    'created_at': now,
                    **fields
                })
            else:
                transaction.update(USERS_COLLECTION, user_id, fields)

            return fields

        try:
            fields = self.store.run_transaction(_record)
        except Exception as e:
            logger.error(f"Error recording reading session for {user_id}: {str(e)}")
            raise

        logger.info(f"Reading session recorded - User: {user_id}, Day: {fields['last_active_date']}, Streak: {fields['current_streak']}")

        return {
            'user_id': user_id,
            'last_date': fields['last_active_date'],
            'current_streak': fields['current_streak'],
            'longest_streak': fields['longest_streak'],
            'badges': fields['badges'],
            'active_days': fields['active_days']
        }
