"""
Account Service for CozyClip Platform
Lazy account creation and quiz point awards
"""

import logging

from schemas import Account
from utils.error_handler import NotFoundError, ValidationError
from utils.time_utils import utc_now

logger = logging.getLogger(__name__)

USERS_COLLECTION = 'users'


class AccountService:
    def __init__(self, store):
        self.store = store

    def ensure_account(self, user_id, profile=None):
        """
        Return the user's account, creating it with zero-valued counters if absent
        """
        if not user_id:
            raise ValidationError("userId is required", field='user_id')

        def _ensure(transaction):
            data = transaction.get(USERS_COLLECTION, user_id)
            if data is not None:
                return Account.model_validate(data), False

            document = Account.new_document(**(profile or {}))
            document['created_at'] = utc_now()
            transaction.set(USERS_COLLECTION, user_id, document)
            return Account.model_validate(document), True

        try:
            account, created = self.store.run_transaction(_ensure)
        except Exception as e:
            logger.error(f"Error ensuring account for {user_id}: {str(e)}")
            raise

        if created:
            logger.info(f"Created ledger account for user: {user_id}")
        return account

    def get_account(self, user_id):
        if not user_id:
            raise ValidationError("userId is required", field='user_id')

        data = self.store.get(USERS_COLLECTION, user_id)
        if data is None:
            raise NotFoundError("Student not found")
        return Account.model_validate(data)

    def award_points(self, user_id, points):
        """
        Atomically add quiz score points to the account
        """
        if not user_id:
            raise ValidationError("userId is required", field='user_id')
        if isinstance(points, bool) or not isinstance(points, int) or points < 0:
            raise ValidationError("points must be a non-negative integer", field='points')

        self.ensure_account(user_id)
        if points:
            self.store.increment(USERS_COLLECTION, user_id, 'points', points)
            logger.info(f"Awarded {points} quiz points to user: {user_id}")

        return self.get_account(user_id).points
