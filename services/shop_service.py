"""
Shop Service for CozyClip Platform
Handles shop browsing, coin redemption and the purchase history log
"""

import logging

from schemas import Account, TransactionRecord
from services.catalog_service import SHOP_ITEMS_COLLECTION
from utils.error_handler import (
    AlreadyOwnedError,
    AuthenticationError,
    ConflictError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)
from utils.time_utils import utc_now

logger = logging.getLogger(__name__)

USERS_COLLECTION = 'users'
TRANSACTIONS_COLLECTION = 'transactions'


class ShopService:
    def __init__(self, store, catalog, clock=utc_now):
        self.store = store
        self.catalog = catalog
        self.clock = clock

    def list_items(self, page=1, limit=20):
        """
        List shop items ordered by cost, one page at a time
        """
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        try:
            items = self.catalog.get_shop_items()
            offset = (page - 1) * limit
            page_items = items[offset:offset + limit]

            return {
                'items': [item.model_dump() for item in page_items],
                'page': page,
                'limit': limit,
                'total': len(items)
            }
        except Exception as e:
            logger.error(f"Error listing shop items: {str(e)}")
            raise

    def get_transactions(self, user_id, page=1, limit=50):
        """
        Get a user's redemption history, newest first
        """
        if not user_id:
            raise ValidationError("userId is required", field='user_id')
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        try:
            documents = self.store.query(
                TRANSACTIONS_COLLECTION,
                filters=[('user_id', '==', user_id)],
                order_by='redeemed_at',
                descending=True,
                limit=limit,
                offset=(page - 1) * limit
            )

            return {
                'transactions': [
                    {'transaction_id': doc_id, **data} for doc_id, data in documents
                ],
                'page': page,
                'limit': limit
            }
        except Exception as e:
            logger.error(f"Error getting transactions for {user_id}: {str(e)}")
            raise

    def redeem_item(self, user_id, item_id):
        """
        Spend coins on a shop item.

        The balance check, the deduction, the inventory grant and the
        completed transaction record all happen in one store transaction, so
        two concurrent redemptions can never both pass the balance check.
        """
        if not user_id:
            raise AuthenticationError("userId is required")
        if not item_id:
            raise ValidationError("itemId is required", field='item_id')

        item_info = {}

        def _redeem(transaction):
            account_doc, item_doc = transaction.get_many([
                (USERS_COLLECTION, user_id),
                (SHOP_ITEMS_COLLECTION, item_id)
            ])

            if account_doc is None:
                raise NotFoundError("Student not found")
            item = self.catalog.resolve_shop_item(item_id, item_doc)
            if item is None:
                raise NotFoundError("Item not found")
            item_info['item'] = item

            account = Account.model_validate(account_doc)

            if not item.is_consumable and item_id in account.unlocked_items:
                raise AlreadyOwnedError()
            if account.coins < item.cost:
                raise InsufficientFundsError()

            now = self.clock()
            coins_remaining = account.coins - item.cost

            transaction.update(USERS_COLLECTION, user_id, {
                'coins': coins_remaining,
                'unlocked_items': account.unlocked_items + [item_id],
                'updated_at': now
            })
            transaction.add(TRANSACTIONS_COLLECTION, TransactionRecord(
                user_id=user_id,
                item_id=item_id,
                item_name=item.name,
                cost=item.cost,
                type=item.type,
                rarity=item.rarity,
                redeemed_at=now,
                uses=item.uses if item.is_consumable else None,
                status='completed'
            ).model_dump())

            return item, coins_remaining

        try:
            item, coins_remaining = self.store.run_transaction(_redeem)
        except (NotFoundError, ConflictError) as e:
            logger.warning(f"Redemption rejected - User: {user_id}, Item: {item_id}, Reason: {e.message}")
            self._log_failed_redemption(user_id, item_id, item_info.get('item'), e.message)
            raise
        except Exception as e:
            logger.error(f"Error redeeming item {item_id} for {user_id}: {str(e)}")
            raise

        logger.info(f"Item redeemed - User: {user_id}, Item: {item_id}, Coins left: {coins_remaining}")

        return {
            'success': True,
            'item_id': item_id,
            'item_name': item.name,
            'coins_remaining': coins_remaining,
            'message': 'Item redeemed successfully!'
        }

    def _log_failed_redemption(self, user_id, item_id, item, reason):
        """
        Best-effort failed transaction record; never raises
        """
        try:
            record = TransactionRecord(
                user_id=user_id,
                item_id=item_id,
                item_name=item.name if item else '',
                cost=item.cost if item else 0,
                type=item.type if item else None,
                rarity=item.rarity if item else None,
                redeemed_at=self.clock(),
                status='failed',
                reason=reason
            )
            self.store.add(TRANSACTIONS_COLLECTION, record.model_dump())
        except Exception as e:
            logger.warning(f"Could not log failed redemption for {user_id}: {str(e)}")
