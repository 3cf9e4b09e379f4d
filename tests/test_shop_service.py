import pytest
from unittest.mock import Mock

from services.shop_service import ShopService
from utils.error_handler import (
    AlreadyOwnedError,
    AuthenticationError,
    InsufficientFundsError,
    NotFoundError,
    ValidationError,
)


def transactions_for(store, user_id):
    return [data for _, data in store.query('transactions', filters=[('user_id', '==', user_id)])]


class TestRedeemItem:

    def test_redeem_exact_balance_then_already_owned(self, shop_service, store, make_account):
        make_account('reader-1', coins=100)

        result = shop_service.redeem_item('reader-1', 'cozy_theme')

        assert result['success'] is True
        assert result['coins_remaining'] == 0
        assert result['item_name'] == 'Cozy Cabin Theme'

        with pytest.raises(AlreadyOwnedError) as exc_info:
            shop_service.redeem_item('reader-1', 'cozy_theme')

        assert exc_info.value.message == 'Item already owned'
        account = store.get('users', 'reader-1')
        assert account['coins'] == 0
        assert account['unlocked_items'] == ['cozy_theme']

    def test_insufficient_coins_leaves_balance(self, shop_service, store, make_account):
        make_account('reader-1', coins=99)

        with pytest.raises(InsufficientFundsError):
            shop_service.redeem_item('reader-1', 'cozy_theme')

        account = store.get('users', 'reader-1')
        assert account['coins'] == 99
        assert account['unlocked_items'] == []

    def test_consumables_can_be_bought_repeatedly(self, shop_service, store, make_account):
        make_account('reader-1', coins=100)

        shop_service.redeem_item('reader-1', 'hint_pack')
        result = shop_service.redeem_item('reader-1', 'hint_pack')

        assert result['coins_remaining'] == 40
        assert store.get('users', 'reader-1')['unlocked_items'] == ['hint_pack', 'hint_pack']

    def test_power_up_counts_as_consumable(self, shop_service, make_account):
        make_account('reader-1', coins=50)

        shop_service.redeem_item('reader-1', 'extra_life')
        result = shop_service.redeem_item('reader-1', 'extra_life')

        assert result['coins_remaining'] == 10

    def test_balance_never_goes_negative(self, shop_service, store, make_account):
        make_account('reader-1', coins=70)

        outcomes = []
        for _ in range(4):
            try:
                outcomes.append(shop_service.redeem_item('reader-1', 'hint_pack')['coins_remaining'])
            except InsufficientFundsError:
                outcomes.append('rejected')

        assert outcomes == [40, 10, 'rejected', 'rejected']
        assert store.get('users', 'reader-1')['coins'] == 10

    def test_records_completed_transaction(self, shop_service, store, make_account, clock):
        make_account('reader-1', coins=100)

        shop_service.redeem_item('reader-1', 'cozy_theme')

        records = transactions_for(store, 'reader-1')
        assert len(records) == 1
        assert records[0]['status'] == 'completed'
        assert records[0]['cost'] == 100
        assert records[0]['item_name'] == 'Cozy Cabin Theme'
        assert records[0]['redeemed_at'] == clock.now

    def test_consumable_purchase_records_uses(self, shop_service, store, make_account):
        make_account('reader-1', coins=200)

        shop_service.redeem_item('reader-1', 'hint_pack')
        shop_service.redeem_item('reader-1', 'cozy_theme')

        uses = {t['item_id']: t['uses'] for t in transactions_for(store, 'reader-1')}
        assert uses == {'hint_pack': 3, 'cozy_theme': None}

    def test_rejection_logs_failed_transaction(self, shop_service, store, make_account):
        make_account('reader-1', coins=5)

        with pytest.raises(InsufficientFundsError):
            shop_service.redeem_item('reader-1', 'cozy_theme')

        records = transactions_for(store, 'reader-1')
        assert len(records) == 1
        assert records[0]['status'] == 'failed'
        assert records[0]['reason'] == 'Insufficient coins'

    def _commit_concurrent_write_first(self, store, mocker, fields):
        """Another writer commits `fields` between the first attempt's reads and its commit"""
        run_transaction = store.run_transaction
        attempts = []

        def _interfering(fn):
            def _attempt(transaction):
                result = fn(transaction)
                if not attempts:
                    store.update('users', 'reader-1', fields)
                attempts.append(1)
                return result
            return run_transaction(_attempt)

        mocker.patch.object(store, 'run_transaction', side_effect=_interfering)
        return attempts

    def test_rechecks_balance_after_concurrent_spend(self, shop_service, store, make_account, mocker):
        make_account('reader-1', coins=100)
        attempts = self._commit_concurrent_write_first(store, mocker, {'coins': 0})

        with pytest.raises(InsufficientFundsError):
            shop_service.redeem_item('reader-1', 'cozy_theme')

        assert len(attempts) == 2
        account = store.get('users', 'reader-1')
        assert account['coins'] == 0
        assert account['unlocked_items'] == []
        assert [t['status'] for t in transactions_for(store, 'reader-1')] == ['failed']

    def test_rechecks_ownership_after_concurrent_unlock(self, shop_service, store, make_account, mocker):
        make_account('reader-1', coins=100)
        attempts = self._commit_concurrent_write_first(store, mocker, {'unlocked_items': ['cozy_theme']})

        with pytest.raises(AlreadyOwnedError):
            shop_service.redeem_item('reader-1', 'cozy_theme')

        assert len(attempts) == 2
        account = store.get('users', 'reader-1')
        assert account['coins'] == 100
        assert account['unlocked_items'] == ['cozy_theme']
        assert [t['status'] for t in transactions_for(store, 'reader-1')] == ['failed']

    def test_unknown_student(self, shop_service):
        with pytest.raises(NotFoundError) as exc_info:
            shop_service.redeem_item('ghost', 'cozy_theme')

        assert exc_info.value.message == 'Student not found'

    def test_unknown_item(self, shop_service, make_account):
        make_account('reader-1', coins=500)

        with pytest.raises(NotFoundError) as exc_info:
            shop_service.redeem_item('reader-1', 'no_such_item')

        assert exc_info.value.message == 'Item not found'

    def test_missing_identifiers(self, shop_service):
        with pytest.raises(AuthenticationError):
            shop_service.redeem_item(None, 'cozy_theme')
        with pytest.raises(ValidationError):
            shop_service.redeem_item('reader-1', '')

    def test_store_catalog_takes_precedence(self, store, catalog, clock, make_account):
        store.set('shop_items', 'cozy_theme', {'name': 'Cozy Cabin Theme', 'cost': 10, 'type': 'theme'})
        make_account('reader-1', coins=15)

        result = ShopService(store, catalog, clock=clock).redeem_item('reader-1', 'cozy_theme')

        assert result['coins_remaining'] == 5

    def test_failed_log_write_does_not_mask_rejection(self, catalog, clock):
        store = Mock()
        store.run_transaction.side_effect = InsufficientFundsError()
        store.add.side_effect = RuntimeError('disk full')

        service = ShopService(store, catalog, clock=clock)

        with pytest.raises(InsufficientFundsError):
            service.redeem_item('reader-1', 'cozy_theme')


class TestShopListing:

    def test_list_items_sorted_by_cost(self, shop_service):
        result = shop_service.list_items()

        assert [item['id'] for item in result['items']] == ['extra_life', 'hint_pack', 'cozy_theme']
        assert result['total'] == 3

    def test_list_items_pages(self, shop_service):
        result = shop_service.list_items(page=2, limit=2)

        assert [item['id'] for item in result['items']] == ['cozy_theme']
        assert result['page'] == 2

    def test_transactions_newest_first(self, shop_service, make_account, clock):
        make_account('reader-1', coins=200)
        first_time = clock.now

        shop_service.redeem_item('reader-1', 'hint_pack')
        clock.now = first_time.replace(hour=13)
        shop_service.redeem_item('reader-1', 'cozy_theme')

        result = shop_service.get_transactions('reader-1')

        assert [t['item_id'] for t in result['transactions']] == ['cozy_theme', 'hint_pack']
        assert all(t['transaction_id'] for t in result['transactions'])
