import pytest

from utils.error_handler import NotFoundError, ValidationError


class TestAccountService:

    def test_ensure_account_creates_zeroed_document(self, accounts, store):
        account = accounts.ensure_account('reader-1', {'name': 'Ada', 'email': 'ada@example.com'})

        assert account.coins == 0
        assert account.unlocked_items == []
        document = store.get('users', 'reader-1')
        assert document['name'] == 'Ada'
        assert document['completed_books_count'] == 0
        assert 'created_at' in document

    def test_ensure_account_keeps_existing(self, accounts, store, make_account):
        make_account('reader-1', coins=42)

        account = accounts.ensure_account('reader-1', {'name': 'Someone Else'})

        assert account.coins == 42
        assert 'name' not in store.get('users', 'reader-1')

    def test_get_account_missing(self, accounts):
        with pytest.raises(NotFoundError) as exc_info:
            accounts.get_account('ghost')

        assert exc_info.value.message == 'Student not found'

    def test_award_points(self, accounts):
        assert accounts.award_points('reader-1', 8) == 8
        assert accounts.award_points('reader-1', 4) == 12
        assert accounts.award_points('reader-1', 0) == 12

    @pytest.mark.parametrize('points', [-1, 2.5, '10', True, None])
    def test_award_points_rejects_bad_values(self, accounts, points):
        with pytest.raises(ValidationError):
            accounts.award_points('reader-1', points)

    def test_legacy_quest_map_is_read(self, accounts, make_account):
        make_account('reader-1', quests={'read_3_chapters': {'progress': 2}})

        account = accounts.get_account('reader-1')

        assert account.quest_entry('read_3_chapters').progress == 2
