"""
Shared fixtures for the CozyClip test suite
"""

import json
import os
import sys
from datetime import datetime
from unittest.mock import patch

import pytest
import pytz

# Add project root to Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# main.py builds its module-level app on import; keep it off Firestore
os.environ['LEDGER_BACKEND'] = 'memory'
os.environ['ENVIRONMENT'] = 'development'

from services.catalog_service import CatalogService
from services.completion_service import CompletionService
from services.account_service import AccountService
from services.ledger_store import InMemoryLedgerStore
from services.quest_service import QuestService
from services.shop_service import ShopService
from services.streak_service import StreakService


class FixedClock:
    """Callable clock the tests can move by hand"""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


TEST_QUESTS = [
    {
        'quest_id': 'read_3_chapters',
        'title': 'Read 3 Chapters',
        'trigger': 'chapter_read',
        'target': 3,
        'reward_coins': 30,
        'order': 1
    },
    {
        'quest_id': 'stories_explorer',
        'title': 'Stories Explorer',
        'trigger': 'story_completed',
        'target': 2,
        'reward_coins': 60,
        'unique_stories': True,
        'order': 2
    },
    {
        'quest_id': 'genre_adventurer',
        'title': 'Genre Adventurer',
        'trigger': 'story_completed',
        'reward_coins': 70,
        'genres_required': ['Fantasy', 'Mystery'],
        'order': 3
    },
    {
        'quest_id': 'weekly_words',
        'title': 'Weekly Words',
        'trigger': 'word_assist',
        'target': 2,
        'reward_coins': 10,
        'time_window': 'weekly',
        'order': 4
    }
]

TEST_SHOP_ITEMS = [
    {'id': 'cozy_theme', 'name': 'Cozy Cabin Theme', 'cost': 100, 'type': 'theme', 'rarity': 'rare'},
    {'id': 'hint_pack', 'name': 'Hint Pack', 'cost': 30, 'type': 'consumable', 'rarity': 'common', 'uses': 3},
    {'id': 'extra_life', 'name': 'Extra Life', 'cost': 20, 'type': 'power-up', 'rarity': 'uncommon'}
]


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 1, 3, 12, 0, tzinfo=pytz.utc))


@pytest.fixture
def store():
    return InMemoryLedgerStore()


@pytest.fixture
def catalog_paths(tmp_path):
    quests_path = tmp_path / 'quests.json'
    shop_items_path = tmp_path / 'shop_items.json'
    quests_path.write_text(json.dumps(TEST_QUESTS), encoding='utf-8')
    shop_items_path.write_text(json.dumps(TEST_SHOP_ITEMS), encoding='utf-8')
    return quests_path, shop_items_path


@pytest.fixture
def catalog(store, catalog_paths):
    return CatalogService(store, *catalog_paths)


@pytest.fixture
def accounts(store):
    return AccountService(store)


@pytest.fixture
def quest_service(store, catalog, clock):
    return QuestService(store, catalog, clock=clock)


@pytest.fixture
def shop_service(store, catalog, clock):
    return ShopService(store, catalog, clock=clock)


@pytest.fixture
def completion_service(store, clock):
    return CompletionService(store, clock=clock)


@pytest.fixture
def streak_service(store, clock):
    return StreakService(store, clock=clock)


@pytest.fixture
def make_account(store, accounts):
    """Create an account with the given field values"""
    def _make(user_id='reader-1', **fields):
        accounts.ensure_account(user_id)
        if fields:
            store.update('users', user_id, fields)
        return user_id
    return _make


@pytest.fixture
def mock_verify_token():
    """Mock Firebase ID token verification"""
    with patch('firebase_admin.auth.verify_id_token') as mock_verify:
        mock_verify.return_value = {'uid': 'reader-1', 'email': 'reader@example.com', 'name': 'Test Reader'}
        yield mock_verify
