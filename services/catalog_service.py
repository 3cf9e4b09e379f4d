"""
Catalog Service for CozyClip Platform
Read-only quest and shop catalogs: store first, static JSON when the store
collection is empty.
"""

import json
import logging
import threading

from pydantic import ValidationError as SchemaValidationError

from schemas import QuestDefinition, ShopItem

logger = logging.getLogger(__name__)

QUESTS_COLLECTION = 'quests'
SHOP_ITEMS_COLLECTION = 'shop_items'


class CatalogService:
    def __init__(self, store, quests_path, shop_items_path):
        self.store = store
        self.quests_path = quests_path
        self.shop_items_path = shop_items_path
        self._lock = threading.Lock()
        self._quests = None
        self._shop_items = None
        self.quests_source = None
        self.shop_items_source = None

    def _load_collection(self, collection, path, schema, id_field):
        """
        Load one catalog. Returns (entries, source) where source is 'store' or 'static'.
        """
        documents = [{id_field: doc_id, **data} for doc_id, data in self.store.query(collection)]
        source = 'store'
        if not documents:
            source = 'static'
            with open(path, encoding='utf-8') as fh:
                documents = json.load(fh)

        entries = []
        for document in documents:
            try:
                entries.append(schema.model_validate(document))
            except SchemaValidationError as e:
                logger.warning(f"Skipping invalid {collection} entry from {source}: {str(e)}")

        logger.info(f"Loaded {len(entries)} {collection} from {source}")
        return entries, source

    def _ensure_loaded(self):
        with self._lock:
            if self._quests is None:
                quests, self.quests_source = self._load_collection(
                    QUESTS_COLLECTION, self.quests_path, QuestDefinition, 'quest_id'
                )
                quests.sort(key=lambda q: (q.order, q.quest_id))
                self._quests = quests
            if self._shop_items is None:
                items, self.shop_items_source = self._load_collection(
                    SHOP_ITEMS_COLLECTION, self.shop_items_path, ShopItem, 'id'
                )
                items.sort(key=lambda item: (item.cost, item.id))
                self._shop_items = items

    def reload(self):
        with self._lock:
            self._quests = None
            self._shop_items = None
        self._ensure_loaded()

    def get_quests(self):
        self._ensure_loaded()
        return list(self._quests)

    def quests_for_trigger(self, event_type):
        return [quest for quest in self.get_quests() if quest.trigger == event_type]

    def get_shop_items(self):
        self._ensure_loaded()
        return list(self._shop_items)

    def get_shop_item(self, item_id):
        for item in self.get_shop_items():
            if item.id == item_id:
                return item
        return None

    def resolve_shop_item(self, item_id, document):
        """
        Turn a shop item document read inside a transaction into a ShopItem.
        When the catalog runs from the static fallback the document is absent
        and the static entry is used instead.
        """
        self._ensure_loaded()
        if document is not None:
            return ShopItem.model_validate({'id': item_id, **document})
        if self.shop_items_source == 'static':
            return self.get_shop_item(item_id)
        return None

    def seed(self):
        """
        Idempotently upsert the static catalogs into the store
        """
        with open(self.quests_path, encoding='utf-8') as fh:
            quests = [QuestDefinition.model_validate(q) for q in json.load(fh)]
        with open(self.shop_items_path, encoding='utf-8') as fh:
            items = [ShopItem.model_validate(i) for i in json.load(fh)]

        for quest in quests:
            self.store.set(QUESTS_COLLECTION, quest.quest_id, quest.model_dump(), merge=True)
        for item in items:
            self.store.set(SHOP_ITEMS_COLLECTION, item.id, item.model_dump(), merge=True)

        logger.info(f"Seeded {len(quests)} quests and {len(items)} shop items")
        self.reload()

        return {
            'quests_seeded': len(quests),
            'shop_items_seeded': len(items)
        }
