"""
Database Schemas for CozyClip

Each pydantic model maps to a Firestore document shape. Documents are
validated through these models whenever a service reads them from the
ledger store, so call sites never re-declare field defaults.
"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

CONSUMABLE_TYPES = ('consumable', 'power-up')

DEFAULT_REWARD_COINS = 5
DEFAULT_REWARDS_BY_TRIGGER = {
    'story_completed': 70,
    'word_assist': 30,
    'chapter_read': 30,
    'chapter_completed': 20,
}

TIME_WINDOWS = ('daily', 'weekly', 'monthly', 'session')


class CompletedBook(BaseModel):
    """Entry of an account's reading history."""
    book_id: str
    title: str = ''
    finished_at: Optional[datetime] = None


class QuestProgress(BaseModel):
    """
    Per-user progress on a single quest.
    Missing entries behave like progress=0, completed=False.
    """
    quest_id: str
    progress: int = Field(0, ge=0)
    completed: bool = False
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    story_ids: List[str] = Field(default_factory=list)
    chapters: List[str] = Field(default_factory=list)
    genres: List[str] = Field(default_factory=list)


class Account(BaseModel):
    """
    Collection: "users"
    One ledger document per user. Unknown fields (name, email, ...) are
    left untouched in the store because services only write the fields
    they change.
    """
    model_config = ConfigDict(extra='ignore')

    coins: int = Field(0, ge=0, description="Spendable currency")
    total_coins_earned: int = Field(0, ge=0, description="Lifetime earned coins")
    unlocked_items: List[str] = Field(default_factory=list)
    completed_books: List[CompletedBook] = Field(default_factory=list)
    completed_books_count: int = Field(0, ge=0)
    points: int = Field(0, ge=0, description="Cumulative quiz points")
    quests: List[QuestProgress] = Field(default_factory=list)
    active_days: Dict[str, bool] = Field(default_factory=dict)
    current_streak: int = Field(0, ge=0)
    longest_streak: int = Field(0, ge=0)
    badges: List[str] = Field(default_factory=list)

    @field_validator('quests', mode='before')
    @classmethod
    def _quests_as_list(cls, value):
        # Older documents stored quests as a map keyed by quest id
        if isinstance(value, dict):
            return [{'quest_id': key, **(entry or {})} for key, entry in value.items()]
        return value

    def quest_entry(self, quest_id):
        for entry in self.quests:
            if entry.quest_id == quest_id:
                return entry
        return None

    def has_completed_book(self, book_id):
        return any(book.book_id == book_id for book in self.completed_books)

    @classmethod
    def new_document(cls, **profile):
        """Zero-valued account document, merged with optional profile fields."""
        return {**profile, **cls().model_dump(mode='python')}


class QuestDefinition(BaseModel):
    """
    Collection: "quests"
    Read-only quest catalog entry.
    """
    model_config = ConfigDict(extra='ignore')

    quest_id: str = Field(..., min_length=1)
    title: str = ''
    description: str = ''
    trigger: str = Field(..., min_length=1, description="Event type the quest listens for")
    target: Optional[int] = Field(None, ge=1)
    reward_coins: Optional[int] = Field(None, ge=0)
    time_window: Optional[str] = None
    unique_stories: bool = False
    genres_required: List[str] = Field(default_factory=list)
    order: int = 0

    @field_validator('time_window', mode='before')
    @classmethod
    def _normalize_window(cls, value):
        if value is None or value == '':
            return None
        value = str(value).strip().lower()
        if value not in TIME_WINDOWS:
            raise ValueError(f"time_window must be one of {', '.join(TIME_WINDOWS)}")
        return value

    @model_validator(mode='after')
    def _apply_defaults(self):
        if self.target is None:
            self.target = len(self.genres_required) or 1
        if self.reward_coins is None:
            self.reward_coins = DEFAULT_REWARDS_BY_TRIGGER.get(self.trigger, DEFAULT_REWARD_COINS)
        return self


class ShopItem(BaseModel):
    """
    Collection: "shop_items"
    """
    model_config = ConfigDict(extra='ignore')

    id: str = Field(..., min_length=1)
    name: str = 'Unnamed Item'
    description: str = ''
    cost: int = Field(..., ge=0)
    type: str = 'boost'
    rarity: str = 'common'
    icon: Optional[str] = None
    uses: int = Field(1, ge=1, description="Uses granted per purchase of a consumable")

    @property
    def is_consumable(self):
        return self.type in CONSUMABLE_TYPES


class TransactionRecord(BaseModel):
    """
    Collection: "transactions"
    Append-only redemption log, one document per redemption attempt.
    """
    user_id: str
    item_id: str
    item_name: str = ''
    cost: int = Field(0, ge=0)
    type: Optional[str] = None
    rarity: Optional[str] = None
    redeemed_at: datetime
    uses: Optional[int] = Field(None, ge=1, description="Uses granted by this purchase (consumables only)")
    status: str = Field(..., pattern='^(completed|failed)$')
    reason: Optional[str] = None
