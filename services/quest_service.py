"""
Quest Service for CozyClip Platform
Advances quest progress on reading events and pays quest rewards exactly once
"""

import logging

from schemas import Account, QuestProgress
from utils.error_handler import ValidationError
from utils.time_utils import as_utc, utc_now

logger = logging.getLogger(__name__)

USERS_COLLECTION = 'users'

# Every matching event counts as one step, whatever its size
PROGRESS_STEP = 1

# Event details stored on progress entries, always as strings
META_FIELDS = ('story_id', 'chapter', 'genre')


def window_key(time_window, moment):
    """
    Identify the calendar window (UTC) a moment falls in, or None for
    windows the ledger does not reset (no window, 'session')
    """
    if moment is None:
        return None
    moment = as_utc(moment)
    if time_window == 'daily':
        return moment.strftime('%Y-%m-%d')
    if time_window == 'weekly':
        year, week, _ = moment.isocalendar()
        return f"{year}-W{week:02d}"
    if time_window == 'monthly':
        return moment.strftime('%Y-%m')
    return None


class QuestService:
    def __init__(self, store, catalog, clock=utc_now):
        self.store = store
        self.catalog = catalog
        self.clock = clock

    def update_quest_progress(self, user_id, event_type, meta=None):
        """
        Advance every open quest triggered by ``event_type`` and credit the
        rewards of the quests this call completes.

        ``meta`` may carry ``story_id``, ``chapter`` and ``genre``.
        Returns ``{'coins_earned': int, 'completed_quests': [quest_id, ...]}``.
        """
        if not user_id:
            raise ValidationError("userId is required", field='user_id')
        if not event_type or not isinstance(event_type, str):
            raise ValidationError("eventType is required", field='event_type')
        if meta is not None and not isinstance(meta, dict):
            raise ValidationError("meta must be an object", field='meta')

        meta = {
            key: str(value) for key, value in (meta or {}).items()
            if key in META_FIELDS and value not in (None, '')
        }

        try:
            quests = self.catalog.quests_for_trigger(event_type)
            if not quests:
                logger.debug(f"No quests listen for event '{event_type}'")
                return {'coins_earned': 0, 'completed_quests': []}

            def _apply(transaction):
                data = transaction.get(USERS_COLLECTION, user_id)
                account = Account.model_validate(data or {})
                now = self.clock()

                entries = {entry.quest_id: entry for entry in account.quests}
                coins_earned = 0
                completed_quests = []
                changed = False

                for quest in quests:
                    current = entries.get(quest.quest_id)
                    if current is not None and current.completed:
                        continue

                    entry = current.model_copy(deep=True) if current else QuestProgress(quest_id=quest.quest_id)
                    if not self._advance(quest, entry, meta, now):
                        continue

                    entries[quest.quest_id] = entry
                    changed = True
                    if entry.completed:
                        coins_earned += quest.reward_coins
                        completed_quests.append(quest.quest_id)

                if not changed:
                    return 0, []

                fields = {
                    'quests': [entry.model_dump() for entry in entries.values()],
                    'updated_at': now
                }
                if coins_earned:
                    fields['coins'] = account.coins + coins_earned
                    fields['total_coins_earned'] = account.total_coins_earned + coins_earned

                if data is None:
                    transaction.set(USERS_COLLECTION, user_id, {
                        **Account.new_document(),
                        'created_at': now,
                        **fields
                    })
                else:
                    transaction.update(USERS_COLLECTION, user_id, fields)

                return coins_earned, completed_quests

            coins_earned, completed_quests = self.store.run_transaction(_apply)

        except Exception as e:
            logger.error(f"Error updating quest progress for {user_id} ({event_type}): {str(e)}")
            raise

        if coins_earned:
            logger.info(f"Quests completed - User: {user_id}, Quests: {completed_quests}, Coins: {coins_earned}")

        return {
            'coins_earned': coins_earned,
            'completed_quests': completed_quests
        }

    def get_quests_with_progress(self, user_id):
        """
        Merge the quest catalog with the user's progress entries
        """
        if not user_id:
            raise ValidationError("userId is required", field='user_id')

        try:
            account = Account.model_validate(self.store.get(USERS_COLLECTION, user_id) or {})
            now = self.clock()

            quests = []
            for quest in self.catalog.get_quests():
                entry = account.quest_entry(quest.quest_id)
                entry = entry.model_copy(deep=True) if entry else QuestProgress(quest_id=quest.quest_id)
                self._reset_if_window_elapsed(quest, entry, now)

                if entry.completed:
                    status = 'completed'
                elif entry.progress > 0:
                    status = 'in_progress'
                else:
                    status = 'not_started'

                quests.append({
                    'quest_id': quest.quest_id,
                    'title': quest.title,
                    'description': quest.description,
                    'trigger': quest.trigger,
                    'target': quest.target,
                    'reward_coins': quest.reward_coins,
                    'time_window': quest.time_window,
                    'progress': min(entry.progress, quest.target),
                    'completed': entry.completed,
                    'completed_at': entry.completed_at,
                    'status': status
                })

            return quests

        except Exception as e:
            logger.error(f"Error getting quests for {user_id}: {str(e)}")
            raise

    def _advance(self, quest, entry, meta, now):
        """
        Apply one event to an open quest entry. Returns False when the event
        does not count for this quest.
        """
        self._reset_if_window_elapsed(quest, entry, now)

        story_id = meta.get('story_id')
        chapter = meta.get('chapter')
        genre = meta.get('genre')

        if quest.unique_stories and story_id and story_id in entry.story_ids:
            return False

        if quest.genres_required:
            if not genre or genre not in quest.genres_required or genre in entry.genres:
                return False
            entry.genres.append(genre)

        if story_id and story_id not in entry.story_ids:
            entry.story_ids.append(story_id)
        if chapter and chapter not in entry.chapters:
            entry.chapters.append(chapter)

        entry.progress = min(entry.progress + PROGRESS_STEP, quest.target)
        entry.updated_at = now

        if entry.progress >= quest.target:
            entry.completed = True
            entry.completed_at = now

        return True

    def _reset_if_window_elapsed(self, quest, entry, now):
        if entry.completed or not quest.time_window:
            return
        last_window = window_key(quest.time_window, entry.updated_at)
        if last_window is not None and last_window != window_key(quest.time_window, now):
            entry.progress = 0
            entry.story_ids = []
            entry.chapters = []
            entry.genres = []
