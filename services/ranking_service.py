"""
Ranking Service for CozyClip Platform
Tiered reader ranks computed from completed books and quiz points.
Ranks are never stored; they are recomputed from the account counters.
"""

import logging

from services.account_service import AccountService

logger = logging.getLogger(__name__)

RANKS = ['Bronze', 'Silver', 'Gold', 'Amethyst', 'Diamond', 'Challenger']
BOOKS_PER_SUBLEVEL = 10
SUBLEVELS_PER_TIER = 5
POINTS_PER_PROGRESS_UNIT = 5  # 5 quiz points count like one finished book

TIER_BADGES = {
    'Bronze': '🥉',
    'Silver': '🥈',
    'Gold': '🥇',
    'Amethyst': '🔷',
    'Diamond': '💎',
    'Challenger': '🔥',
}
DEFAULT_BADGE = '📚'


def compute_rank(total_completed_books=0, total_points=0):
    """
    Compute tier and sublevel from progress units:
    books + points // 5, ten units per sublevel, five sublevels per tier.
    """
    total_completed_books = max(int(total_completed_books or 0), 0)
    total_points = max(int(total_points or 0), 0)

    total_progress = total_completed_books + total_points // POINTS_PER_PROGRESS_UNIT
    level = total_progress // BOOKS_PER_SUBLEVEL

    last_tier = len(RANKS) - 1
    tier_index = min(level // SUBLEVELS_PER_TIER, last_tier)
    sublevel = min((level % SUBLEVELS_PER_TIER) + 1, SUBLEVELS_PER_TIER)
    if level // SUBLEVELS_PER_TIER > last_tier:
        sublevel = SUBLEVELS_PER_TIER

    progress_in_sublevel = total_progress % BOOKS_PER_SUBLEVEL
    at_max = tier_index == last_tier and sublevel == SUBLEVELS_PER_TIER

    if at_max:
        books_to_next = 0
        next_rank = None
    else:
        books_to_next = BOOKS_PER_SUBLEVEL - progress_in_sublevel
        next_tier, next_sub = tier_index, sublevel + 1
        if next_sub > SUBLEVELS_PER_TIER:
            next_tier, next_sub = tier_index + 1, 1
        next_rank = f"{RANKS[next_tier]} {next_sub}"

    return {
        'current_rank': f"{RANKS[tier_index]} {sublevel}",
        'tier': RANKS[tier_index],
        'sublevel': sublevel,
        'progress_in_sublevel': progress_in_sublevel,
        'books_to_next': books_to_next,
        'next_rank': next_rank,
    }


def badge_for_tier(tier):
    return TIER_BADGES.get(tier, DEFAULT_BADGE)


class RankingService:
    def __init__(self, store):
        self.accounts = AccountService(store)

    def get_ranking(self, user_id):
        """
        Rank descriptor for the user's current counters
        """
        try:
            account = self.accounts.get_account(user_id)

            total_books = account.completed_books_count or len(account.completed_books)
            rank_info = compute_rank(total_books, account.points)
            rank_info['badge'] = badge_for_tier(rank_info['tier'])

            return {
                'total_completed_books': total_books,
                'total_points': account.points,
                **rank_info
            }
        except Exception as e:
            logger.error(f"Error computing ranking for {user_id}: {str(e)}")
            raise

    def get_history(self, user_id):
        account = self.accounts.get_account(user_id)
        return [book.model_dump() for book in account.completed_books]
