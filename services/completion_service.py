"""
Completion Service for CozyClip Platform
Records finished books once per user and keeps the fast counter in step
"""

import logging

from schemas import Account, CompletedBook
from utils.error_handler import NotFoundError, ValidationError
from utils.time_utils import utc_now

logger = logging.getLogger(__name__)

USERS_COLLECTION = 'users'


class CompletionService:
    def __init__(self, store, clock=utc_now):
        self.store = store
        self.clock = clock

    def add_completed_book(self, user_id, book):
        """
        Append ``{book_id, title, finished_at}`` to the user's history.
        Returns True when the book was recorded, False when it already was.
        """
        if not user_id:
            raise ValidationError("userId is required", field='user_id')
        if not isinstance(book, dict) or not book.get('book_id'):
            raise ValidationError("book with book_id is required", field='book')

        book_id = str(book['book_id'])

        def _record(transaction):
            data = transaction.get(USERS_COLLECTION, user_id)
            if data is None:
                raise NotFoundError("Student not found")

            account = Account.model_validate(data)
            if account.has_completed_book(book_id):
                return False

            now = self.clock()
            entry = CompletedBook(book_id=book_id, title=book.get('title') or '', finished_at=now)
            completed_books = [b.model_dump() for b in account.completed_books] + [entry.model_dump()]

            transaction.update(USERS_COLLECTION, user_id, {
                'completed_books': completed_books,
                'completed_books_count': len(completed_books),
                'updated_at': now
            })
            return True

        try:
            recorded = self.store.run_transaction(_record)
        except Exception as e:
            logger.error(f"Error recording completed book {book_id} for {user_id}: {str(e)}")
            raise

        if recorded:
            logger.info(f"Book completed - User: {user_id}, Book: {book_id}")
        else:
            logger.debug(f"Book {book_id} already recorded for {user_id}")
        return recorded
