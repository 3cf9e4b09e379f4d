"""
Ledger Store for CozyClip Platform
Pluggable document storage: Firestore for production, in-memory for tests
and offline mode. Services only talk to the LedgerStore interface and wrap
every read-modify-write in run_transaction().
"""

import abc
import copy
import itertools
import logging
import operator
import threading
import uuid
from contextlib import contextmanager

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore

from utils.error_handler import NotFoundError, StoreUnavailableError, TransactionConflictError

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 5

_FILTER_OPERATORS = {
    '==': operator.eq,
    '!=': operator.ne,
    '<': operator.lt,
    '<=': operator.le,
    '>': operator.gt,
    '>=': operator.ge,
}


class LedgerStore(abc.ABC):
    """Common interface for ledger persistence."""

    @abc.abstractmethod
    def get(self, collection, doc_id):
        """Return the document as a dict, or None if it does not exist."""

    @abc.abstractmethod
    def set(self, collection, doc_id, data, merge=False):
        """Create or overwrite a document (merge=True keeps other fields)."""

    @abc.abstractmethod
    def update(self, collection, doc_id, data):
        """Update fields of an existing document. Raises NotFoundError if missing."""

    @abc.abstractmethod
    def add(self, collection, data):
        """Create a document with a generated id and return the id."""

    @abc.abstractmethod
    def increment(self, collection, doc_id, field, amount):
        """Atomically add ``amount`` to a numeric field of an existing document."""

    @abc.abstractmethod
    def query(self, collection, filters=(), order_by=None, descending=False, limit=None, offset=0):
        """Return ``[(doc_id, data), ...]`` matching ``filters`` (``(field, op, value)`` tuples)."""

    @abc.abstractmethod
    def run_transaction(self, fn):
        """Run ``fn(transaction)`` atomically, re-running it on write conflicts.

        ``fn`` must do all of its reads before its writes and must be safe to
        re-run. Raises TransactionConflictError once the attempts run out.
        """


# ---------------------------------------------------------------------------
# In-memory implementation (tests / offline mode)
# ---------------------------------------------------------------------------

class _InMemoryTransaction:
    """Buffers writes and remembers the version of every document it read."""

    def __init__(self, store):
        self._store = store
        self.reads = {}
        self.writes = []

    def get(self, collection, doc_id):
        if self.writes:
            raise ValueError("Transactions require all reads to be executed before all writes.")
        version, data = self._store._read(collection, doc_id)
        self.reads[(collection, doc_id)] = version
        return data

    def get_many(self, keys):
        return [self.get(collection, doc_id) for collection, doc_id in keys]

    def set(self, collection, doc_id, data, merge=False):
        self.writes.append(('set', collection, doc_id, copy.deepcopy(data), merge))

    def update(self, collection, doc_id, data):
        self.writes.append(('update', collection, doc_id, copy.deepcopy(data), False))

    def add(self, collection, data):
        doc_id = uuid.uuid4().hex
        self.writes.append(('set', collection, doc_id, copy.deepcopy(data), False))
        return doc_id


class InMemoryLedgerStore(LedgerStore):
    """Dict-backed store with per-document versions for optimistic concurrency."""

    def __init__(self, max_attempts=DEFAULT_MAX_ATTEMPTS):
        self.max_attempts = max_attempts
        self._collections = {}
        self._lock = threading.RLock()
        self._versions = itertools.count(1)

    def _read(self, collection, doc_id):
        with self._lock:
            entry = self._collections.get(collection, {}).get(doc_id)
            if entry is None:
                return 0, None
            version, data = entry
            return version, copy.deepcopy(data)

    def _write(self, kind, collection, doc_id, data, merge):
        docs = self._collections.setdefault(collection, {})
        current = docs.get(doc_id)

        if kind == 'update':
            if current is None:
                raise NotFoundError(f"Document {collection}/{doc_id} not found")
            new_data = {**current[1], **data}
        elif merge and current is not None:
            new_data = {**current[1], **data}
        else:
            new_data = dict(data)

        docs[doc_id] = (next(self._versions), new_data)

    def get(self, collection, doc_id):
        return self._read(collection, doc_id)[1]

    def set(self, collection, doc_id, data, merge=False):
        with self._lock:
            self._write('set', collection, doc_id, copy.deepcopy(data), merge)

    def update(self, collection, doc_id, data):
        with self._lock:
            self._write('update', collection, doc_id, copy.deepcopy(data), False)

    def add(self, collection, data):
        doc_id = uuid.uuid4().hex
        self.set(collection, doc_id, data)
        return doc_id

    def increment(self, collection, doc_id, field, amount):
        with self._lock:
            current = self._collections.get(collection, {}).get(doc_id)
            if current is None:
                raise NotFoundError(f"Document {collection}/{doc_id} not found")
            value = current[1].get(field) or 0
            self._write('update', collection, doc_id, {field: value + amount}, False)

    def query(self, collection, filters=(), order_by=None, descending=False, limit=None, offset=0):
        with self._lock:
            docs = [
                (doc_id, copy.deepcopy(data))
                for doc_id, (_, data) in self._collections.get(collection, {}).items()
            ]

        for field, op, value in filters:
            compare = _FILTER_OPERATORS[op]
            docs = [(doc_id, data) for doc_id, data in docs if field in data and compare(data[field], value)]

        if order_by:
            docs = [(doc_id, data) for doc_id, data in docs if data.get(order_by) is not None]
            docs.sort(key=lambda doc: doc[1][order_by], reverse=descending)

        docs = docs[offset:]
        if limit is not None:
            docs = docs[:limit]
        return docs

    def run_transaction(self, fn):
        for attempt in range(1, self.max_attempts + 1):
            transaction = _InMemoryTransaction(self)
            result = fn(transaction)

            with self._lock:
                conflicted = any(
                    self._read(collection, doc_id)[0] != version
                    for (collection, doc_id), version in transaction.reads.items()
                )
                if not conflicted:
                    # Validate update targets before touching anything
                    for kind, collection, doc_id, _, _ in transaction.writes:
                        if kind == 'update' and self._read(collection, doc_id)[1] is None:
                            raise NotFoundError(f"Document {collection}/{doc_id} not found")
                    for kind, collection, doc_id, data, merge in transaction.writes:
                        self._write(kind, collection, doc_id, data, merge)
                    return result

            logger.info(f"Transaction conflict, retrying (attempt {attempt}/{self.max_attempts})")

        raise TransactionConflictError()


# ---------------------------------------------------------------------------
# Firestore implementation
# ---------------------------------------------------------------------------

@contextmanager
def _firestore_errors(action):
    """Translate Google API failures into ledger errors."""
    try:
        yield
    except google_exceptions.NotFound as e:
        raise NotFoundError(str(e))
    except google_exceptions.Aborted as e:
        logger.error(f"Firestore transaction aborted during {action}: {str(e)}")
        raise TransactionConflictError()
    except google_exceptions.GoogleAPIError as e:
        logger.error(f"Firestore error during {action}: {str(e)}")
        raise StoreUnavailableError(f"Ledger store unavailable: {str(e)}")


class _FirestoreTransaction:
    """Exposes a firestore.Transaction through collection/doc_id addressing."""

    def __init__(self, db, transaction):
        self._db = db
        self._transaction = transaction

    def _ref(self, collection, doc_id):
        return self._db.collection(collection).document(doc_id)

    def get(self, collection, doc_id):
        snapshot = self._ref(collection, doc_id).get(transaction=self._transaction)
        return snapshot.to_dict() if snapshot.exists else None

    def get_many(self, keys):
        refs = [self._ref(collection, doc_id) for collection, doc_id in keys]
        snapshots = {
            snapshot.reference.path: snapshot
            for snapshot in self._transaction.get_all(refs)
        }
        results = []
        for ref in refs:
            snapshot = snapshots.get(ref.path)
            results.append(snapshot.to_dict() if snapshot is not None and snapshot.exists else None)
        return results

    def set(self, collection, doc_id, data, merge=False):
        self._transaction.set(self._ref(collection, doc_id), data, merge=merge)

    def update(self, collection, doc_id, data):
        self._transaction.update(self._ref(collection, doc_id), data)

    def add(self, collection, data):
        ref = self._db.collection(collection).document()
        self._transaction.set(ref, data)
        return ref.id


class FirestoreLedgerStore(LedgerStore):
    """Firestore-backed store using ``{collection}/{doc_id}`` documents."""

    def __init__(self, db, max_attempts=DEFAULT_MAX_ATTEMPTS):
        if db is None:
            raise StoreUnavailableError("Firestore not initialized (missing credentials or emulator)")
        self.db = db
        self.max_attempts = max_attempts

    def get(self, collection, doc_id):
        with _firestore_errors('get'):
            snapshot = self.db.collection(collection).document(doc_id).get()
            return snapshot.to_dict() if snapshot.exists else None

    def set(self, collection, doc_id, data, merge=False):
        with _firestore_errors('set'):
            self.db.collection(collection).document(doc_id).set(data, merge=merge)

    def update(self, collection, doc_id, data):
        with _firestore_errors('update'):
            self.db.collection(collection).document(doc_id).update(data)

    def add(self, collection, data):
        with _firestore_errors('add'):
            _, ref = self.db.collection(collection).add(data)
            return ref.id

    def increment(self, collection, doc_id, field, amount):
        with _firestore_errors('increment'):
            self.db.collection(collection).document(doc_id).update({
                field: firestore.Increment(amount)
            })

    def query(self, collection, filters=(), order_by=None, descending=False, limit=None, offset=0):
        with _firestore_errors('query'):
            query = self.db.collection(collection)
            for field, op, value in filters:
                query = query.where(field, op, value)
            if order_by:
                direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
                query = query.order_by(order_by, direction=direction)
            if offset:
                query = query.offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return [(doc.id, doc.to_dict()) for doc in query.stream()]

    def run_transaction(self, fn):
        db = self.db

        @firestore.transactional
        def _run(transaction):
            return fn(_FirestoreTransaction(db, transaction))

        with _firestore_errors('transaction'):
            try:
                return _run(db.transaction(max_attempts=self.max_attempts))
            except ValueError as e:
                # google-cloud-firestore signals exhausted retries with a ValueError
                if str(e).startswith('Failed to commit transaction'):
                    logger.error(f"Transaction gave up after {self.max_attempts} attempts")
                    raise TransactionConflictError()
                raise
