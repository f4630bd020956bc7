"""
Document store over logical paths (users/{uid}/quizAttempts/{quizId}, ...)

Transactions are optimistic: reads record the version they saw, writes are
buffered, and the commit applies all writes at once only if none of the
read versions changed. A conflicting commit is retried from the start.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, TypeVar
from datetime import datetime
import asyncio
import copy
import math
import uuid

from examprep.utils.helpers import format_timestamp
from examprep.utils.logger import logger

T = TypeVar("T")

# (field, operator, value); dotted fields address nested maps
WhereClause = Tuple[str, str, Any]


class TransactionConflict(Exception):
    """A document read by the transaction changed before commit"""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Document changed during transaction: {path}")


class DocumentNotFound(LookupError):
    """Update of a document that does not exist"""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Document not found: {path}")


def document_path(*segments: Any) -> str:
    """Join path segments; document paths have an even number of segments"""
    parts = [str(s).strip("/") for s in segments]
    if any(not p or "/" in p for p in parts):
        raise ValueError(f"Invalid path segments: {segments}")
    if len(parts) % 2:
        raise ValueError(f"Document path needs an even number of segments: {'/'.join(parts)}")
    return "/".join(parts)


def collection_of(path: str) -> str:
    return path.rsplit("/", 1)[0]


@dataclass
class DocumentSnapshot:
    path: str
    data: Dict[str, Any]
    version: int
    distance: Optional[float] = None

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def collection(self) -> str:
        return collection_of(self.path)


@dataclass
class WriteOp:
    path: str
    data: Dict[str, Any]
    merge: bool = False
    must_exist: bool = False


@dataclass
class Transaction:
    """Buffered reads/writes for one transaction attempt"""
    store: "DocumentStore"
    reads: Dict[str, int] = field(default_factory=dict)
    writes: List[WriteOp] = field(default_factory=list)

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        if self.writes:
            raise RuntimeError("Transaction reads must happen before writes")
        snapshot = await self.store._read(path)
        self.reads[path] = snapshot.version if snapshot else 0
        return copy.deepcopy(snapshot.data) if snapshot else None

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        self.writes.append(WriteOp(path, copy.deepcopy(data), merge=merge))

    def update(self, path: str, data: Dict[str, Any]) -> None:
        self.writes.append(WriteOp(path, copy.deepcopy(data), merge=True, must_exist=True))


def get_field(data: Dict[str, Any], dotted: str) -> Any:
    value: Any = data
    for part in dotted.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def normalize_filter_value(value: Any) -> Any:
    """Datetimes compare as the ISO strings stored documents hold (UTC as 'Z')"""
    if isinstance(value, datetime):
        return format_timestamp(value)
    return value


class DocumentStore:
    """Base class; backends implement the underscore methods and the queries"""

    def __init__(self, max_attempts: int = 5, retry_delay: float = 0.05):
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    # ============================================
    # Backend primitives
    # ============================================

    async def _read(self, path: str) -> Optional[DocumentSnapshot]:
        raise NotImplementedError

    async def _commit(self, reads: Dict[str, int], writes: Sequence[WriteOp]) -> None:
        raise NotImplementedError

    async def query(
        self,
        collection: str,
        where: Iterable[WhereClause] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None
    ) -> List[DocumentSnapshot]:
        raise NotImplementedError

    async def find_nearest(
        self,
        collection: str,
        vector_field: str,
        query_vector: Sequence[float],
        limit: int,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[DocumentSnapshot]:
        """Nearest neighbours by cosine distance, with equality filters"""
        raise NotImplementedError

    # ============================================
    # Single-document operations
    # ============================================

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        snapshot = await self._read(path)
        return copy.deepcopy(snapshot.data) if snapshot else None

    async def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        await self._commit({}, [WriteOp(path, copy.deepcopy(data), merge=merge)])

    async def update(self, path: str, data: Dict[str, Any]) -> None:
        """Merge into an existing document; raises DocumentNotFound otherwise"""
        await self._commit({}, [WriteOp(path, copy.deepcopy(data), merge=True, must_exist=True)])

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        """Create a document with a generated id and return the id"""
        doc_id = uuid.uuid4().hex
        await self.set(f"{collection}/{doc_id}", data)
        return doc_id

    # ============================================
    # Transactions
    # ============================================

    async def run_transaction(
        self,
        fn: Callable[[Transaction], Awaitable[T]],
        max_attempts: Optional[int] = None
    ) -> T:
        """
        Run fn inside a compare-and-swap retry loop.

        fn may be called several times and must not have side effects other
        than the reads and writes it makes through the transaction.
        """
        attempts = max_attempts or self.max_attempts
        for attempt in range(1, attempts + 1):
            transaction = Transaction(self)
            result = await fn(transaction)
            try:
                await self._commit(transaction.reads, transaction.writes)
                return result
            except TransactionConflict as e:
                if attempt == attempts:
                    logger.error(f"Transaction failed after {attempts} attempts: {e.path}")
                    raise
                logger.debug(f"Transaction conflict on {e.path}, retrying ({attempt}/{attempts})")
                await asyncio.sleep(self.retry_delay * attempt)
        raise RuntimeError("unreachable")


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if not norm_a or not norm_b:
        return 1.0
    return 1.0 - dot / (norm_a * norm_b)


_COMPARATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": lambda a, b: a == b,
    ">=": lambda a, b: a is not None and a >= b,
    "<=": lambda a, b: a is not None and a <= b,
    "in": lambda a, b: a in b,
}


class MemoryDocumentStore(DocumentStore):
    """
    Process-local backend with the same transaction semantics.

    Commits run without awaiting, so the version check and the swap of the
    document map happen as one step on the event loop.
    """

    def __init__(self, max_attempts: int = 5, retry_delay: float = 0.0):
        super().__init__(max_attempts=max_attempts, retry_delay=retry_delay)
        self._documents: Dict[str, DocumentSnapshot] = {}

    async def _read(self, path: str) -> Optional[DocumentSnapshot]:
        # Yield so concurrent transactions interleave the way remote reads do
        await asyncio.sleep(0)
        return self._documents.get(path)

    def _apply_write(self, current: Optional[DocumentSnapshot], write: WriteOp) -> DocumentSnapshot:
        if write.must_exist and current is None:
            raise DocumentNotFound(write.path)
        if write.merge and current is not None:
            data = {**current.data, **copy.deepcopy(write.data)}
        else:
            data = copy.deepcopy(write.data)
        version = (current.version if current else 0) + 1
        return DocumentSnapshot(write.path, data, version)

    async def _commit(self, reads: Dict[str, int], writes: Sequence[WriteOp]) -> None:
        for path, version in reads.items():
            current = self._documents.get(path)
            if (current.version if current else 0) != version:
                raise TransactionConflict(path)

        staged = dict(self._documents)
        for write in writes:
            staged[write.path] = self._apply_write(staged.get(write.path), write)
        self._documents = staged

    def _matches(self, data: Dict[str, Any], where: Iterable[WhereClause]) -> bool:
        for field_name, op, value in where:
            if op not in _COMPARATORS:
                raise ValueError(f"Unsupported operator: {op}")
            if not _COMPARATORS[op](get_field(data, field_name), normalize_filter_value(value)):
                return False
        return True

    async def query(
        self,
        collection: str,
        where: Iterable[WhereClause] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None
    ) -> List[DocumentSnapshot]:
        where = list(where)
        matches = [
            DocumentSnapshot(s.path, copy.deepcopy(s.data), s.version)
            for s in self._documents.values()
            if s.collection == collection and self._matches(s.data, where)
        ]
        if order_by:
            matches.sort(key=lambda s: (get_field(s.data, order_by) is None, get_field(s.data, order_by) or ""),
                         reverse=descending)
        return matches[:limit] if limit else matches

    async def find_nearest(
        self,
        collection: str,
        vector_field: str,
        query_vector: Sequence[float],
        limit: int,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[DocumentSnapshot]:
        where = [(key, "==", value) for key, value in (filters or {}).items()]
        candidates = []
        for snapshot in self._documents.values():
            vector = get_field(snapshot.data, vector_field)
            if snapshot.collection != collection or not vector or not self._matches(snapshot.data, where):
                continue
            candidates.append(DocumentSnapshot(
                snapshot.path,
                copy.deepcopy(snapshot.data),
                snapshot.version,
                distance=cosine_distance(query_vector, vector)
            ))
        candidates.sort(key=lambda s: s.distance)
        return candidates[:limit]
