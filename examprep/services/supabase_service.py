"""
Supabase client and the Supabase-backed document store

Documents live in one table keyed by logical path. Commits go through the
commit_documents function (sql/documents.sql), which checks the read
versions and applies all writes in one database transaction.
"""

from supabase import create_client, Client
from typing import Optional, Dict, Any, Iterable, List, Sequence
import asyncio

from examprep.config import settings
from examprep.utils.logger import logger
from examprep.services.document_store import (
    DocumentNotFound,
    DocumentSnapshot,
    DocumentStore,
    TransactionConflict,
    WhereClause,
    WriteOp,
    collection_of,
    normalize_filter_value,
)


class SupabaseService:
    """Service for interacting with Supabase"""

    def __init__(self, url: Optional[str] = None, key: Optional[str] = None):
        """Initialize Supabase client"""
        self.url = url or settings.SUPABASE_URL
        self.key = key or settings.SUPABASE_SERVICE_KEY or settings.SUPABASE_KEY
        self.client: Optional[Client] = None
        self._initialize_client()

    def _initialize_client(self):
        """Initialize Supabase client with configuration"""
        try:
            if not self.url or not self.key:
                logger.error("[WARN] Supabase credentials missing. Configure SUPABASE_URL and SUPABASE_KEY in .env file.")
                self.client = None
                return

            is_placeholder = (
                "your-project" in self.url.lower()
                or "placeholder" in self.url.lower()
                or "your-supabase" in self.key.lower()
                or "placeholder" in self.key.lower()
            )
            if is_placeholder:
                logger.error("[WARN] Supabase credentials appear to be placeholders. Please update your .env file.")
                logger.error(f"[WARN] Current URL: {self.url[:50]}...")
                self.client = None
                return

            if not self.url.startswith("https://"):
                logger.error(f"[WARN] Invalid SUPABASE_URL format. Must start with 'https://'. Got: {self.url[:50]}")
                self.client = None
                return

            if len(self.key) < 50:
                logger.warning(f"[WARN] Supabase key seems too short ({len(self.key)} chars). Please verify it's correct.")

            self.client = create_client(self.url, self.key)

        except Exception as e:
            logger.error(f"[WARN] Failed to initialize Supabase client: {str(e)}. Database features may be unavailable.")
            self.client = None

    def get_client(self) -> Optional[Client]:
        """Get Supabase client instance"""
        if not self.client:
            self._initialize_client()
        return self.client

    def _ensure_client(self) -> Client:
        """Ensure client is initialized and raise exception if not available"""
        client = self.get_client()
        if not client:
            raise RuntimeError("Supabase client not initialized. Please configure SUPABASE_URL and SUPABASE_KEY in .env file.")
        return client


def json_column(dotted: str, as_text: bool = True) -> str:
    """PostgREST path into the data column: metadata.type -> data->metadata->>type"""
    parts = dotted.split(".")
    prefix = "".join(f"->{p}" for p in parts[:-1])
    arrow = "->>" if as_text else "->"
    return f"data{prefix}{arrow}{parts[-1]}"


def nested_filter(filters: Dict[str, Any]) -> Dict[str, Any]:
    """Turn dotted equality filters into a jsonb containment document"""
    document: Dict[str, Any] = {}
    for dotted, value in filters.items():
        node = document
        parts = dotted.split(".")
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = normalize_filter_value(value)
    return document


class SupabaseDocumentStore(DocumentStore):
    """Document store on the Supabase documents table"""

    def __init__(
        self,
        service: SupabaseService,
        table: str = "documents",
        vector_column: str = "embedding",
        max_attempts: int = 5,
        retry_delay: float = 0.05
    ):
        super().__init__(max_attempts=max_attempts, retry_delay=retry_delay)
        self.service = service
        self.table = table
        self.vector_column = vector_column

    async def _execute(self, build):
        """Run a blocking supabase-py request off the event loop"""
        client = self.service._ensure_client()
        return await asyncio.to_thread(lambda: build(client).execute())

    @staticmethod
    def _snapshot(row: Dict[str, Any]) -> DocumentSnapshot:
        distance = row.get("distance")
        return DocumentSnapshot(
            path=row["path"],
            data=row.get("data") or {},
            version=row.get("version") or 0,
            distance=float(distance) if distance is not None else None
        )

    async def _read(self, path: str) -> Optional[DocumentSnapshot]:
        response = await self._execute(
            lambda c: c.table(self.table).select("path, data, version").eq("path", path).limit(1)
        )
        if response.data:
            return self._snapshot(response.data[0])
        return None

    def _write_payload(self, write: WriteOp) -> Dict[str, Any]:
        data = dict(write.data)
        embedding = data.pop(self.vector_column, None)
        return {
            "path": write.path,
            "collection": collection_of(write.path),
            "data": data,
            "merge": write.merge,
            "must_exist": write.must_exist,
            # pgvector accepts the list literal as text
            "embedding": str(embedding) if embedding else None,
        }

    async def _commit(self, reads: Dict[str, int], writes: Sequence[WriteOp]) -> None:
        payload = {
            "p_reads": [{"path": path, "version": version} for path, version in reads.items()],
            "p_writes": [self._write_payload(w) for w in writes],
        }
        try:
            await self._execute(lambda c: c.rpc("commit_documents", payload))
        except Exception as e:
            message = str(e)
            if "version_conflict" in message:
                raise TransactionConflict(message.split("version_conflict:")[-1].strip(" '\"}")) from e
            if "document_not_found" in message:
                raise DocumentNotFound(message.split("document_not_found:")[-1].strip(" '\"}")) from e
            raise

    async def query(
        self,
        collection: str,
        where: Iterable[WhereClause] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None
    ) -> List[DocumentSnapshot]:
        where = list(where)

        def build(client: Client):
            q = client.table(self.table).select("path, data, version").eq("collection", collection)
            for field_name, op, value in where:
                column = json_column(field_name)
                value = normalize_filter_value(value)
                if isinstance(value, bool):
                    value = str(value).lower()
                if op == "==":
                    q = q.eq(column, value)
                elif op == ">=":
                    q = q.gte(column, value)
                elif op == "<=":
                    q = q.lte(column, value)
                elif op == "in":
                    q = q.in_(column, list(value))
                else:
                    raise ValueError(f"Unsupported operator: {op}")
            if order_by:
                q = q.order(json_column(order_by), desc=descending)
            if limit:
                q = q.limit(limit)
            return q

        response = await self._execute(build)
        return [self._snapshot(row) for row in (response.data or [])]

    async def find_nearest(
        self,
        collection: str,
        vector_field: str,
        query_vector: Sequence[float],
        limit: int,
        filters: Optional[Dict[str, Any]] = None
    ) -> List[DocumentSnapshot]:
        """Cosine nearest neighbours via match_nearest_documents (pgvector)"""
        if vector_field != self.vector_column:
            raise ValueError(f"Vector search is only indexed on '{self.vector_column}'")
        params = {
            "p_collection": collection,
            "query_embedding": str(list(query_vector)),
            "match_count": limit,
            "p_filter": nested_filter(filters or {}),
        }
        response = await self._execute(lambda c: c.rpc("match_nearest_documents", params))
        return [self._snapshot(row) for row in (response.data or [])]
