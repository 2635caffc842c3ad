"""
Storefront - Document Store
Schema-less documents kept in one SQL table, addressed by collection path.

Collections and subcollections share one namespace: ``orders`` holds orders,
``orders/<id>/chat`` holds the chat messages of one order. Every write bumps
the document ``version``; ``update`` is a compare-and-set on that version so
two concurrent writers to the same document cannot silently overwrite each
other.
"""
import copy
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import Column, DateTime, Integer, JSON, String, delete, select, update
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from storefront.core.errors import ConflictError, NotFoundError

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    return utcnow().isoformat()


# ============================================================
# TABLE
# ============================================================

class DocumentRow(Base):
    __tablename__ = "documents"

    path = Column(String(512), primary_key=True)
    collection = Column(String(400), nullable=False, index=True)
    doc_id = Column(String(128), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


@dataclass
class Document:
    """A stored document snapshot"""
    id: str
    data: Dict[str, Any]
    version: int

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, **self.data}

    def get(self, field: str, default: Any = None) -> Any:
        return get_path(self.data, field, default)


# ============================================================
# FIELD PATHS
# ============================================================

def get_path(data: Dict[str, Any], field: str, default: Any = None) -> Any:
    """Read a dotted field path ("payment.status")"""
    current: Any = data
    for part in field.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


def set_path(data: Dict[str, Any], field: str, value: Any):
    """Write a dotted field path, creating intermediate maps"""
    parts = field.split(".")
    current = data
    for part in parts[:-1]:
        nxt = current.get(part)
        if not isinstance(nxt, dict):
            nxt = {}
            current[part] = nxt
        current = nxt
    current[parts[-1]] = value


def deep_merge(base: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in incoming.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def subcollection(collection: str, doc_id: str, name: str) -> str:
    return f"{collection}/{doc_id}/{name}"


def _doc_path(collection: str, doc_id: str) -> str:
    return f"{collection}/{doc_id}"


def _to_document(row: DocumentRow) -> Document:
    return Document(id=row.doc_id, data=copy.deepcopy(row.data or {}), version=row.version)


# ============================================================
# STORE
# ============================================================

class DocumentStore:
    """Async document store over a SQLAlchemy engine"""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.session_maker = async_sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, url: str) -> "DocumentStore":
        return cls(create_async_engine(url, future=True))

    async def init(self):
        """Create the documents table if missing"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self):
        await self.engine.dispose()

    # ------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Optional[Document]:
        async with self.session_maker() as db:
            row = await db.get(DocumentRow, _doc_path(collection, doc_id))
            return _to_document(row) if row else None

    async def all(self, collection: str) -> List[Document]:
        async with self.session_maker() as db:
            result = await db.execute(
                select(DocumentRow)
                .where(DocumentRow.collection == collection)
                .order_by(DocumentRow.created_at, DocumentRow.doc_id)
            )
            return [_to_document(row) for row in result.scalars().all()]

    async def where(
        self,
        collection: str,
        field: str,
        value: Any,
        limit: Optional[int] = None
    ) -> List[Document]:
        """Equality query on a (dotted) field"""
        matches = []
        for doc in await self.all(collection):
            if get_path(doc.data, field) == value:
                matches.append(doc)
                if limit is not None and len(matches) >= limit:
                    break
        return matches

    # ------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------

    async def add(self, collection: str, data: Dict[str, Any]) -> Document:
        """Insert a document under a generated id"""
        doc_id = uuid.uuid4().hex[:20]
        return await self.set(collection, doc_id, data)

    async def set(
        self,
        collection: str,
        doc_id: str,
        data: Dict[str, Any],
        merge: bool = False
    ) -> Document:
        """Create or replace a document (or deep-merge into it)"""
        path = _doc_path(collection, doc_id)
        async with self.session_maker() as db:
            row = await db.get(DocumentRow, path)
            if row is None:
                row = DocumentRow(
                    path=path,
                    collection=collection,
                    doc_id=doc_id,
                    data=copy.deepcopy(data),
                    version=1,
                )
                db.add(row)
            else:
                row.data = deep_merge(row.data or {}, data) if merge else copy.deepcopy(data)
                row.version = row.version + 1
            await db.commit()
            return _to_document(row)

    async def update(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None
    ) -> Document:
        """
        Apply dotted-path field updates to an existing document.

        The write only lands if the stored version is still the one that was
        read (or ``expected_version`` when given); otherwise ConflictError.
        """
        path = _doc_path(collection, doc_id)
        async with self.session_maker() as db:
            row = await db.get(DocumentRow, path)
            if row is None:
                raise NotFoundError(f"Document {path} not found")

            current_version = row.version
            if expected_version is not None and current_version != expected_version:
                raise ConflictError(f"Document {path} was modified concurrently")

            new_data = copy.deepcopy(row.data or {})
            for field, value in fields.items():
                set_path(new_data, field, value)

            result = await db.execute(
                update(DocumentRow)
                .where(DocumentRow.path == path, DocumentRow.version == current_version)
                .values(data=new_data, version=current_version + 1, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await db.rollback()
                raise ConflictError(f"Document {path} was modified concurrently")

            await db.commit()
            return Document(id=doc_id, data=new_data, version=current_version + 1)

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self.session_maker() as db:
            result = await db.execute(
                delete(DocumentRow).where(DocumentRow.path == _doc_path(collection, doc_id))
            )
            await db.commit()
            return result.rowcount > 0

    async def delete_many(self, collection: str) -> int:
        """Delete every document of a collection in one batch"""
        async with self.session_maker() as db:
            result = await db.execute(
                delete(DocumentRow).where(DocumentRow.collection == collection)
            )
            await db.commit()
            return result.rowcount

    async def ping(self) -> float:
        """Write a health marker and return the round-trip latency in ms"""
        start = time.perf_counter()
        await self.set(
            "bot_settings",
            "health_check",
            {"lastCheck": now_iso(), "checkedBy": "monitor"},
            merge=True,
        )
        return (time.perf_counter() - start) * 1000
