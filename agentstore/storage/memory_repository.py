"""
Memory persistence, search and lexical similarity.

Besides the generic CRUD operations, memories support:
- structured search with relationship post-filtering (``search``)
- token-set Jaccard ranking against a piece of text (``find_similar``)
- FTS5 keyword search with a LIKE fallback (``search_fulltext``)
- access tracking (``record_access``) and aggregate statistics
- storing caller-supplied embedding vectors (no vector similarity)
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from agentstore.config import get_settings
from agentstore.errors import QueryError
from agentstore.storage.base_repository import BaseRepository, Filter
from agentstore.storage.codecs import (
    datetime_to_text,
    from_json,
    safe_get,
    text_to_datetime,
    to_json,
)
from agentstore.storage.connection import ConnectionManager
from agentstore.storage.embeddings import pack_embedding, unpack_embedding
from agentstore.storage.filters import (
    Contains,
    In,
    Like,
    Predicate,
    Range,
    compile_where,
    escape_like_pattern,
)
from agentstore.storage.similarity import jaccard_similarity
from agentstore.types import (
    Memory,
    MemoryQuery,
    MemoryRelationship,
    MemoryStatistics,
    MemoryType,
    RelationshipStats,
    RelationType,
    SimilarMemory,
    utc_now,
)

logger = logging.getLogger(__name__)

# Fields search() may sort on
SORT_FIELDS = frozenset({"importance", "confidence", "timestamp", "access_count"})

TOP_TAGS_LIMIT = 10


def _check_unit_interval(name: str, value: Any) -> float:
    if value is None:
        raise ValueError(f"{name} must be between 0 and 1, got None")
    value = float(value)
    if not 0.0 <= value <= 1.0:
        raise ValueError(f"{name} must be between 0 and 1, got {value}")
    return value


class MemoryRepository(BaseRepository[Memory]):
    table_name = "memories"
    columns = frozenset(
        {
            "id",
            "type",
            "content",
            "context",
            "source",
            "timestamp",
            "expires",
            "importance",
            "confidence",
            "access_count",
            "last_accessed",
            "tags",
            "relationships",
            "metadata",
            "created_at",
            "updated_at",
        }
    )
    tag_table = ("memory_tags", "memory_id")

    def __init__(
        self,
        db: ConnectionManager,
        similarity_threshold: Optional[float] = None,
        similarity_limit: Optional[int] = None,
    ):
        super().__init__(db)
        settings = get_settings()
        self.similarity_threshold = (
            similarity_threshold
            if similarity_threshold is not None
            else settings.similarity_threshold
        )
        self.similarity_limit = (
            similarity_limit if similarity_limit is not None else settings.similarity_limit
        )

    # === Codec ===

    def entity_to_row(self, memory: Memory) -> Dict[str, Any]:
        return {
            "type": MemoryType(memory.type).value,
            "content": memory.content,
            "context": memory.context,
            "source": memory.source or "system",
            "timestamp": datetime_to_text(memory.timestamp or utc_now()),
            "expires": datetime_to_text(memory.expires),
            "importance": _check_unit_interval("importance", memory.importance),
            "confidence": _check_unit_interval("confidence", memory.confidence),
            "access_count": int(memory.access_count or 0),
            "last_accessed": datetime_to_text(memory.last_accessed),
            "tags": to_json(memory.tags or []),
            "relationships": to_json([r.to_dict() for r in memory.relationships or []]),
            "metadata": to_json(memory.metadata or {}),
        }

    def row_to_entity(self, row: Dict[str, Any]) -> Memory:
        relationships = from_json(row.get("relationships")) or []
        return Memory(
            id=row["id"],
            type=MemoryType(safe_get(row, "type", MemoryType.CONCEPT.value)),
            content=safe_get(row, "content", ""),
            context=safe_get(row, "context", ""),
            importance=safe_get(row, "importance", 0.5),
            confidence=safe_get(row, "confidence", 0.5),
            source=safe_get(row, "source", "system"),
            timestamp=text_to_datetime(row.get("timestamp")),
            access_count=safe_get(row, "access_count", 0),
            last_accessed=text_to_datetime(row.get("last_accessed")),
            expires=text_to_datetime(row.get("expires")),
            tags=from_json(row.get("tags")) or [],
            relationships=[MemoryRelationship.from_dict(r) for r in relationships],
            metadata=from_json(row.get("metadata")) or {},
            created_at=text_to_datetime(row.get("created_at")),
            updated_at=text_to_datetime(row.get("updated_at")),
        )

    def changes_to_columns(self, changes: Mapping[str, Any]) -> Dict[str, Any]:
        changes = dict(changes)
        for name in ("importance", "confidence"):
            if name in changes:
                changes[name] = _check_unit_interval(name, changes[name])
        relationships = changes.pop("relationships", None)
        columns = super().changes_to_columns(changes)
        if relationships is not None:
            columns["relationships"] = to_json(
                [r.to_dict() if isinstance(r, MemoryRelationship) else r for r in relationships]
            )
        return columns

    def build_predicates(self, filter: Filter) -> List[Predicate]:
        filter = dict(filter)
        predicates: List[Predicate] = []

        tags = filter.pop("tags", None)
        if tags:
            predicates.append(Contains("tags", tuple(tags)))

        for name in ("importance", "confidence"):
            bounds = filter.pop(name, None)
            if bounds is None:
                continue
            if isinstance(bounds, Mapping):
                predicates.append(Range(name, bounds.get("min"), bounds.get("max")))
            else:
                filter[name] = bounds

        start_date = filter.pop("start_date", None)
        end_date = filter.pop("end_date", None)
        if start_date is not None or end_date is not None:
            predicates.append(Range("timestamp", start_date, end_date))

        last_accessed_after = filter.pop("last_accessed_after", None)
        if last_accessed_after is not None:
            predicates.append(Range("last_accessed", last_accessed_after, None))

        min_access_count = filter.pop("min_access_count", None)
        if min_access_count is not None:
            predicates.append(Range("access_count", min_access_count, None))

        search = filter.pop("search", None)
        if search:
            predicates.append(Like(("content", "context"), search))

        return predicates + super().build_predicates(filter)

    # === Search ===

    async def search(
        self,
        query: MemoryQuery,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        sort_field: Optional[str] = None,
        sort_order: str = "desc",
    ) -> List[Memory]:
        """Find memories matching a structured query.

        Relationship criteria are applied to the rows the SQL query returned,
        so with ``limit`` set fewer than ``limit`` results may come back.
        """
        filter: Dict[str, Any] = {}
        if query.types:
            filter["type"] = list(query.types)
        if query.contexts:
            filter["context"] = list(query.contexts)
        if query.tags:
            filter["tags"] = list(query.tags)
        if query.start is not None:
            filter["start_date"] = query.start
        if query.end is not None:
            filter["end_date"] = query.end
        if query.importance_min is not None or query.importance_max is not None:
            filter["importance"] = {"min": query.importance_min, "max": query.importance_max}
        if query.confidence_min is not None or query.confidence_max is not None:
            filter["confidence"] = {"min": query.confidence_min, "max": query.confidence_max}
        if query.text:
            filter["search"] = query.text

        if sort_field is not None:
            if sort_field not in SORT_FIELDS:
                raise ValueError(f"Invalid sort field: {sort_field}")
            filter["order_by"] = sort_field
            filter["order_direction"] = sort_order
        if limit is not None:
            filter["limit"] = limit
        if offset is not None:
            filter["offset"] = offset

        memories = await self.find_all(filter)

        if query.relationship_types:
            wanted = {RelationType(t) for t in query.relationship_types}
            target_id = query.relationship_target_id
            memories = [
                m
                for m in memories
                if any(
                    r.type in wanted and (target_id is None or r.target_id == target_id)
                    for r in m.relationships
                )
            ]
        return memories

    async def find_similar(
        self,
        content: str,
        contexts: Optional[Sequence[str]] = None,
        threshold: Optional[float] = None,
        limit: Optional[int] = None,
    ) -> List[SimilarMemory]:
        """Rank memories by token-set Jaccard similarity to ``content``.

        Memories scoring below ``threshold`` are dropped; the rest are
        returned most similar first, at most ``limit`` of them.
        """
        threshold = self.similarity_threshold if threshold is None else threshold
        limit = self.similarity_limit if limit is None else limit

        filter: Dict[str, Any] = {}
        if contexts:
            filter["context"] = list(contexts)
        candidates = await self.find_all(filter)

        scored = []
        for memory in candidates:
            similarity = jaccard_similarity(content, memory.content)
            if similarity >= threshold:
                scored.append(SimilarMemory(memory=memory, similarity=similarity))
        scored.sort(key=lambda s: s.similarity, reverse=True)
        return scored[:limit]

    async def search_fulltext(self, query: str, limit: int = 20) -> List[Memory]:
        """Keyword search over content and context using the FTS5 index.

        Falls back to LIKE matching when the index is missing or the query
        is not valid FTS5 syntax.
        """
        try:
            rows = await self.db.all(
                """
                SELECT m.* FROM memories m
                JOIN memory_fts f ON m.rowid = f.rowid
                WHERE memory_fts MATCH ?
                ORDER BY rank
                LIMIT ?
                """,
                (query, limit),
            )
        except QueryError as e:
            message = str(e).lower()
            if "no such table" not in message and "fts5" not in message:
                raise
            logger.debug("FTS5 search unavailable, using LIKE fallback")
            pattern = f"%{escape_like_pattern(query)}%"
            rows = await self.db.all(
                """
                SELECT * FROM memories
                WHERE content LIKE ? ESCAPE '\\' OR context LIKE ? ESCAPE '\\'
                ORDER BY timestamp DESC
                LIMIT ?
                """,
                (pattern, pattern, limit),
            )
        return [self.row_to_entity(row) for row in rows]

    # === Access tracking ===

    async def record_access(self, memory_id: str) -> Optional[Memory]:
        """Increment the access count and stamp the access time.

        Returns None if the memory does not exist.
        """
        now = datetime_to_text(utc_now())
        result = await self.db.run(
            "UPDATE memories SET access_count = access_count + 1, last_accessed = ?, "
            "updated_at = MAX(?, created_at) WHERE id = ?",
            (now, now, memory_id),
        )
        if not result.rows_affected:
            return None
        return await self.find_by_id(memory_id)

    # === Statistics ===

    async def get_statistics(
        self,
        types: Optional[Sequence[MemoryType]] = None,
        contexts: Optional[Sequence[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> MemoryStatistics:
        predicates: List[Predicate] = []
        if types:
            predicates.append(In("type", tuple(types)))
        if contexts:
            predicates.append(In("context", tuple(contexts)))
        if start is not None or end is not None:
            predicates.append(Range("timestamp", start, end))
        where, params = compile_where(predicates)

        totals = await self.db.get(
            f"""
            SELECT COUNT(*) AS total, AVG(importance) AS avg_importance,
                   AVG(confidence) AS avg_confidence
            FROM memories {where}
            """,
            params,
        )
        stats = MemoryStatistics(
            total=totals["total"] if totals else 0,
            average_importance=(totals or {}).get("avg_importance") or 0.0,
            average_confidence=(totals or {}).get("avg_confidence") or 0.0,
        )

        for column, target in (("type", stats.by_type), ("context", stats.by_context)):
            rows = await self.db.all(
                f"SELECT {column} AS group_key, COUNT(*) AS count FROM memories {where} "
                f"GROUP BY {column}",
                params,
            )
            for row in rows:
                target[row["group_key"] or ""] = row["count"]

        tag_rows = await self.db.all(
            f"""
            SELECT t.tag AS tag, COUNT(*) AS count
            FROM memory_tags t JOIN memories m ON m.id = t.memory_id
            {where}
            GROUP BY t.tag
            ORDER BY count DESC, t.tag ASC
            LIMIT {TOP_TAGS_LIMIT}
            """,
            params,
        )
        stats.top_tags = [{"tag": row["tag"], "count": row["count"]} for row in tag_rows]

        strengths: Dict[RelationType, List[float]] = defaultdict(list)
        for row in await self.db.all(f"SELECT relationships FROM memories {where}", params):
            for data in from_json(row["relationships"]) or []:
                relationship = MemoryRelationship.from_dict(data)
                strengths[relationship.type].append(relationship.strength)
        stats.relationship_stats = [
            RelationshipStats(
                type=relation_type,
                count=len(values),
                average_strength=sum(values) / len(values),
            )
            for relation_type, values in sorted(strengths.items(), key=lambda kv: kv[0].value)
        ]
        return stats

    # === Embeddings ===

    async def save_embedding(self, memory_id: str, vector: Sequence[float]) -> bool:
        """Store (or replace) the embedding of a memory.

        Returns False if the memory does not exist.
        """
        blob = pack_embedding(vector)
        async with self._atomic():
            exists = await self.db.get("SELECT 1 AS found FROM memories WHERE id = ?", (memory_id,))
            if not exists:
                return False
            await self.db.run(
                "INSERT OR REPLACE INTO memory_embeddings (memory_id, embedding) VALUES (?, ?)",
                (memory_id, blob),
            )
        return True

    async def get_embedding(self, memory_id: str) -> Optional[List[float]]:
        row = await self.db.get(
            "SELECT embedding FROM memory_embeddings WHERE memory_id = ?", (memory_id,)
        )
        return unpack_embedding(row["embedding"]) if row else None

    async def delete_embedding(self, memory_id: str) -> bool:
        result = await self.db.run(
            "DELETE FROM memory_embeddings WHERE memory_id = ?", (memory_id,)
        )
        return result.rows_affected > 0
