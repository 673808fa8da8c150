"""Node storage backends.

Both backends implement the same small async contract (:class:`NodeStore`).
They do no aggregation and no cross-node validation beyond refusing to link
children that are missing or already owned by another summary; keeping the
tree well-formed is the aggregation engine's job.
"""

from datetime import timezone
from typing import Protocol

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from logtree.config import Settings
from logtree.database import create_session_factory
from logtree.models.base import Base
from logtree.nodes.exceptions import NodeConsistencyError
from logtree.nodes.models import NodeRecord
from logtree.nodes.schemas import LogNode, Node, SummaryNode

logger = structlog.get_logger()


class NodeStore(Protocol):
    async def put(self, node: Node) -> None: ...

    async def get(self, node_id: str) -> Node | None: ...

    async def all(self) -> list[Node]: ...

    async def unparented_at_level(self, level: int) -> list[Node]: ...

    async def link_children(self, node_ids: list[str], parent_id: str) -> list[Node]: ...

    async def clear(self) -> None: ...

    async def close(self) -> None: ...


def _check_linkable(found: dict[str, str | None], node_ids: list[str], parent_id: str) -> None:
    """Validate a link request against ``{id: current parent_id}`` of the found nodes."""
    missing = [node_id for node_id in node_ids if node_id not in found]
    if missing:
        raise NodeConsistencyError(
            f"Cannot link missing nodes {missing} to {parent_id}",
            node_ids=missing,
            parent_id=parent_id,
        )
    owned = [node_id for node_id in node_ids if found[node_id] not in (None, parent_id)]
    if owned:
        raise NodeConsistencyError(
            f"Nodes {owned} already belong to another summary, refusing to relink to {parent_id}",
            node_ids=owned,
            parent_id=parent_id,
        )


class MemoryNodeStore:
    """Dict-backed store. Nothing survives the process."""

    def __init__(self) -> None:
        self._nodes: dict[str, Node] = {}

    async def put(self, node: Node) -> None:
        self._nodes[node.id] = node

    async def get(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    async def all(self) -> list[Node]:
        return list(self._nodes.values())

    async def unparented_at_level(self, level: int) -> list[Node]:
        frontier = [
            node for node in self._nodes.values()
            if node.level == level and node.parent_id is None
        ]
        # Stable sort: dict order is insertion order, so equal timestamps keep arrival order
        frontier.sort(key=lambda node: node.timestamp)
        return frontier

    async def link_children(self, node_ids: list[str], parent_id: str) -> list[Node]:
        found = {
            node_id: self._nodes[node_id].parent_id
            for node_id in node_ids if node_id in self._nodes
        }
        _check_linkable(found, node_ids, parent_id)

        linked = []
        for node_id in node_ids:
            node = self._nodes[node_id].model_copy(update={"parent_id": parent_id})
            self._nodes[node_id] = node
            linked.append(node)
        return linked

    async def clear(self) -> None:
        self._nodes.clear()

    async def close(self) -> None:
        self._nodes.clear()


def _to_record(node: Node) -> NodeRecord:
    match node:
        case LogNode():
            child_ids = None
        case SummaryNode():
            child_ids = list(node.child_ids)
        case _:
            raise TypeError(f"Unknown node type: {type(node).__name__}")
    return NodeRecord(
        id=node.id,
        type=node.type,
        level=node.level,
        content=node.content,
        timestamp=node.timestamp,
        parent_id=node.parent_id,
        child_ids=child_ids,
    )


def _to_node(record: NodeRecord) -> Node:
    timestamp = record.timestamp
    # SQLite hands back naive datetimes even for timezone-aware columns
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)

    match record.type:
        case "log":
            return LogNode(
                id=record.id,
                content=record.content,
                timestamp=timestamp,
                parent_id=record.parent_id,
            )
        case "summary":
            return SummaryNode(
                id=record.id,
                level=record.level,
                content=record.content,
                timestamp=timestamp,
                parent_id=record.parent_id,
                child_ids=tuple(record.child_ids or ()),
            )
        case _:
            raise NodeConsistencyError(
                f"Stored node {record.id} has unknown type {record.type!r}",
                level=record.level,
                node_ids=[record.id],
            )


class SqlNodeStore:
    """Store backed by the ``nodes`` table through SQLAlchemy's async ORM."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], engine: AsyncEngine | None = None):
        self._session_factory = session_factory
        self._engine = engine

    @classmethod
    def from_url(cls, database_url: str) -> "SqlNodeStore":
        engine, session_factory = create_session_factory(database_url)
        return cls(session_factory, engine)

    @property
    def dialect(self) -> str | None:
        return self._engine.dialect.name if self._engine is not None else None

    async def init(self) -> None:
        """Create the ``nodes`` table if it does not exist yet."""
        if self._engine is None:
            return
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def put(self, node: Node) -> None:
        async with self._session_factory() as db:
            result = await db.execute(select(NodeRecord).where(NodeRecord.id == node.id))
            record = result.scalar_one_or_none()
            fresh = _to_record(node)
            if record is None:
                db.add(fresh)
            else:
                record.type = fresh.type
                record.level = fresh.level
                record.content = fresh.content
                record.timestamp = fresh.timestamp
                record.parent_id = fresh.parent_id
                record.child_ids = fresh.child_ids
            await db.commit()

    async def get(self, node_id: str) -> Node | None:
        async with self._session_factory() as db:
            result = await db.execute(select(NodeRecord).where(NodeRecord.id == node_id))
            record = result.scalar_one_or_none()
            return _to_node(record) if record else None

    async def all(self) -> list[Node]:
        async with self._session_factory() as db:
            result = await db.execute(select(NodeRecord).order_by(NodeRecord.seq))
            return [_to_node(r) for r in result.scalars().all()]

    async def unparented_at_level(self, level: int) -> list[Node]:
        query = (
            select(NodeRecord)
            .where(NodeRecord.level == level, NodeRecord.parent_id.is_(None))
            .order_by(NodeRecord.timestamp, NodeRecord.seq)
        )
        async with self._session_factory() as db:
            result = await db.execute(query)
            return [_to_node(r) for r in result.scalars().all()]

    async def link_children(self, node_ids: list[str], parent_id: str) -> list[Node]:
        async with self._session_factory() as db:
            result = await db.execute(select(NodeRecord).where(NodeRecord.id.in_(node_ids)))
            records = {r.id: r for r in result.scalars().all()}
            _check_linkable({i: r.parent_id for i, r in records.items()}, node_ids, parent_id)

            for node_id in node_ids:
                records[node_id].parent_id = parent_id
            await db.commit()
            return [_to_node(records[node_id]) for node_id in node_ids]

    async def clear(self) -> None:
        async with self._session_factory() as db:
            await db.execute(delete(NodeRecord))
            await db.commit()

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()


async def build_store(config: Settings) -> NodeStore:
    """Construct and initialise the backend selected by ``NODE_STORE``."""
    if config.NODE_STORE == "sql":
        store = SqlNodeStore.from_url(config.DATABASE_URL)
        await store.init()
        logger.info("node_store_ready", backend="sql", dialect=store.dialect)
        return store

    logger.info("node_store_ready", backend="memory")
    return MemoryNodeStore()
