"""Incremental roll-up of log entries into a summary tree.

Every time ``factor`` nodes at one level are waiting without a parent, the
oldest ``factor`` of them are folded into a single summary one level up. The
new summary may in turn complete a batch at its own level, so one ingest can
cascade through several levels. The walk re-reads the store at every level and
stops at the first level that is not full.
"""

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import structlog

from logtree.nodes.exceptions import NodeConsistencyError
from logtree.nodes.schemas import LogNode, Node, SummaryNode
from logtree.nodes.store import NodeStore

logger = structlog.get_logger()

DEFAULT_FACTOR = 5


def summarize_children(children: Sequence[Node], snippet_length: int = 10, max_length: int = 100) -> str:
    """Placeholder summary: a numbered snippet of each child, in order."""
    parts = [
        f"{position}:({child.content[:snippet_length]})"
        for position, child in enumerate(children, start=1)
    ]
    return " ".join(parts)[:max_length]


@dataclass(frozen=True)
class IngestResult:
    leaf: LogNode
    # Every node created or re-parented by this ingest, leaf first, each id once
    changed: list[Node] = field(default_factory=list)


class AggregationEngine:
    def __init__(
        self,
        store: NodeStore,
        factor: int = DEFAULT_FACTOR,
        summarize: Callable[[Sequence[Node]], str] = summarize_children,
    ):
        if factor < 2:
            raise ValueError(f"Aggregation factor must be at least 2, got {factor}")
        self.store = store
        self.factor = factor
        self._summarize = summarize
        # Collapsing is read-modify-write across several nodes; one writer at a time
        self._lock = asyncio.Lock()

    async def ingest(self, content: str) -> IngestResult:
        """Store a new leaf and roll up every level it completes."""
        async with self._lock:
            leaf = LogNode(content=content)
            await self.store.put(leaf)
            logger.info("leaf_ingested", node_id=leaf.id)

            changed: dict[str, Node] = {leaf.id: leaf}
            await self._cascade(0, changed)
            # The leaf may have been adopted during the cascade; hand back its final state
            return IngestResult(leaf=changed[leaf.id], changed=list(changed.values()))

    async def collapse(self, level: int) -> list[Node]:
        """Roll up ``level`` and every level above it that becomes full.

        Returns the summaries created and the children they adopted.
        """
        async with self._lock:
            changed: dict[str, Node] = {}
            await self._cascade(level, changed)
            return list(changed.values())

    async def _cascade(self, level: int, changed: dict[str, Node]) -> None:
        """Collapse upward from ``level``, recording each write in ``changed`` as it commits."""
        try:
            while True:
                step = await self._collapse_once(level)
                if not step:
                    return
                for node in step:
                    changed[node.id] = node
                level += 1
        except NodeConsistencyError as exc:
            # Lower levels are already in the store; let the caller announce them
            exc.committed = list(changed.values())
            raise

    async def _collapse_once(self, level: int) -> list[Node]:
        frontier = await self.store.unparented_at_level(level)
        if len(frontier) < self.factor:
            return []

        children = frontier[: self.factor]
        child_ids = [child.id for child in children]
        summary = SummaryNode(
            level=level + 1,
            content=self._summarize(children),
            child_ids=tuple(child_ids),
        )

        try:
            await self._verify_frontier(level, child_ids, summary.id)
            await self.store.put(summary)
            linked = await self.store.link_children(child_ids, summary.id)
        except NodeConsistencyError as exc:
            if exc.level is None:
                exc.level = level
            logger.error(
                "consistency_fault",
                tree_level=level,
                summary_id=summary.id,
                child_ids=child_ids,
                offending_ids=exc.node_ids,
                error=str(exc),
            )
            raise

        logger.info("summary_created", node_id=summary.id, tree_level=summary.level, child_ids=child_ids)
        return [summary, *linked]

    async def _verify_frontier(self, level: int, child_ids: list[str], parent_id: str) -> None:
        """Check the batch is still resolvable and unowned before anything is written."""
        stale = []
        for child_id in child_ids:
            child = await self.store.get(child_id)
            if child is None or child.level != level or child.parent_id is not None:
                stale.append(child_id)
        if stale:
            raise NodeConsistencyError(
                f"Level {level} batch for {parent_id} references missing or already linked nodes {stale}",
                level=level,
                node_ids=stale,
                parent_id=parent_id,
            )
