import structlog

from logtree.nodes.aggregation import AggregationEngine
from logtree.nodes.exceptions import NodeConsistencyError
from logtree.nodes.schemas import LogNode, Node, NodesUpdatedMessage
from logtree.nodes.store import NodeStore
from logtree.realtime.broadcaster import Broadcaster

logger = structlog.get_logger()


async def submit_log(engine: AggregationEngine, broadcaster: Broadcaster, content: str) -> LogNode:
    """Ingest one entry, then announce everything the cascade touched."""
    try:
        result = await engine.ingest(content)
    except NodeConsistencyError as exc:
        # Whatever reached the store before the fault still goes out, so clients match it
        if exc.committed:
            delivered = broadcaster.publish(NodesUpdatedMessage(payload=exc.committed))
            logger.warning("partial_nodes_published", changed_count=len(exc.committed), subscribers=delivered)
        raise

    delivered = broadcaster.publish(NodesUpdatedMessage(payload=result.changed))
    logger.info(
        "nodes_published",
        leaf_id=result.leaf.id,
        changed_count=len(result.changed),
        subscribers=delivered,
    )
    return result.leaf


async def get_all_nodes(store: NodeStore) -> list[Node]:
    return await store.all()


async def get_node_by_id(store: NodeStore, node_id: str) -> Node | None:
    return await store.get(node_id)
