from fastapi import APIRouter, Depends, HTTPException, status

from logtree.dependencies import get_broadcaster, get_engine, get_store
from logtree.nodes.aggregation import AggregationEngine
from logtree.nodes.schemas import LogCreate, LogNode, Node
from logtree.nodes.service import get_all_nodes, get_node_by_id, submit_log
from logtree.nodes.store import NodeStore
from logtree.realtime.broadcaster import Broadcaster

router = APIRouter(prefix="/logs", tags=["logs"])


@router.post("", response_model=LogNode, status_code=status.HTTP_201_CREATED)
async def add_log(
    data: LogCreate,
    engine: AggregationEngine = Depends(get_engine),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    return await submit_log(engine, broadcaster, data.content)


@router.get("", response_model=list[Node])
async def list_nodes(store: NodeStore = Depends(get_store)):
    return await get_all_nodes(store)


@router.get("/{node_id}", response_model=Node)
async def get_node(node_id: str, store: NodeStore = Depends(get_store)):
    node = await get_node_by_id(store, node_id)
    if node is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Node with id {node_id} not found.")
    return node
