from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from logtree.dependencies import get_broadcaster, get_store
from logtree.nodes.schemas import InitialNodesMessage
from logtree.nodes.store import NodeStore
from logtree.realtime.broadcaster import Broadcaster

router = APIRouter(tags=["realtime"])


@router.websocket("/")
@router.websocket("/ws")
async def node_stream(
    websocket: WebSocket,
    store: NodeStore = Depends(get_store),
    broadcaster: Broadcaster = Depends(get_broadcaster),
):
    await websocket.accept()
    # Register before the snapshot so nothing ingested in between is missed
    subscriber = broadcaster.subscribe(websocket)
    try:
        snapshot = InitialNodesMessage(payload=await store.all())
        await websocket.send_json(snapshot.model_dump(mode="json", by_alias=True))
        await subscriber.serve()
    except WebSocketDisconnect:
        # Client left before the snapshot went out
        pass
    finally:
        broadcaster.unsubscribe(subscriber)
