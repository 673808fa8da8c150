from starlette.requests import HTTPConnection

from logtree.nodes.aggregation import AggregationEngine
from logtree.nodes.store import NodeStore
from logtree.realtime.broadcaster import Broadcaster


def get_engine(conn: HTTPConnection) -> AggregationEngine:
    return conn.app.state.engine


def get_store(conn: HTTPConnection) -> NodeStore:
    return conn.app.state.engine.store


def get_broadcaster(conn: HTTPConnection) -> Broadcaster:
    return conn.app.state.broadcaster
