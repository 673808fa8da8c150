import uuid
from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _NodeBase(BaseModel):
    """Fields shared by both node kinds.

    Nodes are frozen; the one permitted mutation (setting ``parent_id`` once)
    is done by the store replacing the node with an updated copy.
    """

    id: str = Field(default_factory=_new_id)
    content: str
    timestamp: datetime = Field(default_factory=_utcnow)
    parent_id: str | None = None

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class LogNode(_NodeBase):
    type: Literal["log"] = "log"
    level: Literal[0] = 0


class SummaryNode(_NodeBase):
    type: Literal["summary"] = "summary"
    level: int = Field(ge=1)
    child_ids: tuple[str, ...] = Field(min_length=2)


Node = Annotated[Union[LogNode, SummaryNode], Field(discriminator="type")]


class LogCreate(BaseModel):
    content: str = Field(min_length=1, strict=True)


class InitialNodesMessage(BaseModel):
    type: Literal["initial_nodes"] = "initial_nodes"
    payload: list[Node]


class NodesUpdatedMessage(BaseModel):
    type: Literal["nodes_updated"] = "nodes_updated"
    payload: list[Node]
