from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from logtree.models.base import Base


class NodeRecord(Base):
    __tablename__ = "nodes"
    __table_args__ = (
        Index("ix_nodes_level_parent_id", "level", "parent_id"),
    )

    # Insertion sequence; breaks ties between equal timestamps
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # log, summary
    level: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    parent_id: Mapped[str | None] = mapped_column(String(36))
    child_ids: Mapped[list | None] = mapped_column(JSON, default=None)
