from sqlalchemy import (
    String,
    DateTime,
    Integer,
    PrimaryKeyConstraint,
    Index,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.ext.declarative import declarative_base
from datetime import datetime

Base = declarative_base()


class DocumentRecord(Base):
    """
    One row per marketplace document (groups, orders, surplus_items,
    notifications, users). The document body lives in ``data``; ``version``
    increases by one on every write and backs optimistic concurrency.
    """
    __tablename__ = "documents"
    __table_args__ = (
        PrimaryKeyConstraint("collection", "id", name="documents_pkey"),
        Index("documents_collection_created_at_idx", "collection", "created_at"),
        Index("documents_data_gin_idx", "data", postgresql_using="gin"),
    )

    collection: Mapped[str] = mapped_column(String(64), nullable=False)
    id: Mapped[str] = mapped_column(String(64), nullable=False)
    data: Mapped[dict] = mapped_column(JSONB, nullable=False, server_default=text("'{}'::jsonb"))
    version: Mapped[int] = mapped_column(Integer, nullable=False, server_default=text("1"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("CURRENT_TIMESTAMP")
    )

    def __repr__(self):
        return f"<DocumentRecord {self.collection}/{self.id} v{self.version}>"
