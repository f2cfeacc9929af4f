"""
Data model for persisted sales snapshots.
Stores the canonical JSON payload for audit and for reopening proposals/deals later.
"""
from sqlalchemy import Integer, String, DateTime, Text, Enum
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timezone
from typing import Any, List
from loanquote.core.database import Base
from loanquote.snapshots.schemas import SnapshotKind


def get_enum_values(enum_cls: Any) -> List[str]:
    """Helper to get values from an Enum class for SQLAlchemy."""
    return [e.value for e in enum_cls]


class SalesSnapshot(Base):
    """Entity representing one stored simulation, proposal or deal snapshot."""

    __tablename__ = "snapshots_vendas"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    kind: Mapped[SnapshotKind] = mapped_column(
        "tipo",
        Enum(SnapshotKind, values_callable=get_enum_values),
        nullable=False,
        index=True
    )
    version: Mapped[str] = mapped_column("versao", String(20), nullable=True)
    ticket_id: Mapped[str] = mapped_column(String(100), index=True, nullable=True)
    payload: Mapped[str] = mapped_column("conteudo", Text, nullable=False)  # Serialized JSON
    created_at: Mapped[datetime] = mapped_column("criado_em", DateTime, default=lambda: datetime.now(timezone.utc))
    correlation_id: Mapped[str] = mapped_column(String(100), index=True, nullable=True)

    def __repr__(self):
        return f"<SalesSnapshot(id={self.id}, kind={self.kind}, ticket_id={self.ticket_id})>"
