from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from dialogstate.core.state.base import Base


class ConversationRecord(Base):
    """
    Persisted conversation context for one session.

    Args:
        Base (declarative_base): The declarative base class for SQLAlchemy models.
    """

    __tablename__ = "conversations"
    id = Column(String, primary_key=True)  # external session id
    current_topic = Column(Text, default="", nullable=False)
    topic_start_turn = Column(Integer, default=0, nullable=False)
    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
    last_updated = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
    turns = relationship(
        "TurnRecord",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="TurnRecord.idx",
    )
