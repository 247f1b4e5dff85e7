from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from dialogstate.core.state.base import Base


class TurnRecord(Base):
    """
    Represents a finalized question/answer turn within a conversation.

    Args:
        Base (declarative_base): The declarative base class for SQLAlchemy models.
    """

    __tablename__ = "turns"
    __table_args__ = (UniqueConstraint("conversation_id", "idx"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(String, ForeignKey("conversations.id"), index=True)
    idx = Column(Integer, nullable=False)  # 0..N
    question = Column(Text, nullable=False)
    answer = Column(Text, nullable=False)
    topic = Column(Text, default="", nullable=False)
    confidence = Column(Float, default=0.5, nullable=False)
    was_researched = Column(Boolean, default=False, nullable=False)
    intent_analysis = Column(Text, nullable=True)  # JSON
    created_at = Column(
        DateTime, default=lambda: datetime.now(timezone.utc), nullable=False
    )
    conversation = relationship("ConversationRecord", back_populates="turns")
