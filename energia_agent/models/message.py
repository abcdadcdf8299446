from sqlalchemy import Column, DateTime, Integer, Text

from energia_agent.database import Base


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    contact_id = Column(Text, nullable=False, index=True)
    direction = Column(Text, nullable=False)  # user, agent
    text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
