from sqlalchemy import Column, DateTime, Integer, String, Text, func

from app.database.base import Base


class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True, index=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    username = Column(String(120), nullable=True, index=True)
    action_type = Column(String(40), nullable=False, index=True)
    target_type = Column(String(40), nullable=False, index=True)
    target_id = Column(String(255), nullable=True)
    details = Column(Text, nullable=True)
