from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func

from app.database.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(120), unique=True, index=True, nullable=False)
    real_name = Column(String(180), nullable=False, default="")
    email = Column(String(180), unique=True, index=True, nullable=False)
    password = Column(String(255), nullable=False)
    role = Column(String(30), nullable=False, default="User")
    last_login = Column(DateTime(timezone=True), nullable=True)
    is_2fa_enabled = Column(Boolean, nullable=False, default=False)
    two_fa_secret = Column(String(64), nullable=True)
    sso_provider = Column(String(50), nullable=True)
    avatar_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
