from sqlalchemy import Column, Integer, String, Text

from app.database.base import Base


class AppConfig(Base):
    __tablename__ = "app_config"

    id = Column(Integer, primary_key=True, index=True)
    config_key = Column(String(120), unique=True, index=True, nullable=False)
    config_value = Column(Text, nullable=True)
