"""SQLAlchemy models."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, JSON, String
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    user_id = Column(String, unique=True, nullable=False, index=True)
    username = Column(String, nullable=True)
    wallet = Column(String, nullable=True)
    secret = Column(String, nullable=True)
    honey_settings = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def to_record(self) -> dict:
        return {
            "username": self.username,
            "wallet": self.wallet,
            "secret": self.secret,
            "honey_settings": self.honey_settings,
        }
