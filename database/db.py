"""User record store backed by SQLAlchemy."""

from typing import Any, Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

import config
from database.models import Base, User

RECORD_FIELDS = ("username", "wallet", "secret", "honey_settings")


class SqlUserRecordStore:
    """Whole-snapshot ``load``/``save`` over the users table."""

    def __init__(self, database_url: Optional[str] = None) -> None:
        self.engine = create_engine(database_url or config.DATABASE_URL, future=True)
        self.SessionLocal = sessionmaker(bind=self.engine, autoflush=False, autocommit=False, future=True)

    def init_db(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def get_db(self) -> Session:
        return self.SessionLocal()

    def load(self) -> dict[str, dict[str, Any]]:
        db = self.get_db()
        try:
            return {str(user.user_id): user.to_record() for user in db.query(User).all()}
        finally:
            db.close()

    def save(self, records: dict[str, dict[str, Any]]) -> None:
        db = self.get_db()
        try:
            existing = {str(u.user_id): u for u in db.query(User).all()}
            for user_id, record in records.items():
                user = existing.get(str(user_id))
                if user is None:
                    user = User(user_id=str(user_id))
                    db.add(user)
                for key in RECORD_FIELDS:
                    if key in record:
                        setattr(user, key, record[key])
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def get_or_create(self, user_id: str, username: Optional[str]) -> dict[str, Any]:
        db = self.get_db()
        try:
            user = db.query(User).filter(User.user_id == str(user_id)).first()
            if user:
                if username and user.username != username:
                    user.username = username
                    db.commit()
                    db.refresh(user)
                return user.to_record()

            user = User(user_id=str(user_id), username=username)
            db.add(user)
            db.commit()
            db.refresh(user)
            return user.to_record()
        finally:
            db.close()

    def set_wallet(self, user_id: str, wallet: str, secret: str) -> None:
        db = self.get_db()
        try:
            user = db.query(User).filter(User.user_id == str(user_id)).first()
            if not user:
                user = User(user_id=str(user_id))
                db.add(user)
            user.wallet = wallet
            user.secret = secret
            db.commit()
        finally:
            db.close()
