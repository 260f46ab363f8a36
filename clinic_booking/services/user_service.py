from datetime import datetime
from sqlalchemy.orm import Session
from typing import List, Optional
import logging

from ..core.database import run_with_retry
from ..core.exceptions import UserNotFound
from ..models import User

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: int) -> User:
        user = self.db.get(User, user_id, populate_existing=True)
        if not user:
            raise UserNotFound()
        return user

    def list_users(self) -> List[User]:
        """Accounts that are not archived."""
        return self.db.query(User).filter(
            User.is_archived == False  # noqa: E712
        ).order_by(User.id).all()

    def list_archived(self) -> List[User]:
        return self.db.query(User).filter(
            User.is_archived == True  # noqa: E712
        ).order_by(User.id).all()

    def archive_user(self, user_id: int, now: Optional[datetime] = None) -> User:
        """Archive an account; it can no longer sign in or book.

        Existing appointments are kept.
        """
        def work():
            user = self.get_user(user_id)
            user.is_archived = True
            user.archived_at = now or datetime.now()
            user.version = user.version + 1
            return user

        user = run_with_retry(self.db, work, f"archive user {user_id}")
        logger.info(f"User {user_id} archived")
        return user

    def restore_user(self, user_id: int) -> User:
        def work():
            user = self.get_user(user_id)
            user.is_archived = False
            user.archived_at = None
            user.version = user.version + 1
            return user

        user = run_with_retry(self.db, work, f"restore user {user_id}")
        logger.info(f"User {user_id} restored")
        return user
