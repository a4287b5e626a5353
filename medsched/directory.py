"""User directory - read access to the identity collaborator's users"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from .enums import Role
from .exceptions import NotFoundError, PermissionDeniedError, ValidationError
from .models import User

logger = logging.getLogger(__name__)


class UserDirectory:
    """Resolves user ids to role and archived flag, with role checks used by the services"""

    def __init__(self, db: Session):
        self.db = db

    def find(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get(self, user_id: int) -> User:
        user = self.find(user_id)
        if not user:
            raise NotFoundError("User", user_id)
        return user

    def require_active(self, user_id: int) -> User:
        user = self.get(user_id)
        if user.archived:
            logger.warning(f"⚠️ Archived user {user_id} used in a scheduling operation")
            raise PermissionDeniedError(f"User {user.email} is archived")
        return user

    def require_role(self, user_id: int, role: Role) -> User:
        user = self.require_active(user_id)
        if user.role != role:
            raise ValidationError(f"User {user.email} is not a {role.value.lower()}")
        return user

    def require_provider(self, user_id: int) -> User:
        try:
            return self.require_role(user_id, Role.PROVIDER)
        except NotFoundError:
            raise NotFoundError("Provider", user_id) from None

    def require_requester(self, user_id: int) -> User:
        try:
            return self.require_role(user_id, Role.REQUESTER)
        except NotFoundError:
            raise NotFoundError("Requester", user_id) from None
