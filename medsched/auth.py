"""
Request identity.

Authentication happens upstream (API gateway / identity service); it forwards
the authenticated user id in the ``X-User-Id`` header. This module only
resolves that id through the user directory.
"""

import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .database import get_db
from .directory import UserDirectory
from .models import User

logger = logging.getLogger(__name__)


async def get_current_user(
    x_user_id: Optional[int] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the calling user or fail with 401/403"""
    if x_user_id is None:
        logger.warning("❌ Request without X-User-Id header")
        raise HTTPException(status_code=401, detail="Not authenticated")

    user = UserDirectory(db).find(x_user_id)
    if not user:
        logger.warning(f"❌ Unknown user id in X-User-Id: {x_user_id}")
        raise HTTPException(status_code=401, detail="Not authenticated")

    if user.archived:
        logger.warning(f"⚠️ Archived user {user.id} attempted access")
        raise HTTPException(status_code=403, detail="Account is archived")

    return user
