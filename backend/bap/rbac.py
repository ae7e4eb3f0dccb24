from fastapi import Depends, HTTPException

from . import models
from .auth import get_current_member

# purpose: admin gate for witness, approval and queue routes
# status: active


def require_admin(
    current_member: models.Member = Depends(get_current_member),
) -> models.Member:
    if not current_member.is_admin:
        raise HTTPException(status_code=403, detail="Not authorized")
    return current_member


def ensure_owner_or_admin(member: models.Member, owner_id) -> None:
    """Raise 403 unless ``member`` owns the record or is an administrator."""

    if member.is_admin or member.id == owner_id:
        return
    raise HTTPException(status_code=403, detail="Not authorized")
