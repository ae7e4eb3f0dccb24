from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_member
from ..database import get_db
from ..rbac import ensure_owner_or_admin
from ..services import standing

router = APIRouter(prefix="/api/members", tags=["members"])


def _load_member(db: Session, member_id: UUID, current_member: models.Member) -> models.Member:
    member = db.get(models.Member, member_id)
    if member is None:
        raise HTTPException(status_code=404, detail="Member not found")
    ensure_owner_or_admin(current_member, member.id)
    return member


@router.get("/me", response_model=schemas.MemberOut)
async def read_me(current_member: models.Member = Depends(get_current_member)):
    return current_member


@router.get("/{member_id}/standing", response_model=schemas.StandingOut)
async def member_standing(
    member_id: UUID,
    db: Session = Depends(get_db),
    current_member: models.Member = Depends(get_current_member),
):
    member = _load_member(db, member_id, current_member)
    return schemas.StandingOut(
        member_id=member.id,
        levels=standing.member_levels(db, member.id),
        awards=[schemas.AwardOut.model_validate(award) for award in member.awards],
        trophy=standing.member_trophy(member),
    )


@router.get("/{member_id}/awards/progress", response_model=schemas.AwardProgressOut)
async def award_progress(
    member_id: UUID,
    db: Session = Depends(get_db),
    current_member: models.Member = Depends(get_current_member),
):
    member = _load_member(db, member_id, current_member)
    specialty, meta = standing.award_progress(db, member.id)
    return schemas.AwardProgressOut(
        specialty=[schemas.SpecialtyAwardProgressOut.model_validate(p) for p in specialty],
        meta=[schemas.MetaAwardProgressOut.model_validate(p) for p in meta],
    )
