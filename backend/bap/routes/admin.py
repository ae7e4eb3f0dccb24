from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import audit, models, schemas
from ..database import get_db
from ..programs import PROGRAMS
from ..rbac import require_admin
from ..services import submissions as workflow
from .submissions import submission_detail

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _check_program(program: str) -> str:
    if program not in PROGRAMS:
        raise HTTPException(status_code=404, detail="Unknown program")
    return program


@router.get("/queue/{program}", response_model=list[schemas.SubmissionDetailOut])
async def approval_queue(
    program: str,
    db: Session = Depends(get_db),
    admin: models.Member = Depends(require_admin),
):
    rows = workflow.outstanding_submissions(db, _check_program(program))
    return [submission_detail(row, include_notes=True) for row in rows]


@router.get("/witness-queue/{program}", response_model=list[schemas.SubmissionDetailOut])
async def witness_queue(
    program: str,
    db: Session = Depends(get_db),
    admin: models.Member = Depends(require_admin),
):
    rows = workflow.outstanding_submissions(db, _check_program(program), witness_queue=True)
    return [submission_detail(row, include_notes=True) for row in rows]


@router.post("/submissions/{submission_id}/witness/confirm", response_model=schemas.SubmissionOut)
async def confirm_witness(
    submission_id: UUID,
    db: Session = Depends(get_db),
    admin: models.Member = Depends(require_admin),
):
    return workflow.confirm_witness(db, submission_id, admin)


@router.post("/submissions/{submission_id}/witness/decline", response_model=schemas.SubmissionOut)
async def decline_witness(
    submission_id: UUID,
    payload: schemas.ReasonIn,
    db: Session = Depends(get_db),
    admin: models.Member = Depends(require_admin),
):
    return workflow.decline_witness(db, submission_id, admin, payload.reason)


@router.post("/submissions/{submission_id}/request-changes", response_model=schemas.SubmissionOut)
async def request_changes(
    submission_id: UUID,
    payload: schemas.ReasonIn,
    db: Session = Depends(get_db),
    admin: models.Member = Depends(require_admin),
):
    return workflow.request_changes(db, submission_id, admin, payload.reason)


@router.post("/submissions/{submission_id}/approve", response_model=schemas.ApprovalOut)
async def approve_submission(
    submission_id: UUID,
    payload: schemas.ApprovalIn,
    db: Session = Depends(get_db),
    admin: models.Member = Depends(require_admin),
):
    result = workflow.approve(db, submission_id, admin, payload.species_name_id, payload)
    level_change = None
    if result.level_change is not None:
        change = result.level_change
        level_change = schemas.LevelChangeOut(
            program=change.program,
            old_level=change.old_level,
            new_level=change.new_level,
            changed=change.changed,
        )
    return schemas.ApprovalOut(
        submission=schemas.SubmissionOut.model_validate(result.submission),
        awards_granted=result.awards_granted,
        level_change=level_change,
    )


@router.post("/submissions/{submission_id}/deny", response_model=schemas.SubmissionOut)
async def deny_submission(
    submission_id: UUID,
    payload: schemas.ReasonIn,
    db: Session = Depends(get_db),
    admin: models.Member = Depends(require_admin),
):
    return workflow.deny(db, submission_id, admin, payload.reason)


@router.post("/submissions/{submission_id}/notes", response_model=schemas.SubmissionNoteOut, status_code=201)
async def add_note(
    submission_id: UUID,
    payload: schemas.NoteIn,
    db: Session = Depends(get_db),
    admin: models.Member = Depends(require_admin),
):
    return workflow.add_note(db, submission_id, admin, payload.note_text)


@router.get("/submissions/{submission_id}/history", response_model=list[schemas.AuditLogOut])
async def submission_history(
    submission_id: UUID,
    db: Session = Depends(get_db),
    admin: models.Member = Depends(require_admin),
):
    return audit.history_for_target(db, submission_id)


@router.get("/audit/report", response_model=list[schemas.AuditReportItem])
async def audit_report(
    start: datetime,
    end: datetime,
    user_id: UUID | None = None,
    db: Session = Depends(get_db),
    admin: models.Member = Depends(require_admin),
):
    return audit.generate_report(db, start, end, user_id)
