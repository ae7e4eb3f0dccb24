from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_member
from ..database import get_db
from ..services import submissions as workflow
from ..submission_status import submission_status
from ..waiting_period import submission_waiting_status

router = APIRouter(prefix="/api/submissions", tags=["submissions"])


def submission_detail(submission: models.Submission, *, include_notes: bool) -> schemas.SubmissionDetailOut:
    now = datetime.now(timezone.utc)
    waiting = submission_waiting_status(submission, now)
    return schemas.SubmissionDetailOut(
        submission=schemas.SubmissionOut.model_validate(submission),
        status=schemas.SubmissionStatusOut.model_validate(submission_status(submission, now)),
        waiting_period=schemas.WaitingPeriodOut(
            required_days=waiting.required_days,
            elapsed_days=waiting.elapsed_days,
            days_remaining=waiting.days_remaining,
            period_elapsed=waiting.period_elapsed,
            witness_confirmed=waiting.witness_confirmed,
            eligible=waiting.eligible,
        ),
        notes=[schemas.SubmissionNoteOut.model_validate(n) for n in submission.notes] if include_notes else [],
    )


@router.post("/", response_model=schemas.SubmissionOut, status_code=201)
async def create_submission(
    form: schemas.SubmissionForm,
    submit: bool = False,
    db: Session = Depends(get_db),
    current_member: models.Member = Depends(get_current_member),
):
    submission = workflow.create_draft(db, current_member, form)
    if submit:
        submission = workflow.submit(db, submission.id, current_member)
    return submission


@router.get("/", response_model=list[schemas.SubmissionOut])
async def list_my_submissions(
    db: Session = Depends(get_db),
    current_member: models.Member = Depends(get_current_member),
):
    return workflow.member_submissions(db, current_member.id)


@router.get("/{submission_id}", response_model=schemas.SubmissionDetailOut)
async def get_submission(
    submission_id: UUID,
    db: Session = Depends(get_db),
    current_member: models.Member = Depends(get_current_member),
):
    submission = workflow.view_submission(db, submission_id, current_member)
    # admin notes stay private to administrators
    return submission_detail(submission, include_notes=current_member.is_admin)


@router.patch("/{submission_id}", response_model=schemas.SubmissionOut)
async def update_submission(
    submission_id: UUID,
    form: schemas.SubmissionForm,
    db: Session = Depends(get_db),
    current_member: models.Member = Depends(get_current_member),
):
    return workflow.edit_submission(db, submission_id, current_member, form)


@router.post("/{submission_id}/submit", response_model=schemas.SubmissionOut)
async def submit_submission(
    submission_id: UUID,
    db: Session = Depends(get_db),
    current_member: models.Member = Depends(get_current_member),
):
    return workflow.submit(db, submission_id, current_member)


@router.post("/{submission_id}/resubmit", response_model=schemas.SubmissionOut)
async def resubmit_submission(
    submission_id: UUID,
    form: schemas.SubmissionForm,
    db: Session = Depends(get_db),
    current_member: models.Member = Depends(get_current_member),
):
    return workflow.edit_and_resubmit(db, submission_id, current_member, form)


@router.delete("/{submission_id}", status_code=204)
async def delete_submission(
    submission_id: UUID,
    db: Session = Depends(get_db),
    current_member: models.Member = Depends(get_current_member),
):
    workflow.delete_submission(db, submission_id, current_member)
    return Response(status_code=204)
