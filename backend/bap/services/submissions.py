"""Submission lifecycle state machine.

Every transition loads one submission, checks the actor and the current state
against that snapshot, and writes all changed fields in a single commit. A
rejected transition raises before anything is mutated. The witness, approval
and change-request writes are conditional updates so two racing admins can
never both apply the same transition.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy.orm import Session

from .. import audit, models, notify, schemas
from ..database import commit
from ..programs import POINT_VALUES, UnknownProgram, program_for_species_type
from ..submission_forms import CORE_FIELDS, validate_for_submission
from ..waiting_period import as_utc, submission_waiting_status
from . import standing

# purpose: sole mutator of submission lifecycle fields
# inputs: SQLAlchemy session, acting member, form/approval payloads, injected "now"
# outputs: mutated Submission rows, ApprovalResult after approval
# status: active
# depends_on: bap.services.standing, bap.waiting_period

logger = logging.getLogger(__name__)


class SubmissionError(RuntimeError):
    """Base error for lifecycle transitions."""

    kind = "submission_error"

    def __init__(self, message: str, *, field_errors: Mapping[str, str] | None = None):
        super().__init__(message)
        self.field_errors = dict(field_errors or {})


class SubmissionNotFound(SubmissionError):
    kind = "not_found"


class SubmissionValidationError(SubmissionError):
    """Raised with per-field messages when form or approval input is unusable."""

    kind = "validation"


class SpeciesMismatchError(SubmissionValidationError):
    """Raised when a linked species name belongs to another program."""

    kind = "species_mismatch"


class PermissionDenied(SubmissionError):
    kind = "permission_denied"


class SelfWitnessError(PermissionDenied):
    kind = "self_witness"


class WrongStateError(SubmissionError):
    kind = "wrong_state"


class AlreadyApprovedError(WrongStateError):
    kind = "already_approved"


class WitnessNotConfirmedError(WrongStateError):
    kind = "witness_not_confirmed"


class WaitingPeriodError(WrongStateError):
    kind = "waiting_period"

    def __init__(self, message: str, *, days_remaining: int):
        super().__init__(message)
        self.days_remaining = days_remaining


@dataclass(slots=True)
class ApprovalResult:
    submission: models.Submission
    awards_granted: list[str] = field(default_factory=list)
    level_change: standing.LevelChange | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def get_submission(db: Session, submission_id: UUID) -> models.Submission:
    submission = db.get(models.Submission, submission_id)
    if submission is None:
        raise SubmissionNotFound("Submission not found")
    return submission


def _require_admin(actor: models.Member) -> None:
    if not actor.is_admin:
        raise PermissionDenied("Administrator access required")


def _require_owner(submission: models.Submission, actor: models.Member) -> None:
    if submission.member_id != actor.id:
        raise PermissionDenied("Not authorized")


def _require_reason(reason: str | None, field_name: str = "reason") -> str:
    text = (reason or "").strip()
    if not text:
        raise SubmissionValidationError(
            "A reason is required", field_errors={field_name: "Required"}
        )
    return text


def _require_submitted(submission: models.Submission, action: str) -> None:
    if submission.submitted_on is None:
        raise WrongStateError(f"Cannot {action} draft submissions")
    if submission.denied_on is not None:
        raise WrongStateError(f"Cannot {action} denied submissions")
    if submission.approved_on is not None:
        raise AlreadyApprovedError(f"Cannot {action} already approved submissions")


def _form_values(submission: models.Submission) -> dict[str, Any]:
    values = dict(submission.details or {})
    for name in CORE_FIELDS:
        values[name] = getattr(submission, name)
    return values


def _validate_form_for_submit(values: Mapping[str, Any], now: datetime) -> None:
    errors = validate_for_submission(values, as_utc(now).date())
    if errors:
        raise SubmissionValidationError("Submission is incomplete", field_errors=errors)


def _apply_form(submission: models.Submission, form: schemas.SubmissionForm) -> None:
    values = form.model_dump()
    try:
        program = program_for_species_type(values.get("species_type"))
    except UnknownProgram as exc:
        raise SubmissionValidationError(
            str(exc), field_errors={"species_type": "Unknown species type"}
        ) from exc
    for name in CORE_FIELDS:
        setattr(submission, name, values.pop(name))
    submission.details = values
    submission.program = program


def _owner(db: Session, submission: models.Submission) -> models.Member:
    return submission.member or db.get(models.Member, submission.member_id)


def _conditional_update(
    db: Session,
    submission: models.Submission,
    guards: list,
    values: dict[str, Any],
    failure: SubmissionError,
) -> None:
    """Write ``values`` only if the row still satisfies ``guards``."""

    rows = (
        db.query(models.Submission)
        .filter(models.Submission.id == submission.id, *guards)
        .update(values, synchronize_session=False)
    )
    if rows != 1:
        db.rollback()
        raise failure
    db.expire(submission)


def view_submission(db: Session, submission_id: UUID, actor: models.Member) -> models.Submission:
    submission = get_submission(db, submission_id)
    if not actor.is_admin:
        _require_owner(submission, actor)
    return submission


def create_draft(
    db: Session,
    owner: models.Member,
    form: schemas.SubmissionForm,
    *,
    now: datetime | None = None,
) -> models.Submission:
    now = now or _utcnow()
    submission = models.Submission(
        member_id=owner.id,
        witness_verification_status="pending",
        created_on=now,
        updated_on=now,
    )
    _apply_form(submission, form)
    db.add(submission)
    db.flush()
    audit.log_action(db, owner.id, "create_submission", "submission", submission.id, now=now)
    commit(db)
    db.refresh(submission)
    logger.info("Draft %s created by member %s", submission.id, owner.id)
    return submission


def edit_submission(
    db: Session,
    submission_id: UUID,
    actor: models.Member,
    form: schemas.SubmissionForm,
    *,
    now: datetime | None = None,
) -> models.Submission:
    """Owner edits of a draft, or of a submission with changes requested.

    Change-request fields are left in place; only a resubmit clears them.
    """

    now = now or _utcnow()
    submission = get_submission(db, submission_id)
    _require_owner(submission, actor)
    if submission.approved_on is not None:
        raise AlreadyApprovedError("Cannot edit approved submissions")
    if submission.denied_on is not None:
        raise WrongStateError("Cannot edit denied submissions")
    if submission.submitted_on is not None and submission.changes_requested_on is None:
        raise WrongStateError("Submitted entries can only be edited after changes are requested")

    _apply_form(submission, form)
    submission.updated_on = now
    audit.log_action(db, actor.id, "edit_submission", "submission", submission.id, now=now)
    commit(db)
    db.refresh(submission)
    return submission


def submit(
    db: Session,
    submission_id: UUID,
    actor: models.Member,
    *,
    now: datetime | None = None,
) -> models.Submission:
    """Submit a draft, or resubmit a submission after changes were requested."""

    now = now or _utcnow()
    submission = get_submission(db, submission_id)
    _require_owner(submission, actor)
    if submission.approved_on is not None:
        raise AlreadyApprovedError("Cannot submit already approved submissions")
    if submission.denied_on is not None:
        raise WrongStateError("Cannot submit denied submissions")
    resubmitting = submission.changes_requested_on is not None
    if submission.submitted_on is not None and not resubmitting:
        raise WrongStateError("Submission has already been submitted")
    _validate_form_for_submit(_form_values(submission), now)

    if submission.submitted_on is None:
        submission.submitted_on = now
    if resubmitting:
        _clear_change_request(submission)
    submission.updated_on = now
    action = "resubmit_submission" if resubmitting else "submit_submission"
    audit.log_action(db, actor.id, action, "submission", submission.id, now=now)
    commit(db)
    db.refresh(submission)
    logger.info("Submission %s %s", submission.id, "resubmitted" if resubmitting else "submitted")
    notify.on_state_changed(
        submission, _owner(db, submission), "resubmitted" if resubmitting else "submitted"
    )
    return submission


def _clear_change_request(submission: models.Submission) -> None:
    submission.changes_requested_on = None
    submission.changes_requested_by = None
    submission.changes_requested_reason = None


def edit_and_resubmit(
    db: Session,
    submission_id: UUID,
    owner: models.Member,
    form: schemas.SubmissionForm,
    *,
    now: datetime | None = None,
) -> models.Submission:
    """Apply the owner's edits and clear the change request in one write.

    ``submitted_on`` keeps the original submit time and the witness fields
    are not touched.
    """

    now = now or _utcnow()
    submission = get_submission(db, submission_id)
    _require_owner(submission, owner)
    if submission.approved_on is not None:
        raise AlreadyApprovedError("Cannot resubmit already approved submissions")
    if submission.denied_on is not None:
        raise WrongStateError("Cannot resubmit denied submissions")
    if submission.changes_requested_on is None:
        raise WrongStateError("No changes have been requested on this submission")
    values = form.model_dump()
    _validate_form_for_submit(values, now)

    _apply_form(submission, form)
    _clear_change_request(submission)
    submission.updated_on = now
    audit.log_action(db, owner.id, "resubmit_submission", "submission", submission.id, now=now)
    commit(db)
    db.refresh(submission)
    logger.info("Submission %s edited and resubmitted", submission.id)
    notify.on_state_changed(submission, _owner(db, submission), "resubmitted")
    return submission


def _check_witness_preconditions(submission: models.Submission, actor: models.Member) -> None:
    _require_admin(actor)
    if submission.member_id == actor.id:
        raise SelfWitnessError("Cannot witness your own submission")
    _require_submitted(submission, "witness")
    if submission.witness_verification_status != "pending":
        raise WrongStateError("Submission not in pending witness state")


def confirm_witness(
    db: Session,
    submission_id: UUID,
    actor: models.Member,
    *,
    now: datetime | None = None,
) -> models.Submission:
    now = now or _utcnow()
    submission = get_submission(db, submission_id)
    _check_witness_preconditions(submission, actor)

    _conditional_update(
        db,
        submission,
        [models.Submission.witness_verification_status == "pending"],
        {
            "witness_verification_status": "confirmed",
            "witnessed_by": actor.id,
            "witnessed_on": now,
            "updated_on": now,
        },
        WrongStateError("Submission not in pending witness state"),
    )
    audit.log_action(db, actor.id, "confirm_witness", "submission", submission.id, now=now)
    commit(db)
    db.refresh(submission)
    logger.info("Submission %s witnessed by %s", submission.id, actor.id)
    notify.on_state_changed(submission, _owner(db, submission), "witness_confirmed")
    return submission


def decline_witness(
    db: Session,
    submission_id: UUID,
    actor: models.Member,
    reason: str,
    *,
    now: datetime | None = None,
) -> models.Submission:
    """Decline the witness; the reason is kept as an admin note, not on the row."""

    now = now or _utcnow()
    submission = get_submission(db, submission_id)
    _check_witness_preconditions(submission, actor)
    text = _require_reason(reason)

    _conditional_update(
        db,
        submission,
        [models.Submission.witness_verification_status == "pending"],
        {
            "witness_verification_status": "declined",
            "witnessed_by": actor.id,
            "witnessed_on": now,
            "updated_on": now,
        },
        WrongStateError("Submission not in pending witness state"),
    )
    db.add(
        models.SubmissionNote(
            submission_id=submission.id,
            admin_id=actor.id,
            note_text=f"Witness declined: {text}",
            created_at=now,
        )
    )
    audit.log_action(db, actor.id, "decline_witness", "submission", submission.id, now=now)
    commit(db)
    db.refresh(submission)
    logger.info("Submission %s witness declined by %s", submission.id, actor.id)
    notify.on_state_changed(submission, _owner(db, submission), "witness_declined", text)
    return submission


def request_changes(
    db: Session,
    submission_id: UUID,
    actor: models.Member,
    reason: str,
    *,
    now: datetime | None = None,
) -> models.Submission:
    """Ask the owner for edits; witness fields and ``submitted_on`` stay as they are."""

    now = now or _utcnow()
    submission = get_submission(db, submission_id)
    _require_admin(actor)
    _require_submitted(submission, "request changes on")
    text = _require_reason(reason)

    _conditional_update(
        db,
        submission,
        [
            models.Submission.approved_on.is_(None),
            models.Submission.denied_on.is_(None),
        ],
        {
            "changes_requested_on": now,
            "changes_requested_by": actor.id,
            "changes_requested_reason": text,
            "updated_on": now,
        },
        WrongStateError("Submission was approved or denied concurrently"),
    )
    audit.log_action(db, actor.id, "request_changes", "submission", submission.id, now=now)
    commit(db)
    db.refresh(submission)
    logger.info("Changes requested on submission %s by %s", submission.id, actor.id)
    notify.on_state_changed(submission, _owner(db, submission), "changes_requested", text)
    return submission


def _validate_breakdown(breakdown: schemas.PointsBreakdown) -> None:
    errors: dict[str, str] = {}
    if breakdown.points not in POINT_VALUES:
        allowed = ", ".join(str(value) for value in POINT_VALUES)
        errors["points"] = f"Points must be one of {allowed}"
    if breakdown.article_points is not None and breakdown.article_points < 0:
        errors["article_points"] = "Cannot be negative"
    if errors:
        raise SubmissionValidationError("Invalid points breakdown", field_errors=errors)


def _resolve_species_name(
    db: Session,
    submission: models.Submission,
    species_name_id: UUID,
) -> models.SpeciesNameGroup:
    species = db.get(models.SpeciesNameGroup, species_name_id)
    if species is None:
        raise SubmissionValidationError(
            "Unknown species name", field_errors={"species_name_id": "Species name not found"}
        )
    if species.program != submission.program:
        raise SpeciesMismatchError(
            "Species name does not match the submission program",
            field_errors={
                "species_name_id": (
                    f"{species.canonical_genus} {species.canonical_species_name} belongs to "
                    f"the {species.program} program, not {submission.program}"
                )
            },
        )
    return species


def approve(
    db: Session,
    submission_id: UUID,
    actor: models.Member,
    species_name_id: UUID,
    breakdown: schemas.PointsBreakdown,
    *,
    now: datetime | None = None,
) -> ApprovalResult:
    """Approve once, then rebuild the owner's level and specialty awards."""

    now = now or _utcnow()
    submission = get_submission(db, submission_id)
    _require_admin(actor)
    _require_submitted(submission, "approve")
    if submission.changes_requested_on is not None:
        raise WrongStateError("Cannot approve while changes are requested")
    if submission.witness_verification_status != "confirmed":
        raise WitnessNotConfirmedError(
            f"Witness confirmation is {submission.witness_verification_status}"
        )
    waiting = submission_waiting_status(submission, now)
    if not waiting.period_elapsed:
        raise WaitingPeriodError(
            f"Waiting period not satisfied: {waiting.days_remaining} of "
            f"{waiting.required_days} days remaining",
            days_remaining=waiting.days_remaining,
        )
    _validate_breakdown(breakdown)
    species = _resolve_species_name(db, submission, species_name_id)

    _conditional_update(
        db,
        submission,
        [
            models.Submission.approved_on.is_(None),
            models.Submission.denied_on.is_(None),
            models.Submission.changes_requested_on.is_(None),
            models.Submission.witness_verification_status == "confirmed",
        ],
        {
            "approved_on": now,
            "approved_by": actor.id,
            "points": breakdown.points,
            "article_points": breakdown.article_points,
            "first_time_species": breakdown.first_time_species,
            "cares_species": breakdown.cares_species,
            "flowered": breakdown.flowered,
            "sexual_reproduction": breakdown.sexual_reproduction,
            "species_name_id": species.id,
            "updated_on": now,
        },
        AlreadyApprovedError("Cannot approve already approved submissions"),
    )
    audit.log_action(
        db,
        actor.id,
        "approve_submission",
        "submission",
        submission.id,
        {"points": breakdown.points},
        now=now,
    )
    owner = _owner(db, submission)
    update = standing.recompute_member_standing(db, owner, submission.program, now=now)
    commit(db)
    db.refresh(submission)
    logger.info(
        "Submission %s approved by %s for %s points; awards granted: %s",
        submission.id,
        actor.id,
        breakdown.points,
        update.awards_granted,
    )
    notify.on_state_changed(submission, owner, "approved")
    standing.notify_standing(db, owner, update)
    return ApprovalResult(
        submission=submission,
        awards_granted=update.awards_granted,
        level_change=update.level_change,
    )


def deny(
    db: Session,
    submission_id: UUID,
    actor: models.Member,
    reason: str,
    *,
    now: datetime | None = None,
) -> models.Submission:
    now = now or _utcnow()
    submission = get_submission(db, submission_id)
    _require_admin(actor)
    _require_submitted(submission, "deny")
    text = _require_reason(reason)

    _conditional_update(
        db,
        submission,
        [
            models.Submission.approved_on.is_(None),
            models.Submission.denied_on.is_(None),
        ],
        {
            "denied_on": now,
            "denied_by": actor.id,
            "denied_reason": text,
            "updated_on": now,
        },
        WrongStateError("Submission was approved or denied concurrently"),
    )
    audit.log_action(db, actor.id, "deny_submission", "submission", submission.id, now=now)
    commit(db)
    db.refresh(submission)
    logger.info("Submission %s denied by %s", submission.id, actor.id)
    notify.on_state_changed(submission, _owner(db, submission), "denied", text)
    return submission


def delete_submission(
    db: Session,
    submission_id: UUID,
    actor: models.Member,
    *,
    now: datetime | None = None,
) -> None:
    submission = get_submission(db, submission_id)
    if not actor.is_admin:
        _require_owner(submission, actor)
        if submission.approved_on is not None:
            raise PermissionDenied("Cannot delete an approved submission")
    audit.log_action(
        db,
        actor.id,
        "delete_submission",
        "submission",
        submission.id,
        {"approved": submission.approved_on is not None},
        now=now,
    )
    db.delete(submission)
    commit(db)
    logger.info("Submission %s deleted by %s", submission_id, actor.id)


def add_note(
    db: Session,
    submission_id: UUID,
    actor: models.Member,
    note_text: str,
    *,
    now: datetime | None = None,
) -> models.SubmissionNote:
    now = now or _utcnow()
    _require_admin(actor)
    submission = get_submission(db, submission_id)
    text = _require_reason(note_text, "note_text")
    note = models.SubmissionNote(
        submission_id=submission.id,
        admin_id=actor.id,
        note_text=text,
        created_at=now,
    )
    db.add(note)
    commit(db)
    db.refresh(note)
    return note


def outstanding_submissions(
    db: Session,
    program: str,
    *,
    witness_queue: bool = False,
) -> list[models.Submission]:
    """Submitted, undecided rows; the witness queue holds only unscreened ones."""

    query = db.query(models.Submission).filter(
        models.Submission.program == program,
        models.Submission.submitted_on.isnot(None),
        models.Submission.approved_on.is_(None),
        models.Submission.denied_on.is_(None),
    )
    if witness_queue:
        query = query.filter(
            models.Submission.witness_verification_status == "pending",
            models.Submission.changes_requested_on.is_(None),
        )
    return query.order_by(models.Submission.submitted_on.asc()).all()


def member_submissions(db: Session, member_id: UUID) -> list[models.Submission]:
    return (
        db.query(models.Submission)
        .filter(models.Submission.member_id == member_id)
        .order_by(models.Submission.created_on.desc())
        .all()
    )
