import uuid
from datetime import timedelta

import pytest

from .. import audit, models, schemas
from ..services import submissions as workflow
from .conftest import NOW, TestingSessionLocal, fish_form, make_member, make_species


def submitted(db, owner, **overrides):
    draft = workflow.create_draft(db, owner, fish_form(**overrides), now=NOW)
    return workflow.submit(db, draft.id, owner, now=NOW)


def witnessed(db, owner, admin, **overrides):
    sub = submitted(db, owner, **overrides)
    return workflow.confirm_witness(db, sub.id, admin, now=NOW)


def breakdown(points=10, **flags):
    return schemas.PointsBreakdown(points=points, **flags)


def test_create_draft_derives_program_and_details(db, member):
    draft = workflow.create_draft(db, member, fish_form(tank_size="40 breeder"), now=NOW)
    assert draft.program == "fish"
    assert draft.submitted_on is None
    assert draft.witness_verification_status == "pending"
    assert draft.details["tank_size"] == "40 breeder"
    assert "species_type" not in draft.details


def test_draft_only_needs_common_name(db, member):
    draft = workflow.create_draft(
        db, member, schemas.SubmissionForm(species_common_name="Guppy"), now=NOW
    )
    assert draft.program is None
    with pytest.raises(workflow.SubmissionValidationError) as exc:
        workflow.submit(db, draft.id, member, now=NOW)
    assert exc.value.field_errors["species_type"] == "Required"
    db.refresh(draft)
    assert draft.submitted_on is None


def test_submit_sets_submitted_on_and_notifies(db, member, email_outbox):
    sub = submitted(db, member)
    assert sub.submitted_on is not None
    assert email_outbox[-1][0] == member.email
    assert email_outbox[-1][1] == "Submission received"


def test_only_owner_can_submit(db, member):
    draft = workflow.create_draft(db, member, fish_form(), now=NOW)
    stranger = make_member(db)
    with pytest.raises(workflow.PermissionDenied):
        workflow.submit(db, draft.id, stranger, now=NOW)


def test_submit_twice_is_rejected(db, member):
    sub = submitted(db, member)
    with pytest.raises(workflow.WrongStateError):
        workflow.submit(db, sub.id, member, now=NOW)


def test_unknown_submission(db, member):
    with pytest.raises(workflow.SubmissionNotFound):
        workflow.submit(db, uuid.uuid4(), member, now=NOW)


def test_confirm_witness(db, member, admin):
    sub = witnessed(db, member, admin)
    assert sub.witness_verification_status == "confirmed"
    assert sub.witnessed_by == admin.id
    assert sub.witnessed_on is not None


def test_self_witness_is_permission_error(db):
    owner_admin = make_member(db, is_admin=True)
    sub = submitted(db, owner_admin)
    with pytest.raises(workflow.SelfWitnessError) as exc:
        workflow.confirm_witness(db, sub.id, owner_admin, now=NOW)
    assert isinstance(exc.value, workflow.PermissionDenied)
    db.refresh(sub)
    assert sub.witness_verification_status == "pending"


def test_self_decline_is_permission_error(db):
    owner_admin = make_member(db, is_admin=True)
    sub = submitted(db, owner_admin)
    with pytest.raises(workflow.SelfWitnessError):
        workflow.decline_witness(db, sub.id, owner_admin, "x", now=NOW)
    db.refresh(sub)
    assert sub.witness_verification_status == "pending"
    assert sub.witnessed_by is None
    notes = db.query(models.SubmissionNote).filter_by(submission_id=sub.id).count()
    assert notes == 0


def test_non_admin_cannot_witness(db, member):
    sub = submitted(db, member)
    other = make_member(db)
    with pytest.raises(workflow.PermissionDenied):
        workflow.confirm_witness(db, sub.id, other, now=NOW)


def test_witness_twice_is_rejected(db, member, admin):
    sub = witnessed(db, member, admin)
    with pytest.raises(workflow.WrongStateError):
        workflow.confirm_witness(db, sub.id, admin, now=NOW)
    with pytest.raises(workflow.WrongStateError):
        workflow.decline_witness(db, sub.id, admin, "late", now=NOW)


def test_cannot_witness_draft(db, member, admin):
    draft = workflow.create_draft(db, member, fish_form(), now=NOW)
    with pytest.raises(workflow.WrongStateError):
        workflow.confirm_witness(db, draft.id, admin, now=NOW)


def test_decline_witness_records_note(db, member, admin, email_outbox):
    sub = submitted(db, member)
    sub = workflow.decline_witness(db, sub.id, admin, "Fry not visible in photos", now=NOW)
    assert sub.witness_verification_status == "declined"
    assert sub.witnessed_by == admin.id
    assert [note.note_text for note in sub.notes] == [
        "Witness declined: Fry not visible in photos"
    ]
    assert email_outbox[-1][1] == "Additional documentation needed"


def test_decline_requires_reason(db, member, admin):
    sub = submitted(db, member)
    with pytest.raises(workflow.SubmissionValidationError):
        workflow.decline_witness(db, sub.id, admin, "   ", now=NOW)


def test_request_changes_keeps_witness_fields(db, member, admin):
    sub = witnessed(db, member, admin)
    witnessed_on = sub.witnessed_on
    sub = workflow.request_changes(db, sub.id, admin, "Add water parameters", now=NOW)
    assert sub.changes_requested_reason == "Add water parameters"
    assert sub.changes_requested_by == admin.id
    assert sub.witness_verification_status == "confirmed"
    assert sub.witnessed_by == admin.id
    assert sub.witnessed_on == witnessed_on


def test_request_changes_on_draft_is_rejected(db, member, admin):
    draft = workflow.create_draft(db, member, fish_form(), now=NOW)
    with pytest.raises(workflow.WrongStateError):
        workflow.request_changes(db, draft.id, admin, "why", now=NOW)


def test_edit_during_changes_requested_keeps_request(db, member, admin):
    sub = witnessed(db, member, admin)
    workflow.request_changes(db, sub.id, admin, "Fix count", now=NOW)
    sub = workflow.edit_submission(db, sub.id, member, fish_form(count="40"), now=NOW)
    assert sub.count == "40"
    assert sub.changes_requested_on is not None
    assert sub.changes_requested_reason == "Fix count"


def test_edit_after_submit_is_rejected(db, member):
    sub = submitted(db, member)
    with pytest.raises(workflow.WrongStateError):
        workflow.edit_submission(db, sub.id, member, fish_form(count="40"), now=NOW)


def test_resubmit_clears_change_request_and_keeps_submitted_on(db, member, admin):
    sub = witnessed(db, member, admin)
    original_submitted_on = sub.submitted_on
    workflow.request_changes(db, sub.id, admin, "Fix count", now=NOW)
    later = NOW + timedelta(days=2)
    sub = workflow.edit_and_resubmit(db, sub.id, member, fish_form(count="40"), now=later)
    assert sub.count == "40"
    assert sub.changes_requested_on is None
    assert sub.changes_requested_by is None
    assert sub.changes_requested_reason is None
    assert sub.submitted_on == original_submitted_on
    assert sub.witness_verification_status == "confirmed"
    assert sub.witnessed_by == admin.id


def test_resubmit_with_invalid_form_changes_nothing(db, member, admin):
    sub = witnessed(db, member, admin)
    workflow.request_changes(db, sub.id, admin, "Fix count", now=NOW)
    with pytest.raises(workflow.SubmissionValidationError) as exc:
        workflow.edit_and_resubmit(db, sub.id, member, fish_form(count="40", ph=""), now=NOW)
    assert exc.value.field_errors == {"ph": "Required"}
    db.refresh(sub)
    assert sub.count == "25"
    assert sub.changes_requested_reason == "Fix count"


def test_resubmit_without_change_request_is_rejected(db, member):
    sub = submitted(db, member)
    with pytest.raises(workflow.WrongStateError):
        workflow.edit_and_resubmit(db, sub.id, member, fish_form(), now=NOW)


def test_approve_requires_confirmed_witness(db, member, admin):
    species = make_species(db)
    sub = submitted(db, member)
    with pytest.raises(workflow.WitnessNotConfirmedError):
        workflow.approve(db, sub.id, admin, species.id, breakdown(), now=NOW)

    declined = workflow.decline_witness(db, submitted(db, member).id, admin, "blurry", now=NOW)
    with pytest.raises(workflow.WitnessNotConfirmedError):
        workflow.approve(db, declined.id, admin, species.id, breakdown(), now=NOW)


def test_approve_waits_for_period(db, member, admin):
    species = make_species(db)
    spawned = NOW.date() - timedelta(days=40)
    sub = witnessed(db, member, admin, reproduction_date=spawned)
    with pytest.raises(workflow.WaitingPeriodError) as exc:
        workflow.approve(db, sub.id, admin, species.id, breakdown(), now=NOW)
    assert exc.value.days_remaining == 20

    on_time = NOW + timedelta(days=20)
    result = workflow.approve(db, sub.id, admin, species.id, breakdown(), now=on_time)
    assert result.submission.approved_on is not None


def test_marine_fish_wait_is_shorter(db, member, admin):
    species = make_species(db)
    spawned = NOW.date() - timedelta(days=31)
    sub = witnessed(
        db,
        member,
        admin,
        species_class="Marine",
        water_type="Salt",
        species_latin_name="Amphiprion ocellaris",
        reproduction_date=spawned,
    )
    result = workflow.approve(db, sub.id, admin, species.id, breakdown(), now=NOW)
    assert result.submission.points == 10


def test_approve_sets_points_and_links_species(db, member, admin, email_outbox):
    species = make_species(db)
    sub = witnessed(db, member, admin)
    result = workflow.approve(
        db,
        sub.id,
        admin,
        species.id,
        breakdown(points=15, article_points=5, first_time_species=True),
        now=NOW,
    )
    approved = result.submission
    assert approved.approved_by == admin.id
    assert approved.points == 15
    assert approved.article_points == 5
    assert approved.species_name_id == species.id
    assert approved.total_points == 25
    assert result.level_change.new_level == "Participant"
    assert ("Submission approved" in [subject for _, subject, _ in email_outbox])


def test_approve_twice_is_rejected(db, member, admin):
    species = make_species(db)
    sub = witnessed(db, member, admin)
    workflow.approve(db, sub.id, admin, species.id, breakdown(), now=NOW)
    with pytest.raises(workflow.AlreadyApprovedError):
        workflow.approve(db, sub.id, admin, species.id, breakdown(points=25), now=NOW)
    db.refresh(sub)
    assert sub.points == 10


def test_approve_rejects_invalid_points(db, member, admin):
    species = make_species(db)
    sub = witnessed(db, member, admin)
    with pytest.raises(workflow.SubmissionValidationError) as exc:
        workflow.approve(db, sub.id, admin, species.id, breakdown(points=12), now=NOW)
    assert "points" in exc.value.field_errors
    db.refresh(sub)
    assert sub.approved_on is None


def test_approve_rejects_species_from_other_program(db, member, admin):
    plant = make_species(db, program="plant", species_type="Plant", genus="Cryptocoryne")
    sub = witnessed(db, member, admin)
    with pytest.raises(workflow.SpeciesMismatchError) as exc:
        workflow.approve(db, sub.id, admin, plant.id, breakdown(), now=NOW)
    assert "species_name_id" in exc.value.field_errors
    db.refresh(sub)
    assert sub.approved_on is None


def test_approve_while_changes_requested_is_rejected(db, member, admin):
    species = make_species(db)
    sub = witnessed(db, member, admin)
    workflow.request_changes(db, sub.id, admin, "Fix count", now=NOW)
    with pytest.raises(workflow.WrongStateError):
        workflow.approve(db, sub.id, admin, species.id, breakdown(), now=NOW)


def test_request_changes_after_approval(db, member, admin):
    species = make_species(db)
    sub = witnessed(db, member, admin)
    workflow.approve(db, sub.id, admin, species.id, breakdown(), now=NOW)
    with pytest.raises(workflow.AlreadyApprovedError):
        workflow.request_changes(db, sub.id, admin, "too late", now=NOW)


def test_deny_is_terminal(db, member, admin):
    species = make_species(db)
    sub = submitted(db, member)
    sub = workflow.deny(db, sub.id, admin, "Hybrid", now=NOW)
    assert sub.denied_reason == "Hybrid"
    with pytest.raises(workflow.WrongStateError):
        workflow.confirm_witness(db, sub.id, admin, now=NOW)
    with pytest.raises(workflow.WrongStateError):
        workflow.approve(db, sub.id, admin, species.id, breakdown(), now=NOW)
    with pytest.raises(workflow.WrongStateError):
        workflow.deny(db, sub.id, admin, "again", now=NOW)


def test_resubmit_after_deny_is_rejected(db, member, admin, email_outbox):
    sub = submitted(db, member)
    workflow.request_changes(db, sub.id, admin, "Fix count", now=NOW)
    workflow.deny(db, sub.id, admin, "Hybrid", now=NOW)
    email_outbox.clear()
    with pytest.raises(workflow.WrongStateError):
        workflow.edit_and_resubmit(db, sub.id, member, fish_form(count="40"), now=NOW)
    db.refresh(sub)
    assert sub.count == "25"
    assert sub.changes_requested_reason == "Fix count"
    assert email_outbox == []


def test_racing_approvals_apply_once(db, member, admin):
    rival_admin = make_member(db, is_admin=True)
    species = make_species(db)
    sub = witnessed(db, member, admin)
    sub_id, species_id, rival_id = sub.id, species.id, rival_admin.id
    assert sub.approved_on is None

    other = TestingSessionLocal()
    try:
        rival = other.get(models.Member, rival_id)
        workflow.approve(other, sub_id, rival, species_id, breakdown(points=10), now=NOW)
    finally:
        other.close()

    # this session still holds the pre-approval snapshot
    with pytest.raises(workflow.AlreadyApprovedError):
        workflow.approve(db, sub_id, admin, species_id, breakdown(points=25), now=NOW)
    sub = db.get(models.Submission, sub_id)
    assert sub.approved_by == rival_id
    assert sub.points == 10
    actions = [entry.action for entry in audit.history_for_target(db, sub_id)]
    assert actions.count("approve_submission") == 1


def test_request_changes_racing_deny_is_wrong_state(db, member, admin):
    sub = submitted(db, member)
    sub_id, admin_id = sub.id, admin.id
    assert sub.denied_on is None

    other = TestingSessionLocal()
    try:
        workflow.deny(other, sub_id, other.get(models.Member, admin_id), "Hybrid", now=NOW)
    finally:
        other.close()

    with pytest.raises(workflow.WrongStateError) as exc:
        workflow.request_changes(db, sub_id, admin, "Add photos", now=NOW)
    assert not isinstance(exc.value, workflow.AlreadyApprovedError)
    sub = db.get(models.Submission, sub_id)
    assert sub.denied_reason == "Hybrid"
    assert sub.changes_requested_on is None


def test_owner_deletes_unapproved(db, member):
    sub = submitted(db, member)
    sub_id = sub.id
    workflow.delete_submission(db, sub_id, member, now=NOW)
    assert db.get(models.Submission, sub_id) is None


def test_owner_cannot_delete_approved(db, member, admin):
    species = make_species(db)
    sub = witnessed(db, member, admin)
    sub_id = sub.id
    workflow.approve(db, sub_id, admin, species.id, breakdown(), now=NOW)
    with pytest.raises(workflow.PermissionDenied):
        workflow.delete_submission(db, sub_id, member, now=NOW)
    workflow.delete_submission(db, sub_id, admin, now=NOW)
    assert db.get(models.Submission, sub_id) is None


def test_stranger_cannot_delete(db, member):
    draft = workflow.create_draft(db, member, fish_form(), now=NOW)
    with pytest.raises(workflow.PermissionDenied):
        workflow.delete_submission(db, draft.id, make_member(db), now=NOW)


def test_delete_removes_notes(db, member, admin):
    sub = submitted(db, member)
    note = workflow.add_note(db, sub.id, admin, "Checked photos", now=NOW)
    note_id = note.id
    workflow.delete_submission(db, sub.id, admin, now=NOW)
    db.expire_all()
    assert db.get(models.SubmissionNote, note_id) is None


def test_transitions_are_audited(db, member, admin):
    sub = witnessed(db, member, admin)
    actions = [entry.action for entry in audit.history_for_target(db, sub.id)]
    assert sorted(actions) == ["confirm_witness", "create_submission", "submit_submission"]


def test_queues(db, member, admin):
    pending = submitted(db, member)
    confirmed = witnessed(db, member, admin)
    draft = workflow.create_draft(db, member, fish_form(), now=NOW)

    witness_ids = {s.id for s in workflow.outstanding_submissions(db, "fish", witness_queue=True)}
    assert pending.id in witness_ids
    assert confirmed.id not in witness_ids
    assert draft.id not in witness_ids

    queue_ids = {s.id for s in workflow.outstanding_submissions(db, "fish")}
    assert {pending.id, confirmed.id} <= queue_ids
    assert draft.id not in queue_ids
