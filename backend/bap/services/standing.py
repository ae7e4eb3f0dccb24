"""Level and specialty-award recomputation from a member's approved history."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, joinedload

from .. import models, notify, programs
from ..specialty_awards import (
    AwardSubmission,
    newly_earned_awards,
    specialty_award_progress,
    trophy_level,
)

# purpose: rebuild ladder rank and award holdings after each approval
# inputs: SQLAlchemy session, member, program, injected "now"
# outputs: LevelChange and granted award names; Award rows inserted idempotently
# status: active
# depends_on: bap.programs, bap.specialty_awards

logger = logging.getLogger(__name__)

_LEVEL_COLUMNS = {
    "fish": "fish_level",
    "plant": "plant_level",
    "coral": "coral_level",
}


@dataclass(slots=True)
class LevelChange:
    program: str
    old_level: str | None
    new_level: str

    @property
    def changed(self) -> bool:
        return self.old_level != self.new_level

    @property
    def is_upgrade(self) -> bool:
        new_rank = programs.level_rank(self.program, self.new_level)
        # the entry rank is never announced
        return new_rank > 0 and new_rank > programs.level_rank(self.program, self.old_level)


@dataclass(slots=True)
class StandingUpdate:
    level_change: LevelChange | None = None
    awards_granted: list[str] = field(default_factory=list)


def approved_submissions(
    db: Session,
    member_id: UUID,
    program: str | None = None,
) -> list[models.Submission]:
    """One query over the member's approved rows, so callers see a single snapshot."""

    query = (
        db.query(models.Submission)
        .options(joinedload(models.Submission.species_name))
        .filter(
            models.Submission.member_id == member_id,
            models.Submission.submitted_on.isnot(None),
            models.Submission.approved_on.isnot(None),
        )
    )
    if program:
        query = query.filter(models.Submission.program == program)
    return query.order_by(models.Submission.approved_on.asc()).all()


def award_snapshot(submission: models.Submission) -> AwardSubmission:
    genus = submission.species_name.canonical_genus if submission.species_name else None
    return AwardSubmission(
        species_class=submission.species_class or "",
        species_latin_name=submission.species_latin_name or "",
        species_type=submission.species_type or "",
        water_type=submission.water_type or "",
        canonical_genus=genus,
        spawn_locations=tuple((submission.details or {}).get("spawn_locations") or ()),
    )


def held_award_names(db: Session, member_id: UUID) -> list[str]:
    rows = (
        db.query(models.Award.award_name)
        .filter(models.Award.member_id == member_id)
        .all()
    )
    return [row[0] for row in rows]


def _award_points(submissions: list[models.Submission]) -> list[int]:
    return [sub.points for sub in submissions if sub.points is not None]


def compute_level(db: Session, program: str, member_id: UUID) -> str:
    rules = programs.rules_for_program(program)
    return programs.calculate_level(
        rules, _award_points(approved_submissions(db, member_id, program))
    )


def compute_specialty_awards(db: Session, member_id: UUID) -> list[str]:
    """Award names the member now qualifies for but does not hold yet."""

    snapshots = [award_snapshot(sub) for sub in approved_submissions(db, member_id)]
    base, meta = newly_earned_awards(snapshots, held_award_names(db, member_id))
    return [*base, *meta]


def grant_award(
    db: Session,
    member_id: UUID,
    award_name: str,
    award_type: str,
    *,
    now: datetime,
) -> bool:
    """Insert the award unless the member holds it; True when this call created it."""

    values = {
        "member_id": member_id,
        "award_name": award_name,
        "award_type": award_type,
        "date_awarded": now,
    }
    dialect = db.get_bind().dialect.name
    if dialect in {"sqlite", "postgresql"}:
        insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
        stmt = (
            insert(models.Award.__table__)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["member_id", "award_name"])
        )
        return db.execute(stmt).rowcount == 1

    existing = (
        db.query(models.Award.id)
        .filter_by(member_id=member_id, award_name=award_name)
        .first()
    )
    if existing:
        return False
    db.add(models.Award(**values))
    db.flush()
    return True


def check_and_grant_specialty_awards(
    db: Session,
    member: models.Member,
    *,
    now: datetime | None = None,
) -> list[str]:
    now = now or datetime.now(timezone.utc)
    snapshots = [award_snapshot(sub) for sub in approved_submissions(db, member.id)]
    held = held_award_names(db, member.id)
    new_base, _ = newly_earned_awards(snapshots, held)

    granted: list[str] = []
    for name in new_base:
        if grant_award(db, member.id, name, "species", now=now):
            granted.append(name)
            logger.info("Granted specialty award %r to member %s", name, member.id)

    # Meta awards read the holdings as they stand after this pass's inserts.
    _, new_meta = newly_earned_awards(snapshots, held_award_names(db, member.id))
    for name in new_meta:
        if grant_award(db, member.id, name, "meta_species", now=now):
            granted.append(name)
            logger.info("Granted meta award %r to member %s", name, member.id)
    if granted:
        db.expire(member, ["awards"])
    return granted


def check_and_update_member_level(
    db: Session,
    member: models.Member,
    program: str,
) -> LevelChange:
    new_level = compute_level(db, program, member.id)
    column = _LEVEL_COLUMNS[program]
    change = LevelChange(program=program, old_level=getattr(member, column), new_level=new_level)
    if change.changed:
        logger.info(
            "Level change for member %s: %s -> %s (%s)",
            member.id,
            change.old_level,
            change.new_level,
            program,
        )
        setattr(member, column, new_level)
    return change


def recompute_member_standing(
    db: Session,
    member: models.Member,
    program: str | None,
    *,
    now: datetime | None = None,
) -> StandingUpdate:
    update = StandingUpdate()
    if program:
        update.level_change = check_and_update_member_level(db, member, program)
    update.awards_granted = check_and_grant_specialty_awards(db, member, now=now)
    return update


def notify_standing(db: Session, member: models.Member, update: StandingUpdate) -> None:
    change = update.level_change
    if change is not None and change.changed and change.is_upgrade:
        total = sum(
            sub.total_points or 0
            for sub in approved_submissions(db, member.id, change.program)
        )
        notify.on_level_upgrade(member, change.program, change.new_level, total)
    for name in update.awards_granted:
        notify.on_award_granted(member, name)


def member_levels(db: Session, member_id: UUID) -> dict[str, str]:
    return {program: compute_level(db, program, member_id) for program in programs.PROGRAMS}


def member_trophy(member: models.Member) -> str | None:
    return trophy_level((award.award_name, award.award_type) for award in member.awards)


def award_progress(db: Session, member_id: UUID):
    snapshots = [award_snapshot(sub) for sub in approved_submissions(db, member_id)]
    return specialty_award_progress(snapshots, held_award_names(db, member_id))
