"""Mandatory observation period between reproduction and approval."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone

# purpose: gate approval on elapsed days since reproduction plus witness confirmation
# inputs: reproduction date, species type/class, witness status, injected "now"
# outputs: WaitingPeriodStatus
# status: active

DEFAULT_WAITING_DAYS = 60
MARINE_FISH_WAITING_DAYS = 30
WAITING_DAYS_BY_PROGRAM = {
    "fish": DEFAULT_WAITING_DAYS,
    "plant": DEFAULT_WAITING_DAYS,
    "coral": DEFAULT_WAITING_DAYS,
}


@dataclass(frozen=True)
class WaitingPeriodStatus:
    required_days: int
    elapsed_days: int
    days_remaining: int
    period_elapsed: bool
    witness_confirmed: bool

    @property
    def eligible(self) -> bool:
        return self.period_elapsed and self.witness_confirmed


def as_utc(moment: datetime) -> datetime:
    """Treat naive timestamps (sqlite round trips) as UTC."""

    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def required_waiting_days(
    program: str | None,
    species_type: str | None = None,
    species_class: str | None = None,
) -> int:
    if species_type == "Fish" and species_class == "Marine":
        return MARINE_FISH_WAITING_DAYS
    return WAITING_DAYS_BY_PROGRAM.get(program or "", DEFAULT_WAITING_DAYS)


def days_elapsed(reproduction_date: date, now: datetime) -> int:
    if isinstance(reproduction_date, datetime):
        reproduction_date = as_utc(reproduction_date).date()
    return (as_utc(now).date() - reproduction_date).days


def waiting_period_status(
    reproduction_date: date | None,
    *,
    program: str | None,
    witness_status: str,
    now: datetime,
    species_type: str | None = None,
    species_class: str | None = None,
) -> WaitingPeriodStatus:
    required = required_waiting_days(program, species_type, species_class)
    if reproduction_date is None:
        elapsed = 0
    else:
        elapsed = days_elapsed(reproduction_date, now)
    remaining = max(0, required - elapsed)
    return WaitingPeriodStatus(
        required_days=required,
        elapsed_days=elapsed,
        days_remaining=remaining,
        period_elapsed=reproduction_date is not None and remaining == 0,
        witness_confirmed=witness_status == "confirmed",
    )


def submission_waiting_status(submission, now: datetime) -> WaitingPeriodStatus:
    return waiting_period_status(
        submission.reproduction_date,
        program=submission.program,
        witness_status=submission.witness_verification_status,
        now=now,
        species_type=submission.species_type,
        species_class=submission.species_class,
    )
