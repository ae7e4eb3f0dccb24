"""Display status derived from a submission's lifecycle fields."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .waiting_period import submission_waiting_status


@dataclass(frozen=True)
class StatusInfo:
    status: str
    label: str
    description: str
    days_remaining: int | None = None


def submission_status(submission, now: datetime) -> StatusInfo:
    if submission.denied_on is not None:
        return StatusInfo(
            "denied", "Denied", submission.denied_reason or "Submission was denied"
        )
    if submission.approved_on is not None:
        return StatusInfo(
            "approved", "Approved", f"{submission.total_points or 0} points awarded"
        )
    if submission.submitted_on is None:
        return StatusInfo("draft", "Draft", "Not yet submitted for review")
    if submission.changes_requested_on is not None:
        return StatusInfo(
            "changes-requested",
            "Changes Requested",
            submission.changes_requested_reason or "Awaiting changes from the member",
        )

    witness = submission.witness_verification_status
    if witness == "pending":
        return StatusInfo("pending-witness", "Pending Screening", "Awaiting admin screening")
    if witness == "declined":
        return StatusInfo(
            "witness-declined",
            "More Documentation Needed",
            "Witness declined; additional documentation requested",
        )

    waiting = submission_waiting_status(submission, now)
    if not waiting.period_elapsed:
        return StatusInfo(
            "waiting-period",
            "Awaiting Auction",
            f"{waiting.days_remaining} days until auction eligible",
            days_remaining=waiting.days_remaining,
        )
    return StatusInfo("pending-approval", "Pending Review", "Ready for admin approval")
