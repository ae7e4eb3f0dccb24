import logging
import os
import smtplib
from email.message import EmailMessage

from . import models

logger = logging.getLogger(__name__)

EMAIL_OUTBOX: list[tuple[str, str, str]] = []

_STATE_SUBJECTS = {
    "submitted": "Submission received",
    "resubmitted": "Submission resubmitted",
    "witness_confirmed": "Your submission has been witnessed",
    "witness_declined": "Additional documentation needed",
    "changes_requested": "Changes requested on your submission",
    "approved": "Submission approved",
    "denied": "Submission denied",
}


def send_email(to_email: str, subject: str, message: str):
    if os.getenv("TESTING") == "1":
        EMAIL_OUTBOX.append((to_email, subject, message))
        return
    server = os.getenv("SMTP_SERVER")
    if not server:
        logger.debug("SMTP_SERVER unset; dropping mail %r to %s", subject, to_email)
        return
    from_addr = os.getenv("EMAIL_FROM", "noreply@example.com")
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_email
    msg.set_content(message)
    with smtplib.SMTP(server) as s:
        s.send_message(msg)


def _species_label(submission: models.Submission) -> str:
    name = submission.species_common_name or "your submission"
    if submission.species_latin_name:
        return f"{name} ({submission.species_latin_name})"
    return name


def on_state_changed(
    submission: models.Submission,
    member: models.Member,
    event: str,
    detail: str | None = None,
):
    """Tell the owning member that their submission moved to a new state."""

    subject = _STATE_SUBJECTS.get(event)
    if subject is None:
        return
    lines = [f"Hello {member.display_name},", "", f"{subject}: {_species_label(submission)}."]
    if event == "approved" and submission.total_points is not None:
        lines.append(f"Points awarded: {submission.total_points}")
    if detail:
        lines.extend(["", detail])
    send_email(member.email, subject, "\n".join(lines))


def on_level_upgrade(member: models.Member, program: str, level: str, total_points: int):
    send_email(
        member.email,
        f"Congratulations, {level}!",
        f"Hello {member.display_name},\n\nYou have reached {level} in the {program} "
        f"program with {total_points} points.",
    )


def on_award_granted(member: models.Member, award_name: str):
    send_email(
        member.email,
        f"Specialty award: {award_name}",
        f"Hello {member.display_name},\n\nYou have earned the {award_name}.",
    )
