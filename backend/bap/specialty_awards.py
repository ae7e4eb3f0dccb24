"""Specialty and meta award definitions and the qualification engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, Sequence

# purpose: decide which named specialty awards a member's approved history earns
# inputs: AwardSubmission snapshots of approved submissions, held award names
# outputs: newly earned award names plus progress summaries for display
# status: active

SENIOR_SPECIALIST_AWARD = "Senior Specialist Award"
EXPERT_SPECIALIST_AWARD = "Expert Specialist Award"
MARINE_INVERTS_AWARD = "Marine Invertebrates & Corals Specialist"

_CORYDORAS_GENERA = {"corydoras", "asidorus", "brochis"}


@dataclass(frozen=True)
class AwardSubmission:
    """The slice of an approved submission the award rules read."""

    species_class: str
    species_latin_name: str
    species_type: str
    water_type: str
    canonical_genus: str | None = None
    spawn_locations: tuple[str, ...] = ()


@dataclass(frozen=True)
class AwardLimitation:
    description: str
    validator: Callable[[Sequence[AwardSubmission]], bool]


@dataclass(frozen=True)
class SpecialtyAward:
    name: str
    required_species: int
    eligibility_filter: Callable[[AwardSubmission], bool]
    limitation: AwardLimitation | None = None


@dataclass(frozen=True)
class MetaAward:
    name: str
    required_awards: int


@dataclass(frozen=True)
class SpecialtyAwardProgress:
    name: str
    required_species: int
    current_species: int
    percentage: int
    is_completed: bool
    is_limitation_met: bool
    limitation_description: str | None
    species_list: list[str]


@dataclass(frozen=True)
class MetaAwardProgress:
    name: str
    required_awards: int
    current_awards: int
    percentage: int
    is_completed: bool
    completed_specialty_awards: list[str]


def _species_class_is(species_class: str) -> Callable[[AwardSubmission], bool]:
    def matches(sub: AwardSubmission) -> bool:
        return sub.species_class == species_class

    return matches


def _has_non_corydoras(submissions: Sequence[AwardSubmission]) -> bool:
    # Submissions without a canonical genus never satisfy this limitation.
    for sub in submissions:
        genus = (sub.canonical_genus or "").strip().lower()
        if genus and genus not in _CORYDORAS_GENERA:
            return True
    return False


def _two_non_snails(submissions: Sequence[AwardSubmission]) -> bool:
    return sum(1 for sub in submissions if sub.species_class != "Snail") >= 2


def _allow_all(submissions: Sequence[AwardSubmission]) -> bool:
    # TODO: enforce once breeding-method and annual/non-annual metadata is captured
    return True


SPECIALTY_AWARDS: tuple[SpecialtyAward, ...] = (
    SpecialtyAward("Anabantoids Specialist", 6, _species_class_is("Anabantoids")),
    SpecialtyAward(
        "Brackish Water Specialist",
        3,
        lambda sub: sub.water_type == "Brackish",
    ),
    SpecialtyAward(
        "Catfish Specialist",
        5,
        _species_class_is("Catfish & Loaches"),
        AwardLimitation("1 other than Corydoras, Asidorus, Brochis", _has_non_corydoras),
    ),
    SpecialtyAward("Characins Specialist", 6, _species_class_is("Characins")),
    SpecialtyAward("New World Cichlids Specialist", 12, _species_class_is("Cichlids")),
    SpecialtyAward(
        "Old World Cichlids Specialist",
        12,
        _species_class_is("Cichlids"),
        AwardLimitation("no more than 5 mouth brooders", _allow_all),
    ),
    SpecialtyAward("Cyprinids Specialist", 10, _species_class_is("Cyprinids")),
    SpecialtyAward(
        "Killifish Specialist",
        7,
        _species_class_is("Killifish"),
        AwardLimitation("at least 2 must be annuals", _allow_all),
    ),
    SpecialtyAward("Livebearers Specialist", 8, _species_class_is("Livebearers")),
    SpecialtyAward(
        "Marine Fish Specialist",
        3,
        lambda sub: sub.species_class == "Marine" and sub.water_type == "Salt",
    ),
    SpecialtyAward(
        MARINE_INVERTS_AWARD,
        7,
        lambda sub: (sub.species_type == "Invert" and sub.water_type == "Salt")
        or sub.species_type == "Coral",
        AwardLimitation("2 other than snails", _two_non_snails),
    ),
)

META_AWARDS: tuple[MetaAward, ...] = (
    MetaAward(SENIOR_SPECIALIST_AWARD, 4),
    MetaAward(EXPERT_SPECIALIST_AWARD, 7),
)

_META_EXCLUDED = frozenset({MARINE_INVERTS_AWARD})


def countable_specialty_awards() -> list[str]:
    """Base award names that count toward the meta awards."""

    return [award.name for award in SPECIALTY_AWARDS if award.name not in _META_EXCLUDED]


def unique_species(submissions: Iterable[AwardSubmission]) -> set[str]:
    return {sub.species_latin_name.strip().lower() for sub in submissions}


def _eligible(award: SpecialtyAward, submissions: Sequence[AwardSubmission]) -> list[AwardSubmission]:
    return [sub for sub in submissions if award.eligibility_filter(sub)]


def qualifies(award: SpecialtyAward, submissions: Sequence[AwardSubmission]) -> bool:
    eligible = _eligible(award, submissions)
    if len(unique_species(eligible)) < award.required_species:
        return False
    if award.limitation is not None:
        return award.limitation.validator(eligible)
    return True


def check_specialty_awards(submissions: Sequence[AwardSubmission]) -> list[str]:
    """Every base award the submissions qualify for, held or not."""

    return [award.name for award in SPECIALTY_AWARDS if qualifies(award, submissions)]


def check_meta_awards(existing_awards: Iterable[str]) -> list[str]:
    """Meta awards newly earned from the held base awards.

    Each tier is checked on its own so a member jumping from three to eight
    countable awards earns both in the same pass.
    """

    held = set(existing_awards)
    countable = set(countable_specialty_awards())
    earned_countable = len(held & countable)
    return [
        meta.name
        for meta in META_AWARDS
        if earned_countable >= meta.required_awards and meta.name not in held
    ]


def newly_earned_awards(
    submissions: Sequence[AwardSubmission],
    existing_awards: Iterable[str],
) -> tuple[list[str], list[str]]:
    """Return ``(base, meta)`` award names not yet held by the member."""

    held = list(existing_awards)
    new_base = [name for name in check_specialty_awards(submissions) if name not in held]
    new_meta = check_meta_awards([*held, *new_base])
    return new_base, new_meta


def _percentage(current: int, required: int) -> int:
    if required <= 0:
        return 100
    # halves round up
    return min(100, int(current * 100 / required + 0.5))


def specialty_award_progress(
    submissions: Sequence[AwardSubmission],
    existing_awards: Iterable[str],
) -> tuple[list[SpecialtyAwardProgress], list[MetaAwardProgress]]:
    held = set(existing_awards)
    progress: list[SpecialtyAwardProgress] = []
    for award in SPECIALTY_AWARDS:
        eligible = _eligible(award, submissions)
        species = unique_species(eligible)
        current = len(species)
        limitation_met = True
        if award.limitation is not None and current >= award.required_species:
            limitation_met = award.limitation.validator(eligible)
        progress.append(
            SpecialtyAwardProgress(
                name=award.name,
                required_species=award.required_species,
                current_species=current,
                percentage=_percentage(current, award.required_species),
                is_completed=current >= award.required_species
                and limitation_met
                and award.name in held,
                is_limitation_met=limitation_met,
                limitation_description=award.limitation.description if award.limitation else None,
                species_list=sorted(species),
            )
        )

    countable = set(countable_specialty_awards())
    completed = [item.name for item in progress if item.is_completed and item.name in countable]
    meta_progress = [
        MetaAwardProgress(
            name=meta.name,
            required_awards=meta.required_awards,
            current_awards=len(completed),
            percentage=_percentage(len(completed), meta.required_awards),
            is_completed=meta.name in held,
            completed_specialty_awards=completed,
        )
        for meta in META_AWARDS
    ]
    return progress, meta_progress


def trophy_level(awards: Iterable[tuple[str, str]]) -> str | None:
    """Trophy tier from ``(award_name, award_type)`` pairs.

    Gold: seven base awards or the expert award. Silver: four base awards or
    the senior award. Bronze: at least one base award.
    """

    specialty = [(name, kind) for name, kind in awards if kind in {"species", "meta_species"}]
    if not specialty:
        return None
    names = {name for name, _ in specialty}
    base_count = sum(1 for name, kind in specialty if kind == "species")
    if EXPERT_SPECIALIST_AWARD in names or base_count >= 7:
        return "gold"
    if SENIOR_SPECIALIST_AWARD in names or base_count >= 4:
        return "silver"
    if base_count >= 1:
        return "bronze"
    return None
