"""Points tally and level ladders for the fish, plant and coral programs."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Sequence

# purpose: rank members inside each program from their approved award amounts
# inputs: per-submission point awards drawn from POINT_VALUES
# outputs: PointsTally snapshots and ladder rank names
# status: active

PROGRAMS: tuple[str, ...] = ("fish", "plant", "coral")
POINT_VALUES: tuple[int, ...] = (5, 10, 15, 20, 25)
MIN_YEAR = 1978

_PROGRAM_BY_SPECIES_TYPE = {
    "Fish": "fish",
    "Invert": "fish",
    "Plant": "plant",
    "Coral": "coral",
}


class InvalidAwardValue(ValueError):
    """Raised when an award amount falls outside the fixed point buckets."""


class UnknownProgram(ValueError):
    """Raised when a program or species type has no ladder."""


@dataclass(frozen=True)
class PointsTally:
    """Grand total plus the sub-total contributed by each point bucket."""

    total: int = 0
    by_value: Mapping[int, int] = field(
        default_factory=lambda: MappingProxyType({value: 0 for value in POINT_VALUES})
    )

    def __getitem__(self, value: int) -> int:
        return self.by_value[value]

    def class_sum(self, values: Iterable[int]) -> int:
        return sum(self.by_value[value] for value in values)


def points_by_category(awards: Iterable[int]) -> PointsTally:
    """Bucket award amounts; a single value outside POINT_VALUES rejects the lot."""

    buckets = {value: 0 for value in POINT_VALUES}
    total = 0
    for value in awards:
        if value not in buckets:
            raise InvalidAwardValue(f"Invalid award value: {value}")
        buckets[value] += value
        total += value
    return PointsTally(total=total, by_value=MappingProxyType(buckets))


ExtraRule = Callable[[PointsTally], bool]


@dataclass(frozen=True)
class LevelRule:
    name: str
    points: int
    extra_rule: ExtraRule | None = None

    def achieved_by(self, tally: PointsTally) -> bool:
        if tally.total < self.points:
            return False
        return self.extra_rule is None or self.extra_rule(tally)


def _mid_tier(tally: PointsTally) -> bool:
    # 20 of the points from the 10, 15 or 20 categories
    return tally.class_sum((10, 15, 20)) >= 20


def _upper_tier(tally: PointsTally) -> bool:
    # 40 of the points from the 15 or 20 categories
    return tally.class_sum((15, 20)) >= 40


def _balanced_tier(tally: PointsTally) -> bool:
    return tally[5] >= 30 and tally[10] >= 30 and tally[15] >= 30 and tally[20] >= 40


def _spread(low: int, top: int) -> ExtraRule:
    def rule(tally: PointsTally) -> bool:
        return tally.class_sum((5, 10, 15)) >= low and tally[20] >= top

    return rule


LEVEL_RULES: Mapping[str, tuple[LevelRule, ...]] = MappingProxyType(
    {
        "fish": (
            LevelRule("Participant", 0),
            LevelRule("Hobbyist", 25),
            LevelRule("Breeder", 50, _mid_tier),
            LevelRule("Advanced Breeder", 100, _upper_tier),
            LevelRule("Master Breeder", 300, _balanced_tier),
            LevelRule("Grand Master Breeder", 500),
            LevelRule("Advanced Grand Master Breeder", 750, _spread(60, 80)),
            LevelRule("Senior Grand Master Breeder", 1000, _spread(80, 100)),
            LevelRule("Premier Breeder", 1500),
            LevelRule("Senior Premier Breeder", 2000),
            LevelRule("Grand Poobah Yoda Breeder", 4000),
        ),
        "plant": (
            LevelRule("Participant", 0),
            LevelRule("Beginner Aquatic Horticulturist", 25),
            LevelRule("Aquatic Horticulturist", 50, _mid_tier),
            LevelRule("Senior Aquatic Horticulturist", 100, _upper_tier),
            LevelRule("Expert Aquatic Horticulturist", 300, _balanced_tier),
            LevelRule("Master Aquatic Horticulturist", 500),
            LevelRule("Grand Master Aquatic Horticulturist", 750, _spread(60, 80)),
            LevelRule("Senior Grand Master Aquatic Horticulturist", 1000, _spread(80, 100)),
            LevelRule("Premier Aquatic Horticulturist", 1500),
            LevelRule("Senior Premier Aquatic Horticulturist", 2000),
        ),
        "coral": (
            LevelRule("Participant", 0),
            LevelRule("Beginner Coral Propagator", 25),
            LevelRule("Coral Propagator", 50),
            LevelRule("Senior Coral Propagator", 100),
            LevelRule("Expert Coral Propagator", 300),
            LevelRule("Master Coral Propagator", 500),
            LevelRule("Grand Master Coral Propagator", 750),
            LevelRule("Senior Grand Master Coral Propagator", 1000),
        ),
    }
)


def rules_for_program(program: str) -> tuple[LevelRule, ...]:
    try:
        return LEVEL_RULES[program]
    except KeyError as exc:
        raise UnknownProgram(f"Unknown program: {program}") from exc


def level_for_tally(rules: Sequence[LevelRule], tally: PointsTally) -> str:
    """Walk the ladder upwards and stop at the first rank that is not met."""

    achieved = rules[0].name
    for rule in rules:
        if not rule.achieved_by(tally):
            break
        achieved = rule.name
    return achieved


def calculate_level(rules: Sequence[LevelRule], awards: Iterable[int]) -> str:
    return level_for_tally(rules, points_by_category(awards))


def level_rank(program: str, level: str | None) -> int:
    """Position of ``level`` on the program ladder, -1 when unknown or unset."""

    for index, rule in enumerate(rules_for_program(program)):
        if rule.name == level:
            return index
    return -1


def program_for_species_type(species_type: str | None) -> str | None:
    if species_type is None:
        return None
    try:
        return _PROGRAM_BY_SPECIES_TYPE[species_type]
    except KeyError as exc:
        raise UnknownProgram(f"Unknown species type: {species_type}") from exc


__all__ = [
    "InvalidAwardValue",
    "LEVEL_RULES",
    "LevelRule",
    "MIN_YEAR",
    "POINT_VALUES",
    "PROGRAMS",
    "PointsTally",
    "UnknownProgram",
    "calculate_level",
    "level_for_tally",
    "level_rank",
    "points_by_category",
    "program_for_species_type",
    "rules_for_program",
]
