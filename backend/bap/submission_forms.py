"""Submission form vocabulary and the checks a full submit must pass."""

from __future__ import annotations

from datetime import date
from typing import Any, Mapping

from .programs import MIN_YEAR

SPECIES_TYPES_AND_CLASSES: dict[str, tuple[str, ...]] = {
    "Fish": (
        "Anabantoids",
        "Brackish Water",
        "Catfish & Loaches",
        "Characins",
        "Cichlids",
        "Cyprinids",
        "Killifish",
        "Livebearers",
        "Miscellaneous",
        "Marine",
        "Native",
    ),
    "Invert": ("Snail", "Shrimp", "Other"),
    "Plant": (
        "Apongetons & Criniums",
        "Anubias & Lagenandra",
        "Cryptocoryne",
        "Floating Plants",
        "Primative Plants",
        "Rosette Plants",
        "Stem Plants",
        "Sword Plants",
        "Water Lilles",
    ),
    "Coral": ("Hard", "Soft"),
}

# Columns on the submission row; everything else on the form lands in ``details``.
CORE_FIELDS = (
    "species_type",
    "species_class",
    "species_common_name",
    "species_latin_name",
    "water_type",
    "count",
    "reproduction_date",
)

_ALWAYS_REQUIRED = (
    "species_type",
    "species_class",
    "species_common_name",
    "species_latin_name",
    "water_type",
    "reproduction_date",
    "tank_size",
    "filter_type",
    "water_change_volume",
    "water_change_frequency",
    "temperature",
    "ph",
    "substrate_type",
    "substrate_depth",
    "substrate_color",
)


def is_livestock(species_type: str | None) -> bool:
    return species_type in {"Fish", "Invert"}


def has_foods(species_type: str | None) -> bool:
    return species_type in {"Fish", "Invert", "Coral"}


def has_lighting(species_type: str | None) -> bool:
    return species_type in {"Plant", "Coral"}


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return not [item for item in value if str(item).strip()]
    return False


def validate_for_submission(values: Mapping[str, Any], today: date) -> dict[str, str]:
    """Return ``{field: message}`` for every problem; empty when submittable."""

    errors: dict[str, str] = {}
    for name in _ALWAYS_REQUIRED:
        if _blank(values.get(name)):
            errors[name] = "Required"

    species_type = values.get("species_type")
    species_class = values.get("species_class")
    if species_type and not _blank(species_class):
        if species_class not in SPECIES_TYPES_AND_CLASSES.get(species_type, ()):
            errors["species_class"] = f"Not a valid class for {species_type}"

    if is_livestock(species_type):
        if _blank(values.get("count")):
            errors["count"] = "Required"
        if _blank(values.get("spawn_locations")):
            errors["spawn_locations"] = "Required"
    if has_foods(species_type) and _blank(values.get("foods")):
        errors["foods"] = "Required"
    if species_type == "Plant" and _blank(values.get("propagation_method")):
        errors["propagation_method"] = "Required"
    if has_lighting(species_type):
        for name in ("light_type", "light_strength", "light_hours"):
            if _blank(values.get(name)):
                errors[name] = "Required"
        if values.get("co2") == "yes" and _blank(values.get("co2_description")):
            errors["co2_description"] = "Required"

    reproduction_date = values.get("reproduction_date")
    if isinstance(reproduction_date, date):
        if reproduction_date.year < MIN_YEAR:
            errors["reproduction_date"] = f"Must be in {MIN_YEAR} or later"
        elif reproduction_date > today:
            errors["reproduction_date"] = "Cannot be in the future"
    return errors
