"""
Applicability Taxonomy
======================

Reference mappings between organization vocabulary and the register's
vocabulary:

- Sector codes -> regulation families
- Regions -> jurisdiction extents (most specific first)
- Stakeholder role hierarchy
- Entity types (legal forms)
- Size brackets

Version: 0.1.0
"""

from collections.abc import Iterable, Mapping


SECTOR_FAMILIES: dict[str, str] = {
    "agriculture": "AGRICULTURE",
    "chemicals": "CHEMICALS",
    "construction": "CONSTRUCTION",
    "education": "EDUCATION",
    "energy": "ENERGY",
    "environment": "ENVIRONMENT",
    "fire": "FIRE",
    "fire_safety": "FIRE",
    "food": "FOOD",
    "health": "HEALTH",
    "healthcare": "HEALTH",
    "manufacturing": "MANUFACTURING",
    "mining": "MINING",
    "nuclear": "NUCLEAR",
    "telecommunications": "TELECOMMUNICATIONS",
    "transport": "TRANSPORT",
    "transportation": "TRANSPORT",
    "waste": "WASTE",
    "water": "WATER",
}

REGION_EXTENTS: dict[str, tuple[str, ...]] = {
    "england": ("England", "England and Wales", "Great Britain", "United Kingdom"),
    "wales": ("Wales", "England and Wales", "Great Britain", "United Kingdom"),
    "scotland": ("Scotland", "Great Britain", "United Kingdom"),
    "northern_ireland": ("Northern Ireland", "United Kingdom"),
    "great_britain": ("Great Britain", "United Kingdom"),
    "united_kingdom": ("United Kingdom",),
}

ROLE_HIERARCHY: dict[str, tuple[str, ...]] = {
    "site manager": ("Manager", "Supervisor", "Person in Control"),
    "principal contractor": ("Contractor", "Employer", "Person in Control"),
    "principal designer": ("Designer", "Person"),
    "contractor": ("Employer", "Person"),
    "director": ("Officer", "Person"),
    "company secretary": ("Officer", "Person"),
    "landlord": ("Owner", "Person in Control"),
    "facilities manager": ("Manager", "Person in Control"),
    "operator": ("Person in Control", "Person"),
    "self-employed person": ("Person",),
    "employer": ("Person",),
    "manufacturer": ("Producer", "Supplier", "Person"),
    "importer": ("Supplier", "Person"),
    "distributor": ("Supplier", "Person"),
}

ENTITY_TYPES: dict[str, str] = {
    "limited_company": "Limited Company",
    "public_limited_company": "Public Limited Company",
    "partnership": "Partnership",
    "limited_liability_partnership": "Limited Liability Partnership",
    "sole_trader": "Sole Trader",
    "charity": "Charity",
    "community_interest_company": "Community Interest Company",
    "public_sector_organization": "Public Sector Organization",
    "local_authority": "Local Authority",
    "nhs_trust": "NHS Trust",
    "educational_institution": "Educational Institution",
    "housing_association": "Housing Association",
    "cooperative": "Cooperative",
    "trade_union": "Trade Union",
}

EMPLOYEE_BRACKETS: tuple[tuple[int, str], ...] = (
    (10, "micro"),
    (50, "small"),
    (250, "medium"),
    (1000, "large"),
)

TURNOVER_BRACKETS: tuple[tuple[float, str], ...] = (
    (100_000, "micro"),
    (1_000_000, "small"),
    (10_000_000, "medium"),
    (50_000_000, "large"),
)

# Smallest to largest; shared by employee and turnover brackets
BRACKET_ORDER: tuple[str, ...] = ("micro", "small", "medium", "large", "enterprise")


def normalize_token(value: str) -> str:
    """Case- and whitespace-insensitive comparison key."""
    return " ".join(value.split()).casefold()


def region_key(region: str) -> str:
    """'Northern Ireland', 'northern_ireland' and 'NORTHERN-IRELAND' share a key."""
    return "_".join(normalize_token(region.replace("_", " ").replace("-", " ")).split())


def family_key(family: str) -> str:
    """Register family tags may carry a decorative prefix ('💙 HEALTH')."""
    stripped = family.strip()
    while stripped and not stripped[0].isalnum():
        stripped = stripped[1:]
    return normalize_token(stripped)


def families_for_sector(sector: str | None) -> set[str]:
    """Regulation families a sector code maps to (empty if unknown)."""
    if not sector:
        return set()
    family = SECTOR_FAMILIES.get(region_key(sector))
    return {family} if family else set()


def families_for(sector: str | None, activities: Iterable[str] = ()) -> set[str]:
    """Families for a sector plus any activities that are themselves sectors."""
    families = families_for_sector(sector)
    for activity in activities:
        families |= families_for_sector(activity)
    return families


def extents_for_region(region: str | None) -> tuple[str, ...]:
    """Jurisdiction extents for a region, most specific first (empty if unknown)."""
    if not region:
        return ()
    return REGION_EXTENTS.get(region_key(region), ())


def expand_role(
    role: str,
    hierarchy: Mapping[str, Iterable[str]] = ROLE_HIERARCHY,
) -> list[str]:
    """Broader roles a role implies, in hierarchy order."""
    return list(hierarchy.get(normalize_token(role), ()))


def employee_bracket(count: int | None) -> str | None:
    if count is None:
        return None
    for upper, bracket in EMPLOYEE_BRACKETS:
        if count < upper:
            return bracket
    return "enterprise"


def turnover_bracket(turnover: float | None) -> str | None:
    if turnover is None:
        return None
    for upper, bracket in TURNOVER_BRACKETS:
        if turnover < upper:
            return bracket
    return "enterprise"


def supported_sectors() -> list[str]:
    return sorted(SECTOR_FAMILIES)


def supported_regions() -> list[str]:
    return list(REGION_EXTENTS)


def supported_entity_types() -> list[str]:
    return list(ENTITY_TYPES)
