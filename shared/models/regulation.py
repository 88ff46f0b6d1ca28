"""
Regulation Models
=================

Records of the legal register the engine screens against.

Each record is immutable for a committed store version. The five
stakeholder fields are a fixed schema rather than free-form JSON so the
matcher can report exactly which field produced a match.

Version: 0.1.0
"""

from collections.abc import Iterator
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RegulationFunction(str, Enum):
    """What a record does to the statute book."""

    ENACTING = "enacting"
    COMMENCING = "commencing"
    AMENDING = "amending"
    REVOKING = "revoking"
    MAKING = "making"


class RegulationStatus(str, Enum):
    """Lifecycle status."""

    IN_FORCE = "in_force"
    NOT_IN_FORCE = "not_in_force"


class RegulationScope(str, Enum):
    """Whether duties attach to a site or to the legal entity as a whole."""

    SITE = "site"
    ORGANIZATION = "organization"


class StakeholderField(str, Enum):
    """The stakeholder fields of a regulation, in matching order."""

    DUTY_HOLDER = "duty_holder"
    ROLE = "role"
    POWER_HOLDER = "power_holder"
    RIGHTS_HOLDER = "rights_holder"
    RESPONSIBILITY_HOLDER = "responsibility_holder"


class StakeholderFields(BaseModel):
    """Ordered stakeholder tags for each of the five fields."""

    model_config = ConfigDict(frozen=True)

    duty_holder: tuple[str, ...] = ()
    role: tuple[str, ...] = ()
    power_holder: tuple[str, ...] = ()
    rights_holder: tuple[str, ...] = ()
    responsibility_holder: tuple[str, ...] = ()

    def iter_fields(self) -> Iterator[tuple[StakeholderField, tuple[str, ...]]]:
        """Yield (field, values) in the fixed matching order."""
        for stakeholder_field in StakeholderField:
            yield stakeholder_field, getattr(self, stakeholder_field.value)

    @property
    def is_empty(self) -> bool:
        return not any(values for _, values in self.iter_fields())


class SizeThreshold(BaseModel):
    """Headcount / turnover bounds a regulation is conditional on."""

    model_config = ConfigDict(frozen=True)

    min_employees: int | None = Field(default=None, ge=0)
    max_employees: int | None = Field(default=None, ge=0)
    min_turnover: float | None = Field(default=None, ge=0)
    max_turnover: float | None = Field(default=None, ge=0)

    @property
    def uses_employees(self) -> bool:
        return self.min_employees is not None or self.max_employees is not None

    @property
    def uses_turnover(self) -> bool:
        return self.min_turnover is not None or self.max_turnover is not None

    def evaluate(
        self,
        employee_count: int | None,
        annual_turnover: float | None,
    ) -> bool | None:
        """
        Check the bounds against known size attributes.

        Returns:
            True/False when at least one bound could be checked,
            None when none of the bounds this threshold uses are known.
        """
        checked = False

        if self.uses_employees and employee_count is not None:
            checked = True
            if self.min_employees is not None and employee_count < self.min_employees:
                return False
            if self.max_employees is not None and employee_count > self.max_employees:
                return False

        if self.uses_turnover and annual_turnover is not None:
            checked = True
            if self.min_turnover is not None and annual_turnover < self.min_turnover:
                return False
            if self.max_turnover is not None and annual_turnover > self.max_turnover:
                return False

        return True if checked else None


class Regulation(BaseModel):
    """A single record of the legal register."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Opaque register identifier")
    name: str | None = Field(default=None, description="Short title")
    family: str | None = Field(default=None, description="Sector/category tag")
    function: RegulationFunction
    geo_extent: frozenset[str] = Field(default_factory=frozenset)
    status: RegulationStatus
    stakeholders: StakeholderFields = Field(default_factory=StakeholderFields)
    description: str = ""
    last_amended: datetime | None = None

    threshold: SizeThreshold | None = None
    scope: RegulationScope = RegulationScope.SITE

    @field_validator("geo_extent", mode="before")
    @classmethod
    def coerce_geo_extent(cls, v: object) -> object:
        """Accept a single extent string as well as a collection."""
        if isinstance(v, str):
            return frozenset({v})
        return v

    @model_validator(mode="before")
    @classmethod
    def lift_stakeholder_fields(cls, data: object) -> object:
        """Accept the five stakeholder fields at top level (register export format)."""
        if not isinstance(data, dict) or "stakeholders" in data:
            return data
        lifted = {
            f.value: data[f.value]
            for f in StakeholderField
            if data.get(f.value) is not None
        }
        if not lifted:
            return data
        rest = {k: v for k, v in data.items() if k not in lifted}
        rest["stakeholders"] = lifted
        return rest

    @property
    def is_duty_creating(self) -> bool:
        """Only 'making' records impose obligations on organizations."""
        return self.function == RegulationFunction.MAKING

    @property
    def is_in_force(self) -> bool:
        return self.status == RegulationStatus.IN_FORCE


class RegulationVersionInfo(BaseModel):
    """Metadata about the committed store version."""

    version: str
    record_count: int
    duty_creating_count: int
    committed_at: datetime
