from datetime import date, datetime
from typing import Optional, Literal, Dict, List, Any
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID


SpeciesType = Literal["Fish", "Invert", "Plant", "Coral"]
WaterType = Literal["Fresh", "Brackish", "Salt"]
WitnessStatus = Literal["pending", "confirmed", "declined"]


class MemberOut(BaseModel):
    id: UUID
    email: str
    display_name: str
    is_admin: bool = False
    fish_level: Optional[str] = None
    plant_level: Optional[str] = None
    coral_level: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class SubmissionForm(BaseModel):
    """Member-supplied answers; drafts only need a common name."""

    species_common_name: str = Field(min_length=1)
    species_type: Optional[SpeciesType] = None
    species_class: Optional[str] = None
    species_latin_name: Optional[str] = None
    water_type: Optional[WaterType] = None
    count: Optional[str] = None
    reproduction_date: Optional[date] = None

    foods: List[str] = Field(default_factory=list)
    spawn_locations: List[str] = Field(default_factory=list)
    propagation_method: Optional[str] = None

    tank_size: Optional[str] = None
    filter_type: Optional[str] = None
    water_change_volume: Optional[str] = None
    water_change_frequency: Optional[str] = None
    temperature: Optional[str] = None
    ph: Optional[str] = None
    gh: Optional[str] = None
    specific_gravity: Optional[str] = None
    substrate_type: Optional[str] = None
    substrate_depth: Optional[str] = None
    substrate_color: Optional[str] = None

    light_type: Optional[str] = None
    light_strength: Optional[str] = None
    light_hours: Optional[str] = None

    supplement_type: List[str] = Field(default_factory=list)
    supplement_regimen: List[str] = Field(default_factory=list)
    co2: Optional[Literal["no", "yes"]] = None
    co2_description: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ReasonIn(BaseModel):
    reason: str


class PointsBreakdown(BaseModel):
    points: int
    article_points: Optional[int] = Field(default=None, ge=0)
    first_time_species: bool = False
    cares_species: bool = False
    flowered: bool = False
    sexual_reproduction: bool = False


class ApprovalIn(PointsBreakdown):
    species_name_id: UUID


class SubmissionNoteOut(BaseModel):
    id: UUID
    admin_id: UUID
    note_text: str
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class SubmissionOut(BaseModel):
    id: UUID
    member_id: UUID
    program: Optional[str] = None
    species_type: Optional[str] = None
    species_class: Optional[str] = None
    species_common_name: Optional[str] = None
    species_latin_name: Optional[str] = None
    species_name_id: Optional[UUID] = None
    water_type: Optional[str] = None
    count: Optional[str] = None
    reproduction_date: Optional[date] = None
    details: Dict[str, Any] = Field(default_factory=dict)

    submitted_on: Optional[datetime] = None
    witness_verification_status: WitnessStatus = "pending"
    witnessed_by: Optional[UUID] = None
    witnessed_on: Optional[datetime] = None
    changes_requested_on: Optional[datetime] = None
    changes_requested_by: Optional[UUID] = None
    changes_requested_reason: Optional[str] = None
    approved_on: Optional[datetime] = None
    approved_by: Optional[UUID] = None
    points: Optional[int] = None
    article_points: Optional[int] = None
    first_time_species: bool = False
    cares_species: bool = False
    flowered: bool = False
    sexual_reproduction: bool = False
    total_points: Optional[int] = None
    denied_on: Optional[datetime] = None
    denied_by: Optional[UUID] = None
    denied_reason: Optional[str] = None
    created_on: Optional[datetime] = None
    updated_on: Optional[datetime] = None
    model_config = ConfigDict(from_attributes=True)


class SubmissionStatusOut(BaseModel):
    status: str
    label: str
    description: str
    days_remaining: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


class WaitingPeriodOut(BaseModel):
    required_days: int
    elapsed_days: int
    days_remaining: int
    period_elapsed: bool
    witness_confirmed: bool
    eligible: bool
    model_config = ConfigDict(from_attributes=True)


class SubmissionDetailOut(BaseModel):
    submission: SubmissionOut
    status: SubmissionStatusOut
    waiting_period: WaitingPeriodOut
    notes: List[SubmissionNoteOut] = Field(default_factory=list)


class LevelChangeOut(BaseModel):
    program: str
    old_level: Optional[str] = None
    new_level: str
    changed: bool
    model_config = ConfigDict(from_attributes=True)


class ApprovalOut(BaseModel):
    submission: SubmissionOut
    awards_granted: List[str] = Field(default_factory=list)
    level_change: Optional[LevelChangeOut] = None


class AwardOut(BaseModel):
    award_name: str
    award_type: Literal["species", "meta_species", "manual"]
    date_awarded: datetime
    model_config = ConfigDict(from_attributes=True)


class StandingOut(BaseModel):
    member_id: UUID
    levels: Dict[str, str]
    awards: List[AwardOut] = Field(default_factory=list)
    trophy: Optional[Literal["gold", "silver", "bronze"]] = None


class SpecialtyAwardProgressOut(BaseModel):
    name: str
    required_species: int
    current_species: int
    percentage: int
    is_completed: bool
    is_limitation_met: bool
    limitation_description: Optional[str] = None
    species_list: List[str] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class MetaAwardProgressOut(BaseModel):
    name: str
    required_awards: int
    current_awards: int
    percentage: int
    is_completed: bool
    completed_specialty_awards: List[str] = Field(default_factory=list)
    model_config = ConfigDict(from_attributes=True)


class AwardProgressOut(BaseModel):
    specialty: List[SpecialtyAwardProgressOut]
    meta: List[MetaAwardProgressOut]


class NoteIn(BaseModel):
    note_text: str


class AuditLogOut(BaseModel):
    id: UUID
    user_id: UUID
    action: str
    target_type: Optional[str] = None
    target_id: Optional[UUID] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class AuditReportItem(BaseModel):
    action: str
    count: int
