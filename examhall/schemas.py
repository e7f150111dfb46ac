"""
Record shapes exchanged with the remote store.

Each model maps to one table (``table_name``). Rows are validated on the way in
from the store; unknown columns or wrong types are rejected instead of trusted.
"""
from datetime import datetime
from enum import Enum
from typing import ClassVar, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator

Label = Literal["A", "B", "C", "D"]
LABELS: tuple[str, ...] = ("A", "B", "C", "D")


class Record(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    table_name: ClassVar[str]


class Assessment(Record):
    table_name = "exams"

    id: str
    title: str
    exam_name: Optional[str] = None
    description: Optional[str] = None
    duration_minutes: int = Field(ge=0)
    exam_start_at: Optional[datetime] = None
    exam_entry_block_at: Optional[datetime] = None
    exam_end_at: Optional[datetime] = None
    exam_privacy: Literal["public", "private"] = "private"
    is_active: bool = False
    total_marks: int = Field(ge=0)
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("is_active", mode="before")
    @classmethod
    def null_flag_is_false(cls, value):
        return False if value is None else value

    @field_validator("exam_privacy", mode="before")
    @classmethod
    def null_privacy_is_private(cls, value):
        return "private" if value is None else value

    @property
    def is_public(self) -> bool:
        return self.exam_privacy == "public"


class Item(Record):
    table_name = "questions"

    id: str
    exam_id: str
    question_text: str
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    correct_answer: Label
    marks: PositiveInt = 1
    created_at: Optional[datetime] = None

    def choices(self) -> Dict[str, str]:
        return {"A": self.option_a, "B": self.option_b, "C": self.option_c, "D": self.option_d}


class ItemView(BaseModel):
    """What a participant is shown: no correct label."""

    model_config = ConfigDict(frozen=True)

    id: str
    question_text: str
    choices: Dict[str, str]
    marks: int

    @classmethod
    def of(cls, item: Item) -> "ItemView":
        return cls(id=item.id, question_text=item.question_text, choices=item.choices(), marks=item.marks)


class Role(str, Enum):
    PARTICIPANT = "participant"
    SUPERVISOR = "supervisor"
    SUPER_SUPERVISOR = "super_supervisor"


class Profile(Record):
    table_name = "profiles"

    id: str
    user_id: Optional[str] = None
    email: str
    full_name: str
    is_student: bool = False
    is_admin: bool = False
    is_super_admin: bool = False
    admin_approved: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("is_student", "is_admin", "is_super_admin", "admin_approved", mode="before")
    @classmethod
    def null_flag_is_false(cls, value):
        return False if value is None else value

    @property
    def role(self) -> Optional[Role]:
        """Routing role. Super-supervisor wins, then participant, then supervisor."""
        if self.is_super_admin:
            return Role.SUPER_SUPERVISOR
        if self.is_student:
            return Role.PARTICIPANT
        if self.is_admin:
            return Role.SUPERVISOR
        return None


class ReferencePoint(Record):
    table_name = "admin_ips"

    id: str
    admin_id: Optional[str] = None
    ip_address: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AttemptResult(Record):
    table_name = "exam_results"

    id: str
    exam_id: str
    student_id: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    score: float = 0
    total_marks: int = Field(ge=0)
    percentage: float = 0
    answers: Dict[str, Label] = Field(default_factory=dict)
    created_at: Optional[datetime] = None

    @field_validator("answers", mode="before")
    @classmethod
    def null_answers_are_empty(cls, value):
        return {} if value is None else value

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class Identity(BaseModel):
    """Identity-provider user, independent of the profile row."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: Optional[str] = None


class Principal(BaseModel):
    """An admitted login: identity, profile and the role it was admitted under."""

    model_config = ConfigDict(frozen=True)

    identity: Identity
    profile: Profile
    role: Role
