"""Pydantic schemas for reference data (violation types, hearing officers)."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from compliance.db.models import SubViolation, User, ViolationType


class ViolationTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    subviolations: list[str] = Field(default_factory=list)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v

    @field_validator("subviolations")
    @classmethod
    def clean_subviolations(cls, v: list[str]) -> list[str]:
        seen: list[str] = []
        for item in v:
            item = item.strip()
            if item and item not in seen:
                seen.append(item)
        return seen


class ViolationTypeRead(BaseModel):
    id: str
    name: str
    subviolations: list[SubViolation]
    created_at: datetime

    @classmethod
    def from_model(cls, violation_type: ViolationType) -> "ViolationTypeRead":
        return cls.model_validate(violation_type.model_dump())


class HearingOfficerRead(BaseModel):
    id: str
    name: str | None
    district: str | None

    @classmethod
    def from_model(cls, user: User) -> "HearingOfficerRead":
        return cls(id=user.id, name=user.name, district=user.district)
