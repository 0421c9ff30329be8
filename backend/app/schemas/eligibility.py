"""Eligibility rule schemas shared by categories and coupons."""

from typing import Literal

from pydantic import BaseModel, Field, field_validator


class EligibilityRule(BaseModel):
    type: Literal["whitelist", "token", "nft"]
    value: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(1, ge=1)


class EligibilityGroup(BaseModel):
    operator: Literal["AND", "OR"] = "AND"
    rules: list[EligibilityRule] = Field(..., min_length=1)

    @field_validator("operator", mode="before")
    @classmethod
    def upper_operator(cls, v: object) -> object:
        return v.upper() if isinstance(v, str) else v


class EligibilityRules(BaseModel):
    groups: list[EligibilityGroup] = Field(default_factory=list)
