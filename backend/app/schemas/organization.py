"""Pydantic schemas for organization variables."""
from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class OrganizationVariableOut(BaseModel):
    variable_name: str
    variable_value: str | None = None
    model_config = {"from_attributes": True}


class OrganizationVariableIn(BaseModel):
    variable_name: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-zA-Z0-9_.]+$")
    variable_value: str | None = None


class OrganizationVariablesUpdate(BaseModel):
    variables: list[OrganizationVariableIn]

    @field_validator("variables")
    @classmethod
    def check_unique_names(cls, v: list[OrganizationVariableIn]):
        names = [item.variable_name for item in v]
        if len(names) != len(set(names)):
            raise ValueError("Variable names must be unique")
        return v
