"""Pydantic schemas for document layout settings and rendering."""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

DateFormat = Literal["MM/DD/YYYY", "DD/MM/YYYY", "YYYY-MM-DD", "Month D, YYYY"]


class LayoutSettings(BaseModel):
    header_template: str = ""
    footer_template: str = ""
    show_metadata: bool = True
    date_format: DateFormat = "Month D, YYYY"
    page_numbering_format: str = "Page {current} of {total}"


class LayoutOut(BaseModel):
    settings: LayoutSettings
    source: Literal["portal", "organization", "default"]
    portal_id: int | None = None


class LayoutUpdate(BaseModel):
    portal_id: int | None = None
    header_template: str | None = Field(None, max_length=5000)
    footer_template: str | None = Field(None, max_length=5000)
    show_metadata: bool | None = None
    date_format: DateFormat | None = None
    page_numbering_format: str | None = Field(None, max_length=200)


class RenderRequest(BaseModel):
    policy_id: int
    portal_id: int | None = None
    page_number: int | None = Field(None, ge=1)
    total_pages: int | None = Field(None, ge=1)


class RenderOut(BaseModel):
    header: str
    footer: str
    page_numbering: str
    show_metadata: bool
    source: str
