"""Header/footer template rendering."""
from datetime import date, datetime

import pytest

from app.services.document_layout import DEFAULT_LAYOUT, merge_layout
from app.services.layout_renderer import (
    build_context, extract_variables, format_date, format_time, render, render_page_numbering,
)

NOW = datetime(2025, 3, 7, 14, 5)


@pytest.fixture
def context():
    return build_context(
        policy={
            "title": "Acceptable Use Policy",
            "version": 3,
            "effectiveDate": date(2025, 1, 15),
            "department": "IT",
            "tags": ["security", "it"],
            "category": None,
        },
        organization_name="Acme Corp",
        variables={"legalName": "Acme Corporation Ltd.", "address": ""},
        now=NOW,
        date_format="YYYY-MM-DD",
        page_number=2,
        total_pages=5,
    )


def test_render_slash_tokens(context):
    out = render("/organization.name/ · /policy.title/ v/policy.version/", context)
    assert out == "Acme Corp · Acceptable Use Policy v3"


def test_render_brace_tokens(context):
    assert render("{{ policy.department }} - {{company.legalName}}", context) == "IT - Acme Corporation Ltd."


def test_company_alias_and_custom_variables(context):
    assert render("/company.name/", context) == "Acme Corp"
    assert render("/organization.legalName/", context) == "Acme Corporation Ltd."


def test_format_directives(context):
    assert render("/policy.title|uppercase/", context) == "ACCEPTABLE USE POLICY"
    assert render("/policy.title|lowercase/", context) == "acceptable use policy"
    assert render("/policy.department|capitalize/", context) == "It"
    assert render("{{organization.name|title}}", context) == "Acme Corp"


def test_fallback_for_missing_values(context):
    assert render("/policy.category|General/", context) == "General"
    assert render("/company.address|No address on file/", context) == "No address on file"


def test_unresolved_tokens_are_kept(context):
    assert render("/policy.owner/", context) == "/policy.owner/"
    assert render("/policy.category|uppercase/", context) == "/policy.category|uppercase/"
    assert render("{{ unknown.thing }}", context) == "{{ unknown.thing }}"


def test_lists_are_joined(context):
    assert render("/policy.tags/", context) == "security, it"


def test_document_namespace(context):
    assert render("/policy.effectiveDate/", context) == "2025-01-15"
    assert render("/document.printDate/ /document.printTime/", context) == "2025-03-07 02:05 PM"
    assert render("Page /document.pageNumber/ of /document.totalPages/", context) == "Page 2 of 5"


def test_render_is_deterministic(context):
    template = "/policy.title/ | /document.printDate/ | /missing.value|n-a/"
    assert render(template, context) == render(template, context)


def test_render_empty_template(context):
    assert render("", context) == ""
    assert render(None, context) == ""


def test_plain_text_with_slashes_untouched(context):
    assert render("and/or 24/7 support", context) == "and/or 24/7 support"


@pytest.mark.parametrize("fmt,expected", [
    ("MM/DD/YYYY", "03/07/2025"),
    ("DD/MM/YYYY", "07/03/2025"),
    ("YYYY-MM-DD", "2025-03-07"),
    ("Month D, YYYY", "March 7, 2025"),
])
def test_format_date(fmt, expected):
    assert format_date(NOW, fmt) == expected


def test_format_date_none():
    assert format_date(None) == ""


def test_format_time():
    assert format_time(datetime(2025, 1, 1, 0, 30)) == "12:30 AM"
    assert format_time(datetime(2025, 1, 1, 12, 0)) == "12:00 PM"
    assert format_time(datetime(2025, 1, 1, 23, 59)) == "11:59 PM"


def test_page_numbering():
    assert render_page_numbering("Page {current} of {total}", 3, 10) == "Page 3 of 10"
    assert render_page_numbering("{current}", 3, None) == "3"
    assert render_page_numbering("Page {current} of {total}", None, 10) == ""


def test_extract_variables():
    template = "/policy.title/ {{company.name}} /policy.title|uppercase/ /company.legalName|Acme/"
    assert extract_variables(template) == ["policy.title", "company.name", "company.legalName"]


def test_merge_layout_precedence():
    org = {"header_template": "Org header", "date_format": "DD/MM/YYYY"}
    portal = {"header_template": "Portal header", "footer_template": None}
    merged = merge_layout(org, portal)
    assert merged["header_template"] == "Portal header"
    assert merged["date_format"] == "DD/MM/YYYY"
    assert merged["footer_template"] == DEFAULT_LAYOUT["footer_template"]
    assert merge_layout() == DEFAULT_LAYOUT
