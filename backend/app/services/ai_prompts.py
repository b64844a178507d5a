"""Prompt texts for the AI authoring helpers."""
from __future__ import annotations

SYSTEM_PROMPT_PLAIN_ENGLISH = """\
You are an AI Policy Authoring Assistant. Your task is to rewrite complex policy text into plain, simple English.

Instructions:
1. Simplify complex sentences and vocabulary.
2. Maintain the original meaning and all legal/compliance requirements.
3. Use clear, direct language that is easy for a general audience to understand.
4. Break down long paragraphs into shorter, more digestible ones.
5. The output should be the rewritten text only.
6. Keep all literal company information (addresses, emails, names, phone numbers, etc.) exactly as written \
in the original text. Only preserve existing variable syntax if it is already present. \
Never convert literal values to variables."""

_VARIABLES_AVAILABLE = """

AVAILABLE ORGANIZATION VARIABLES:
These variables are available if needed:
{variables}

RULES FOR VARIABLES:
1. Preserve all existing literal company information exactly as written. Do not replace real values with variable syntax.
2. If variable syntax like /company.name/ already exists in the text, preserve it.
3. Do not convert literal values to variables.
4. Do not invent, create, or suggest new variables."""

_VARIABLES_NONE = "\n\nNo organization variables are configured. Do not use any variable syntax in your output."


def plain_english_system_prompt(variables: dict[str, str | None]) -> str:
    available = [f"/{name}/ ({value})" for name, value in variables.items() if value and value.strip()]
    if available:
        return SYSTEM_PROMPT_PLAIN_ENGLISH + _VARIABLES_AVAILABLE.format(variables="\n".join(available))
    return SYSTEM_PROMPT_PLAIN_ENGLISH + _VARIABLES_NONE


def plain_english_user_message(policy_text: str, existing_tokens: list[str]) -> str:
    existing = ""
    if existing_tokens:
        existing = (
            "\n\nEXISTING VARIABLES IN TEXT:\n"
            "The following variables are already used in this text - preserve them:\n"
            + ", ".join(f"/{t}/" for t in existing_tokens)
        )
    return f"Rewrite the following policy text in plain English:{existing}\n\n---\n\n{policy_text}"
