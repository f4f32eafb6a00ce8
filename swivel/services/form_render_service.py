"""Render intake forms from a form document and validate submissions.

Works on the raw stored document so configurations saved before a key
existed still render: a field without `enabled` is shown, a section is
shown only when its `enabled` is truthy.
"""

from datetime import date
from typing import Any

from swivel.schemas.form_config import RenderedField, RenderedSection


class SubmissionInvalid(ValueError):
    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


def is_section_visible(section: dict[str, Any]) -> bool:
    return bool(section.get("enabled"))


def is_field_visible(field: dict[str, Any]) -> bool:
    return "enabled" not in field or bool(field["enabled"])


def render_form(config: list[dict[str, Any]]) -> list[RenderedSection]:
    """Visible sections and fields only, in stored order (options included)."""
    rendered: list[RenderedSection] = []
    for section in config:
        if not is_section_visible(section):
            continue
        fields = [
            RenderedField(
                name=field["name"],
                label=field.get("label") or field["name"],
                type=field.get("type", "text"),
                required=bool(field.get("required", False)),
                options=list(field["options"]) if field.get("type") == "select" and field.get("options") else None,
            )
            for field in section.get("fields", [])
            if is_field_visible(field)
        ]
        rendered.append(RenderedSection(section=section.get("section", ""), fields=fields))
    return rendered


def visible_fields(config: list[dict[str, Any]]) -> list[RenderedField]:
    return [field for section in render_form(config) for field in section.fields]


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


def validate_submission(config: list[dict[str, Any]], values: dict[str, Any]) -> dict[str, Any]:
    """
    Validate submitted values against the rendered form.

    Strings are trimmed, required visible fields must be non-empty, select
    values must be one of the options. Keys that are not visible fields are
    dropped.

    Returns:
        Cleaned values keyed by field name

    Raises:
        SubmissionInvalid: First invalid field
    """
    cleaned: dict[str, Any] = {}
    for field in visible_fields(config):
        value = _clean(values.get(field.name))
        if _is_empty(value):
            if field.required:
                raise SubmissionInvalid(field.name, f"{field.label} is required")
            continue

        if field.type == "select":
            if value not in (field.options or []):
                raise SubmissionInvalid(field.name, f"Invalid option for '{field.label}'")
        elif field.type == "date":
            try:
                date.fromisoformat(str(value))
            except ValueError:
                raise SubmissionInvalid(field.name, f"{field.label} must be a date (YYYY-MM-DD)")
        elif field.type == "number":
            try:
                float(value)
            except (TypeError, ValueError):
                raise SubmissionInvalid(field.name, f"{field.label} must be a number")
        elif not isinstance(value, str):
            raise SubmissionInvalid(field.name, f"{field.label} must be text")

        cleaned[field.name] = value
    return cleaned
