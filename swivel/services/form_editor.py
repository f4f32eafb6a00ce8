"""In-memory editing of a form document before an explicit save.

Mirrors the configuration panel: every operation mutates a private copy,
and `to_document()` yields the full document for form_config_service.put_config.
Changing a field's `name` is its own operation (`rename_field_key`) because
stored client data is keyed by it.
"""

import copy
from typing import Any

from swivel.db.enums import FieldType
from swivel.schemas.form_config import FIELD_NAME_PATTERN

NEW_SECTION_NAME = "New Section"
NEW_FIELD_NAME = "new_field"
NEW_FIELD_LABEL = "New Field"
DEFAULT_SELECT_OPTIONS = ["Option 1"]

EDITABLE_FIELD_ATTRS = {"label", "type", "required", "options"}


class FormConfigEditor:
    def __init__(self, config: list[dict[str, Any]]):
        self._config = copy.deepcopy(config)

    @property
    def sections(self) -> list[dict[str, Any]]:
        return self._config

    def to_document(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self._config)

    # -- sections ---------------------------------------------------------

    def _section(self, index: int) -> dict[str, Any]:
        try:
            return self._config[index]
        except IndexError:
            raise IndexError(f"No section at position {index}") from None

    def add_section(self, name: str = NEW_SECTION_NAME) -> int:
        self._config.append({"section": name, "enabled": True, "fields": []})
        return len(self._config) - 1

    def remove_section(self, index: int) -> None:
        self._section(index)
        del self._config[index]

    def rename_section(self, index: int, name: str) -> None:
        self._section(index)["section"] = name

    def toggle_section(self, index: int) -> bool:
        section = self._section(index)
        section["enabled"] = not section.get("enabled", False)
        return section["enabled"]

    # -- fields -----------------------------------------------------------

    def _fields(self, section_index: int) -> list[dict[str, Any]]:
        return self._section(section_index).setdefault("fields", [])

    def _field(self, section_index: int, field_index: int) -> dict[str, Any]:
        fields = self._fields(section_index)
        try:
            return fields[field_index]
        except IndexError:
            raise IndexError(
                f"No field at position {field_index} in section {section_index}"
            ) from None

    def _unused_name(self, section_index: int, base: str) -> str:
        taken = {f.get("name") for f in self._fields(section_index)}
        if base not in taken:
            return base
        suffix = 2
        while f"{base}_{suffix}" in taken:
            suffix += 1
        return f"{base}_{suffix}"

    def add_field(self, section_index: int) -> int:
        fields = self._fields(section_index)
        fields.append(
            {
                "name": self._unused_name(section_index, NEW_FIELD_NAME),
                "label": NEW_FIELD_LABEL,
                "type": FieldType.TEXT.value,
                "required": False,
                "enabled": True,
            }
        )
        return len(fields) - 1

    def remove_field(self, section_index: int, field_index: int) -> None:
        self._field(section_index, field_index)
        del self._fields(section_index)[field_index]

    def toggle_field(self, section_index: int, field_index: int) -> bool:
        field = self._field(section_index, field_index)
        # Absent means enabled
        field["enabled"] = not field.get("enabled", True)
        return field["enabled"]

    def update_field(self, section_index: int, field_index: int, **changes: Any) -> dict[str, Any]:
        """
        Edit label, type, required or options.

        Switching to select seeds options; switching away drops them.

        Raises:
            ValueError: Unknown attribute, or `name` (use rename_field_key)
        """
        unknown = set(changes) - EDITABLE_FIELD_ATTRS
        if "name" in unknown:
            raise ValueError("Field names are storage keys; use rename_field_key to change them")
        if unknown:
            raise ValueError(f"Cannot edit field attribute(s): {', '.join(sorted(unknown))}")

        field = self._field(section_index, field_index)
        field.update(changes)

        if field.get("type") == FieldType.SELECT.value:
            if not field.get("options"):
                field["options"] = list(DEFAULT_SELECT_OPTIONS)
        else:
            field.pop("options", None)
        return field

    def rename_field_key(self, section_index: int, field_index: int, new_name: str) -> str:
        """
        Change a field's storage key.

        Values already stored under the old name are not migrated.

        Raises:
            ValueError: Name blank, not a valid storage key, or already
                used in the section
        """
        new_name = new_name.strip()
        if not new_name:
            raise ValueError("Field name cannot be blank")
        if not FIELD_NAME_PATTERN.match(new_name):
            raise ValueError(
                f"Field name '{new_name}' must start with a letter or underscore "
                "and contain only letters, numbers, and underscores"
            )
        field = self._field(section_index, field_index)
        if field.get("name") == new_name:
            return new_name
        if any(f.get("name") == new_name for f in self._fields(section_index)):
            raise ValueError(f"Field name '{new_name}' already exists in this section")
        old_name = field.get("name")
        field["name"] = new_name
        return old_name
