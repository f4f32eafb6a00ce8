"""Schemas for organization intake form configuration.

The stored document is an ordered list of sections:

    [{"section": "Personal Information", "enabled": true,
      "fields": [{"name": "first_name", "label": "First Name",
                  "type": "text", "required": true}]}]

Fields are a tagged union on `type`: select fields carry a non-empty
`options` list, every other type carries none. A field without `enabled`
is treated as enabled.
"""

import re
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


FIELD_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

InputFieldType = Literal["text", "textarea", "date", "email", "phone", "number"]


class _FieldBase(BaseModel):
    # Unknown presentation keys (placeholder, help text) are preserved
    model_config = ConfigDict(extra="allow")

    name: str = Field(..., min_length=1, max_length=100)
    label: str = Field(..., max_length=200)
    required: bool = False
    enabled: bool | None = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not FIELD_NAME_PATTERN.match(v):
            raise ValueError(
                "Field name must start with a letter or underscore and contain "
                "only letters, numbers, and underscores"
            )
        return v

    @field_validator("label")
    @classmethod
    def validate_label(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Field label is required")
        return v


class InputField(_FieldBase):
    type: InputFieldType

    @model_validator(mode="after")
    def reject_options(self) -> "InputField":
        if self.model_extra and "options" in self.model_extra:
            raise ValueError(f"Options are only allowed on select fields ('{self.name}')")
        return self


class SelectField(_FieldBase):
    type: Literal["select"]
    options: list[str] = Field(..., min_length=1)

    @field_validator("options")
    @classmethod
    def validate_options(cls, v: list[str]) -> list[str]:
        if any(not option.strip() for option in v):
            raise ValueError("Select options cannot be blank")
        return v


FormField = Annotated[Union[SelectField, InputField], Field(discriminator="type")]


class FormSection(BaseModel):
    model_config = ConfigDict(extra="allow")

    section: str = Field(..., max_length=200)
    enabled: bool
    fields: list[FormField] = Field(default_factory=list)

    @field_validator("section")
    @classmethod
    def validate_section_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Section name is required")
        return v

    @model_validator(mode="after")
    def unique_field_names(self) -> "FormSection":
        seen: set[str] = set()
        for field in self.fields:
            if field.name in seen:
                raise ValueError(f"Duplicate field name '{field.name}' in section '{self.section}'")
            seen.add(field.name)
        return self


class FormConfigWrite(BaseModel):
    """Body for POST /api/form-config.

    `config` stays untyped so the exact submitted document is what gets
    stored; it is validated against FormSection separately.
    """
    config: list[Any]
    expected_version: int | None = Field(default=None, ge=0)


class RenderedField(BaseModel):
    name: str
    label: str
    type: str
    required: bool
    options: list[str] | None = None


class RenderedSection(BaseModel):
    section: str
    fields: list[RenderedField]
