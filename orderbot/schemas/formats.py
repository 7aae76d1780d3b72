"""
schemas/formats.py
------------------
Owner-defined order validation rules and owner-query display templates.

Both arrive as JSON pasted into the chat. Naming mirrors the JSON keys
through aliases (requiredFields, itemFormat, showUsers, sortBy).
"""

import re
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class OrderFormatItem(BaseModel):
    name: str
    attributes: Optional[List[str]] = None


class OrderFormat(BaseModel):
    """
    Item-name rules applied when an order is placed.

      requiredFields: every listed substring must appear in the item name.
      itemFormat:     the item name must match this regular expression.
    Both may be given (AND). `items` describes a per-item customer format
    used by front-ends; it carries no validation of its own.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    required_fields: List[str] = Field(default_factory=list, alias="requiredFields")
    item_format: Optional[str] = Field(default=None, alias="itemFormat")
    items: Optional[List[OrderFormatItem]] = None

    @field_validator("item_format")
    @classmethod
    def regex_must_compile(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            try:
                re.compile(v)
            except re.error as exc:
                raise ValueError(f"itemFormat is not a valid regular expression: {exc}") from exc
        return v

    @model_validator(mode="after")
    def at_least_one_rule(self) -> "OrderFormat":
        if (
            "required_fields" not in self.model_fields_set
            and self.item_format is None
            and self.items is None
        ):
            raise ValueError("requiredFields, itemFormat or items is required")
        return self

    def compiled_item_format(self) -> Optional[re.Pattern]:
        return re.compile(self.item_format) if self.item_format else None


class DisplayFormat(BaseModel):
    """
    Template rendered once per aggregated (vendor, branch, item) line.

    Placeholders: {vendor} {branch} {item} {qty} {users}. A literal `\\n`
    in the template becomes a newline.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    template: str = Field(min_length=1)
    show_users: bool = Field(default=True, alias="showUsers")
    sort_by: Optional[str] = Field(default=None, alias="sortBy")
