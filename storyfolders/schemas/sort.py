"""Sort mode schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class SortRuleSchema(BaseModel):
    field: str
    display_name: str
    ascending: bool = True
    case_insensitive: bool = False


class SortModeResponse(BaseModel):
    title: str
    has_sections: bool = False
    fields: list[str] = Field(default_factory=list)
    rules: list[SortRuleSchema] = Field(default_factory=list)


class SortResponse(BaseModel):
    """Story folder sort modes and the selected one."""

    selected_index: int = Field(ge=0)
    modes: list[SortModeResponse]


class SortUpdate(BaseModel):
    """Select a mode, change one rule's direction, or both.

    ``mode_index`` defaults to the selected mode when updating a rule.
    """

    selected_index: int | None = Field(default=None, ge=0)
    mode_index: int | None = Field(default=None, ge=0)
    field: str | None = None
    ascending: bool | None = None

    @model_validator(mode="after")
    def rule_update_is_complete(self) -> SortUpdate:
        """Require ``field`` and ``ascending`` together."""
        if (self.field is None) != (self.ascending is None):
            raise ValueError("field and ascending must be given together")
        return self
