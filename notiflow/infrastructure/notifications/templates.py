# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Typed message templates.

A template declares its variables with types up front. Every
{{placeholder}} in the title and body must name a declared variable;
unknown references are rejected when the template is defined, not when a
message is sent. Rendering is a plain string replace of formatted values.

Example:
    >>> template = MessageTemplate(
    ...     name="renewal",
    ...     title="Membership renewal",
    ...     message="Hi {{name}}, your membership expires on {{expires}}.",
    ...     variables=[
    ...         TemplateVariable(name="name", type=VariableType.TEXT),
    ...         TemplateVariable(name="expires", type=VariableType.DATE),
    ...     ],
    ... )
    >>> payload = template.render({"name": "Ana", "expires": "2025-03-01"})
"""

import re
from datetime import date, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Self

from pydantic import BaseModel, Field, model_validator

from notiflow.core.exceptions import NotiflowError
from notiflow.infrastructure.notifications.channels.base import ChannelType

if TYPE_CHECKING:
    from notiflow.models.notification import NotificationPayload

PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")
_NAME_PATTERN = r"^[A-Za-z_][A-Za-z0-9_]*$"


class TemplateValidationError(NotiflowError):
    """Raised when template values do not match the declared variables."""

    pass


class VariableType(str, Enum):
    """Supported template variable types."""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


class TemplateVariable(BaseModel):
    """Declared template variable."""

    name: str = Field(..., pattern=_NAME_PATTERN)
    type: VariableType = VariableType.TEXT
    required: bool = True
    default: Any = None
    description: str | None = None


def find_placeholders(text: str) -> list[str]:
    """Return placeholder names in order of first appearance."""
    return list(dict.fromkeys(PLACEHOLDER_PATTERN.findall(text)))


def _format_value(variable: TemplateVariable, value: Any) -> str:
    if variable.type == VariableType.NUMBER:
        if isinstance(value, bool):
            raise TemplateValidationError(f"Variable '{variable.name}' must be a number")
        try:
            number = float(value)
        except (TypeError, ValueError) as e:
            raise TemplateValidationError(f"Variable '{variable.name}' must be a number") from e
        return str(int(number)) if number.is_integer() else str(number)

    if variable.type == VariableType.DATE:
        if isinstance(value, datetime):
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        try:
            return date.fromisoformat(str(value)[:10]).isoformat()
        except ValueError as e:
            raise TemplateValidationError(
                f"Variable '{variable.name}' must be an ISO date (YYYY-MM-DD)"
            ) from e

    if variable.type == VariableType.BOOLEAN:
        if isinstance(value, bool):
            return "yes" if value else "no"
        lowered = str(value).strip().lower()
        if lowered in ("true", "yes", "1"):
            return "yes"
        if lowered in ("false", "no", "0"):
            return "no"
        raise TemplateValidationError(f"Variable '{variable.name}' must be a boolean")

    return str(value)


class MessageTemplate(BaseModel):
    """Notification template with declared, typed variables."""

    name: str = Field(..., min_length=1, max_length=100)
    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    variables: list[TemplateVariable] = Field(default_factory=list)
    channels: list[ChannelType] = Field(
        default_factory=lambda: [ChannelType.CHAT, ChannelType.EMAIL, ChannelType.IN_APP]
    )
    notification_type: str = "general"

    @model_validator(mode="after")
    def check_placeholders(self) -> Self:
        """Reject duplicate declarations and undeclared placeholders."""
        names = [v.name for v in self.variables]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate template variables: {', '.join(duplicates)}")

        referenced = find_placeholders(self.title) + find_placeholders(self.message)
        unknown = [n for n in dict.fromkeys(referenced) if n not in names]
        if unknown:
            raise ValueError(f"Undeclared template variables: {', '.join(unknown)}")
        return self

    def resolve_values(self, values: dict[str, Any]) -> dict[str, str]:
        """Validate values against the declarations and format them.

        Args:
            values: Raw variable values.

        Returns:
            Formatted string value per declared variable.

        Raises:
            TemplateValidationError: On unknown, missing or mistyped values.
        """
        declared = {v.name: v for v in self.variables}
        unknown = sorted(set(values) - set(declared))
        if unknown:
            raise TemplateValidationError(
                f"Unknown template variables: {', '.join(unknown)}",
                {"unknown": unknown},
            )

        formatted: dict[str, str] = {}
        for name, variable in declared.items():
            value = values.get(name, variable.default)
            if value is None:
                if variable.required:
                    raise TemplateValidationError(
                        f"Missing required template variable: {name}",
                        {"missing": name},
                    )
                formatted[name] = ""
                continue
            formatted[name] = _format_value(variable, value)
        return formatted

    def render_text(self, text: str, formatted: dict[str, str]) -> str:
        """Substitute formatted values into one string."""
        return PLACEHOLDER_PATTERN.sub(lambda m: formatted[m.group(1)], text)

    def render(self, values: dict[str, Any]) -> "NotificationPayload":
        """Render the template into a notification payload.

        Args:
            values: Raw variable values.

        Returns:
            Payload with substituted title and message.

        Raises:
            TemplateValidationError: On unknown, missing or mistyped values.
        """
        from notiflow.models.notification import NotificationPayload

        formatted = self.resolve_values(values)
        return NotificationPayload(
            title=self.render_text(self.title, formatted),
            message=self.render_text(self.message, formatted),
            channels=list(self.channels),
            notification_type=self.notification_type,
            data={"template": self.name},
        )
