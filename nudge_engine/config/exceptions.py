"""Custom exceptions for configuration management."""

from typing import List, Optional

from pydantic import ValidationError as PydanticValidationError


class ConfigurationError(Exception):
    """
    Exception raised when configuration validation fails.

    Stores multiple validation errors and formats them in a human-readable
    way with helpful suggestions.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        """
        Initialize ConfigurationError.

        Args:
            message: Primary error message
            errors: List of specific validation errors
            suggestions: List of helpful suggestions to fix the errors
        """
        self.message = message
        self.errors = errors or []
        self.suggestions = suggestions or []
        super().__init__(self._format_message())

    @classmethod
    def from_pydantic(
        cls,
        error: PydanticValidationError,
        message: str = "Configuration validation failed",
        suggestions: Optional[List[str]] = None,
    ) -> "ConfigurationError":
        """Build a ConfigurationError from a pydantic ValidationError.

        Each pydantic error becomes one line of the form
        ``section -> field: message``.
        """
        errors = []
        for item in error.errors():
            field_path = " -> ".join(str(loc) for loc in item["loc"]) or "<root>"
            error_type = item["type"]

            if error_type == "missing":
                errors.append(f"Missing required field: {field_path}")
            elif error_type in ("string_type", "int_type", "float_type", "bool_type", "dict_type"):
                expected_type = error_type.replace("_type", "")
                errors.append(
                    f"Invalid type for '{field_path}': expected {expected_type}, got {item.get('input')!r}"
                )
            else:
                errors.append(f"{field_path}: {item['msg']}")

        return cls(message, errors=errors, suggestions=suggestions)

    def _format_message(self) -> str:
        """Format the error message with all errors and suggestions."""
        parts = [self.message]

        if self.errors:
            parts.append("\nValidation Errors:")
            for i, error in enumerate(self.errors, 1):
                parts.append(f"  {i}. {error}")

        if self.suggestions:
            parts.append("\nSuggestions:")
            for suggestion in self.suggestions:
                parts.append(f"  - {suggestion}")

        return "\n".join(parts)
