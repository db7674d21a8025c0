"""Exceptions raised by the form service domain layer."""
from __future__ import annotations

from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError

if TYPE_CHECKING:  # pragma: no cover
    from .models import FormSubmission


class UnknownFieldError(AttributeError):
    """Raised when a submission is given a value for a field the form lacks."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Form has no field named {name!r}")
        self.name = name


class SubmissionInvalid(ValidationError):
    """A submission failed validation and the caller asked for a hard error."""

    def __init__(self, submission: "FormSubmission") -> None:
        super().__init__(submission.errors.as_dict())
        self.submission = submission
