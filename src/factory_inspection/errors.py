"""
Exception taxonomy for the inspection application.

Each error is handled at the boundary nearest to where it is raised:

- ValidationError: a form step rejected its input; held by the form
  controller and rendered per field, never propagated.
- FetchError: a REST call failed (non-2xx status or transport failure);
  raised to the caller of the data-access hooks.
- ConversionError: a Gregorian date could not be converted to a Hebrew
  date; logged, and the derived field is left blank.
- GenerationError: a report PDF could not be produced; surfaced as a
  notification with a retry action.
"""

from __future__ import annotations

from typing import Dict, Optional


class InspectionAppError(Exception):
    """Base class for all application errors."""


class ValidationError(InspectionAppError):
    def __init__(self, step: str, errors: Dict[str, str]) -> None:
        self.step = step
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__(f"Step '{step}' failed validation: {fields}")


class FetchError(InspectionAppError):
    def __init__(self, message: str, status_code: Optional[int] = None, detail: Optional[str] = None) -> None:
        self.status_code = status_code
        self.detail = detail
        super().__init__(message)


class ConversionError(InspectionAppError, ValueError):
    pass


class GenerationError(InspectionAppError):
    pass
