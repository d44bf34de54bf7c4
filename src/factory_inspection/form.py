"""
Multi-step inspection form controller.

The form walks an ordered list of steps (basic info, contact info,
findings, review). Each step edits a draft that is validated against the
step's schema when the user advances; only validated data is merged into
the accumulated record, and the record is persisted as one unit from the
review step.

The Hebrew date on the basic-info step is derived from the Gregorian date
every time the latter changes, unless the user has explicitly overridden
it.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional, Sequence, Type, Union

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .errors import FetchError, ValidationError
from .hebrew_dates import safe_hebrew_date
from .hooks import InspectionHooks
from .models import (
    BasicInfoStep,
    ContactInfoStep,
    Factory,
    FindingsStep,
    Inspection,
    InspectionCreate,
    InspectionFields,
    InspectionUpdate,
    ReviewStep,
    StepData,
)
from .notifications import NotificationCenter

logger = logging.getLogger(__name__)

STEP_MODELS: Dict[str, Type[BaseModel]] = {
    "basic_info": BasicInfoStep,
    "contact_info": ContactInfoStep,
    "findings": FindingsStep,
    "review": ReviewStep,
}

DEFAULT_STEPS = ("basic_info", "contact_info", "findings", "review")

REQUIRED_MESSAGES = {
    "factory_name": "Factory name is required",
    "inspector": "Inspector name is required",
    "factory_address": "Factory address is required",
    "gregorian_date": "Gregorian date is required",
    "contact_name": "Contact name is required",
}

_STEP_ADAPTER = TypeAdapter(StepData)


def _step_fields(model: Type[BaseModel]) -> List[str]:
    return [name for name in model.model_fields if name != "step"]


def _alias_map(model: Type[BaseModel]) -> Dict[str, str]:
    names = {name: name for name in model.model_fields}
    names.update({field.alias: name for name, field in model.model_fields.items() if field.alias})
    return names


def field_errors(exc: PydanticValidationError, model: Type[BaseModel]) -> Dict[str, str]:
    """Flatten pydantic errors into one message per field."""
    names = _alias_map(model)
    errors: Dict[str, str] = {}
    for error in exc.errors():
        # Discriminated unions prefix the location with the step tag
        loc = [part for part in error["loc"] if isinstance(part, str) and part in names]
        field = names[loc[-1]] if loc else "__root__"
        if field in errors:
            continue
        if error["type"] in ("missing", "string_too_short") and field in REQUIRED_MESSAGES:
            errors[field] = REQUIRED_MESSAGES[field]
        elif error["type"] == "value_error":
            errors[field] = str(error["ctx"]["error"])
        else:
            errors[field] = error["msg"]
    return errors


class InspectionForm:
    """
    Holds partial inspection data across form steps.

    Attributes:
        errors: Per-field messages from the last rejected advance/submit
        hebrew_date_overridden: True once the Hebrew date was set by hand
        saved: The persisted inspection after a successful submit
    """

    def __init__(
        self,
        hooks: InspectionHooks,
        steps: Sequence[str] = DEFAULT_STEPS,
        initial: Union[Inspection, Dict[str, Any], None] = None,
        today: Optional[date] = None,
        hebrew_format: str = "transliterated",
        notifications: Optional[NotificationCenter] = None,
    ) -> None:
        self.hooks = hooks
        self.steps = list(steps)
        self.hebrew_format = hebrew_format
        self.notifications = notifications
        self._check_steps()

        initial_data = self._normalize_initial(initial)
        self.inspection_id: Optional[int] = initial.id if isinstance(initial, Inspection) else initial_data.get("id")
        self.factory_id: Optional[int] = initial_data.get("factory_id")

        self._index = 0
        self._record: Dict[str, Any] = {}
        self._drafts: Dict[str, Dict[str, Any]] = {}
        self.errors: Dict[str, str] = {}
        self.hebrew_date_overridden = False
        self.is_submitting = False
        self.saved: Optional[Inspection] = None

        today_iso = (today or date.today()).isoformat()
        for step in self.steps:
            draft = {name: "" for name in _step_fields(STEP_MODELS[step])}
            draft.update({key: value for key, value in initial_data.items() if key in draft and value is not None})
            if "gregorian_date" in draft and not draft["gregorian_date"]:
                draft["gregorian_date"] = today_iso
            if "hebrew_date" in draft and not draft["hebrew_date"]:
                draft["hebrew_date"] = safe_hebrew_date(draft.get("gregorian_date", ""), self.hebrew_format)
            self._drafts[step] = draft

    def _check_steps(self) -> None:
        unknown = [step for step in self.steps if step not in STEP_MODELS]
        if unknown:
            raise ValueError(f"Unknown form steps: {unknown}")
        if not self.steps or self.steps[-1] != "review":
            raise ValueError("The last form step must be 'review'")

        seen: Dict[str, str] = {}
        for step in self.steps:
            for name in _step_fields(STEP_MODELS[step]):
                if name in seen:
                    raise ValueError(f"Field '{name}' appears in both '{seen[name]}' and '{step}' steps")
                seen[name] = step

    @staticmethod
    def _normalize_initial(initial: Union[Inspection, Dict[str, Any], None]) -> Dict[str, Any]:
        if initial is None:
            return {}
        if isinstance(initial, BaseModel):
            return initial.model_dump()
        names = {**_alias_map(InspectionFields), "id": "id"}
        return {names[key]: value for key, value in initial.items() if key in names}

    # State

    @property
    def current_step(self) -> str:
        return self.steps[self._index]

    @property
    def step_index(self) -> int:
        return self._index

    @property
    def is_first(self) -> bool:
        return self._index == 0

    @property
    def is_last(self) -> bool:
        return self._index == len(self.steps) - 1

    @property
    def is_submitted(self) -> bool:
        return self.saved is not None

    @property
    def draft(self) -> Dict[str, Any]:
        """A copy of the current step's draft."""
        return dict(self._drafts[self.current_step])

    @property
    def record(self) -> Dict[str, Any]:
        """A copy of the validated data merged so far."""
        return dict(self._record)

    # Editing

    def _resolve_field(self, name: str) -> str:
        model = STEP_MODELS[self.current_step]
        field = _alias_map(model).get(name)
        if field is None or field == "step":
            raise KeyError(f"Step '{self.current_step}' has no field '{name}'")
        return field

    def _derive_hebrew_date(self, draft: Dict[str, Any]) -> None:
        gregorian = draft.get("gregorian_date") or ""
        draft["hebrew_date"] = safe_hebrew_date(gregorian, self.hebrew_format) if gregorian else ""

    def set_field(self, name: str, value: Any) -> None:
        """
        Update a field of the current step's draft.

        Setting ``gregorian_date`` re-derives ``hebrew_date`` unless it is
        overridden; setting ``hebrew_date`` marks it overridden.

        Raises:
            KeyError: If the current step has no such field
        """
        field = self._resolve_field(name)
        draft = self._drafts[self.current_step]
        draft[field] = value

        if field == "hebrew_date":
            self.hebrew_date_overridden = True
        elif field == "gregorian_date" and "hebrew_date" in draft and not self.hebrew_date_overridden:
            self._derive_hebrew_date(draft)

    def update(self, **values: Any) -> None:
        for name, value in values.items():
            self.set_field(name, value)

    def clear_hebrew_override(self) -> None:
        """Drop a manual Hebrew date and derive it from the Gregorian date again."""
        self.hebrew_date_overridden = False
        for draft in self._drafts.values():
            if "hebrew_date" in draft:
                self._derive_hebrew_date(draft)

    def select_factory(self, factory: Factory) -> None:
        """Fill the factory fields from an existing factory record."""
        self.factory_id = factory.id
        for draft in self._drafts.values():
            for field, value in (
                ("factory_name", factory.name),
                ("factory_address", factory.address),
                ("map_link", factory.map_link or ""),
            ):
                if field in draft:
                    draft[field] = value

    # Navigation

    def validate_step(self, step: Optional[str] = None) -> Dict[str, Any]:
        """
        Validate a step's draft.

        Returns:
            The validated step data, without the step tag

        Raises:
            ValidationError: With one message per rejected field
        """
        step = step or self.current_step
        try:
            data = _STEP_ADAPTER.validate_python({"step": step, **self._drafts[step]})
        except PydanticValidationError as exc:
            raise ValidationError(step, field_errors(exc, STEP_MODELS[step])) from exc
        return data.model_dump(exclude={"step"})

    def advance(self) -> bool:
        """
        Validate the current step and move to the next one.

        Returns:
            True if the step validated and the form moved on; False if it was
            rejected, in which case ``errors`` holds the field messages and
            nothing was merged into the record
        """
        if self.is_last:
            raise RuntimeError("The review step is completed with submit()")

        try:
            data = self.validate_step()
        except ValidationError as exc:
            logger.debug(str(exc))
            self.errors = exc.errors
            return False

        self.errors = {}
        self._record.update(data)
        self._index += 1
        return True

    def back(self) -> bool:
        """Move to the previous step without validating; False on the first step."""
        if self.is_first:
            return False
        self.errors = {}
        self._index -= 1
        return True

    # Submission

    def build_record(self) -> InspectionCreate:
        """
        Validate the merged record as a complete inspection.

        Raises:
            ValidationError: If merged data is incomplete
        """
        try:
            return InspectionCreate.model_validate({**self._record, "factory_id": self.factory_id})
        except PydanticValidationError as exc:
            raise ValidationError("review", field_errors(exc, InspectionCreate)) from exc

    async def submit(self) -> Optional[Inspection]:
        """
        Persist the accumulated record from the review step.

        Creates a new inspection, or updates the one the form was opened
        with. The save completes (and the hooks invalidate their caches)
        before the form marks itself submitted.

        Returns:
            The saved inspection, or None if the merged record is invalid

        Raises:
            FetchError: If the API call fails
        """
        if not self.is_last:
            raise RuntimeError("An inspection can only be submitted from the review step")

        try:
            record = self.build_record()
        except ValidationError as exc:
            self.errors = exc.errors
            return None

        self.errors = {}
        self.is_submitting = True
        try:
            if self.inspection_id is None:
                saved = await self.hooks.create_inspection(record)
            else:
                changes = InspectionUpdate.model_validate(record.model_dump())
                saved = await self.hooks.update_inspection(self.inspection_id, changes)
        except FetchError as exc:
            logger.error(f"Saving inspection failed: {exc}")
            if self.notifications is not None:
                self.notifications.error("Failed to save inspection. Please try again.", retry=self.submit)
            raise
        finally:
            self.is_submitting = False

        self.saved = saved
        self.inspection_id = saved.id
        return saved
