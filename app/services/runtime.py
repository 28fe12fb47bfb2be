"""Live value and error tracking for one filling-in of a saved form."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any

from app.core.errors import ReadOnlyFieldError
from app.schemas.form import FormSchema
from app.schemas.values import FieldValue, is_empty, to_field_value
from app.services import derived
from app.services.validation import validate, validate_all

logger = logging.getLogger(__name__)

SubmitCallback = Callable[[dict[str, Any]], None]


class RuntimeState(str, Enum):
    EDITING = "editing"
    SUBMITTED = "submitted"


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of a submit attempt."""

    submitted: bool
    values: dict[str, Any]
    errors: dict[str, str]
    reset_token: int | None = None


class FormRuntime:
    """Track entered values and errors for a form and decide when it can be submitted.

    The runtime owns the value map: user input goes through
    ``on_value_change``, derived fields are written only by the derived field
    engine, and submitting either reports every error or hands the final
    values to ``on_submitted``.
    """

    def __init__(
        self,
        schema: FormSchema,
        *,
        on_submitted: SubmitCallback | None = None,
        reset_delay: float = 3.0,
        today: date | None = None,
    ) -> None:
        derived.evaluation_order(schema)
        self.schema = schema
        self.on_submitted = on_submitted
        self.reset_delay = reset_delay
        self.today = today
        self.state = RuntimeState.EDITING
        self.values: dict[str, Any] = {}
        self.errors: dict[str, str] = {}
        self._generation = 0
        self._seed_values()

    def _seed_values(self) -> None:
        defaults = {
            field.id: field.default_value
            for field in self.schema.fields
            if not field.is_derived and not is_empty(field.default_value)
        }
        self.values = derived.recompute(self.schema, defaults, today=self.today)

    @property
    def submittable(self) -> bool:
        return not validate_all(self.schema, self.values)

    def on_value_change(self, field_id: str, raw_value: Any) -> str:
        """Record user input for a field and return its validation message."""

        field = self.schema.get_field(field_id)
        if field.is_derived:
            raise ReadOnlyFieldError(field_id)

        if self.state is RuntimeState.SUBMITTED:
            self.state = RuntimeState.EDITING
        self._generation += 1

        values = dict(self.values)
        values[field_id] = raw_value
        message = validate(field, raw_value)
        self.values = derived.recompute(self.schema, values, field_id, today=self.today)

        errors = dict(self.errors)
        if message:
            errors[field_id] = message
        else:
            errors.pop(field_id, None)
        for dependent in derived.dependents_of(self.schema, field_id):
            if dependent.id in errors:
                refreshed = validate(dependent, self.values.get(dependent.id))
                if refreshed:
                    errors[dependent.id] = refreshed
                else:
                    errors.pop(dependent.id)
        self.errors = errors
        return message

    def load(self, values: Mapping[str, Any]) -> dict[str, str]:
        """Apply several inputs at once, ignoring values for derived fields."""

        for field_id, raw_value in values.items():
            field = self.schema.get_field(field_id)
            if field.is_derived:
                logger.info(
                    "Ignoring input for derived field",
                    extra={"form_id": self.schema.id, "field_id": field_id},
                )
                continue
            self.on_value_change(field_id, raw_value)
        return dict(self.errors)

    def on_submit(self) -> SubmissionResult:
        """Validate every field and submit when nothing fails."""

        errors = validate_all(self.schema, self.values)
        self.errors = errors
        if errors:
            self.state = RuntimeState.EDITING
            logger.info(
                "Form submission rejected",
                extra={"form_id": self.schema.id, "error_count": len(errors)},
            )
            return SubmissionResult(submitted=False, values=dict(self.values), errors=errors)

        self.state = RuntimeState.SUBMITTED
        self._generation += 1
        final_values = dict(self.values)
        logger.info("Form submitted", extra={"form_id": self.schema.id})
        if self.on_submitted is not None:
            self.on_submitted(final_values)
        return SubmissionResult(
            submitted=True,
            values=final_values,
            errors={},
            reset_token=self._generation,
        )

    def reset(self, token: int) -> bool:
        """Clear the form after a submission unless the user has moved on.

        Returns ``False`` and leaves the state untouched when ``token`` is
        stale, i.e. a new edit or submission happened since it was issued.
        """

        if token != self._generation or self.state is not RuntimeState.SUBMITTED:
            return False
        self.state = RuntimeState.EDITING
        self.errors = {}
        self._seed_values()
        return True

    def schedule_reset(
        self, token: int, loop: asyncio.AbstractEventLoop | None = None
    ) -> asyncio.TimerHandle:
        """Reset the form ``reset_delay`` seconds from now on the event loop."""

        loop = loop or asyncio.get_running_loop()
        return loop.call_later(self.reset_delay, self.reset, token)

    def typed_values(self) -> dict[str, FieldValue]:
        """Return the current values as typed values, skipping empty ones.

        Raises ``ValueError`` for a value that does not fit its field, which
        validation reports before a submission is accepted.
        """

        typed: dict[str, FieldValue] = {}
        for field in self.schema.fields:
            value = to_field_value(field, self.values.get(field.id))
            if value is not None:
                typed[field.id] = value
        return typed
