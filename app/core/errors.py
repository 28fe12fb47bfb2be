"""Error taxonomy for the form builder core.

Per-field validation failures are never raised: they are reported as
messages in the runtime's error map. Everything below is raised by the
builder, the derived field engine, the runtime or the schema store, and is
translated into the JSON error envelope by ``app.main``.
"""
from __future__ import annotations


class FormBuilderError(Exception):
    """Base class for errors raised by the form builder core."""

    code = "FORM_BUILDER_ERROR"
    status_code = 400

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.__doc__ or self.code)

    @property
    def message(self) -> str:
        return str(self.args[0])


class FormulaError(FormBuilderError, ValueError):
    """The derived field formula could not be evaluated."""

    code = "FORMULA_ERROR"
    status_code = 422


class InvalidFormula(FormulaError):
    """The formula failed its authoring-time check."""

    code = "INVALID_FORMULA"


class CyclicDerivationError(FormulaError):
    """Derived fields depend on each other in a cycle."""

    code = "CYCLIC_DERIVATION"

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__("Derived fields form a cycle: " + " -> ".join(cycle))


class IndexOutOfRange(FormBuilderError, IndexError):
    """A field or option position is outside the valid range."""

    code = "INDEX_OUT_OF_RANGE"

    def __init__(self, index: int, size: int) -> None:
        self.index = index
        self.size = size
        super().__init__(f"Index {index} is outside the range [0, {size})")


class FieldNotFound(FormBuilderError, LookupError):
    """No field with the given id exists in the schema."""

    code = "FIELD_NOT_FOUND"
    status_code = 404

    def __init__(self, field_id: str) -> None:
        self.field_id = field_id
        super().__init__(f"Field '{field_id}' not found")


class FieldInUseError(FormBuilderError, ValueError):
    """The field is a parent of a derived field."""

    code = "FIELD_IN_USE"

    def __init__(self, field_id: str, dependents: list[str]) -> None:
        self.field_id = field_id
        self.dependents = dependents
        super().__init__(
            f"Field '{field_id}' is used by derived fields: {', '.join(dependents)}"
        )


class EmptyFormError(FormBuilderError, ValueError):
    """Please add at least one field to the form before saving."""

    code = "EMPTY_FORM"
    status_code = 422


class ReadOnlyFieldError(FormBuilderError, ValueError):
    """Derived fields cannot be edited directly."""

    code = "READ_ONLY_FIELD"
    status_code = 422

    def __init__(self, field_id: str) -> None:
        self.field_id = field_id
        super().__init__(f"Field '{field_id}' is derived and cannot be edited directly")


class FormNotFound(FormBuilderError, LookupError):
    """No stored form with the given id exists."""

    code = "RESOURCE_NOT_FOUND"
    status_code = 404

    def __init__(self, form_id: str) -> None:
        self.form_id = form_id
        super().__init__("Form not found")


class StoreError(FormBuilderError):
    """Could not save or load forms."""

    code = "STORE_ERROR"
    status_code = 503
