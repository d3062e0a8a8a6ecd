"""
Input Validation

DESIGN DECISION: Validation happens before any store call, in two stages:

STAGE 1 - SCHEMA VALIDATION:
- Type checking, required fields, formats (pydantic models)
- Unknown keys are rejected, never silently dropped

STAGE 2 - REFERENCE VALIDATION:
- Referenced entities must exist in the caller's partition
- Runs inside the workflows because it needs the store

Only stage 1 lives here. Validation NEVER silently fixes values beyond
the normalisations the models document (trimming and upper-cased
currency).
"""

from typing import Any, TypeVar, Union

from pydantic import BaseModel, ValidationError

from trackmyexpense.errors import InvalidInputError


ModelT = TypeVar("ModelT", bound=BaseModel)


def issues_from_error(error: ValidationError) -> list[dict[str, str]]:
    """Flatten pydantic errors into {field, message} pairs."""
    issues = []
    for detail in error.errors():
        field = ".".join(str(part) for part in detail["loc"]) or "__root__"
        issues.append({"field": field, "message": detail["msg"]})
    return issues


def validate_input(model: type[ModelT], data: Union[ModelT, dict[str, Any]]) -> ModelT:
    """
    Stage 1: coerce raw input into `model`.

    Already-built instances pass through unchanged. Anything else is
    validated, and failures become InvalidInputError with one issue per
    offending field.
    """
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except ValidationError as e:
        issues = issues_from_error(e)
        summary = "; ".join(f"{i['field']}: {i['message']}" for i in issues)
        raise InvalidInputError(
            f"Invalid {model.__name__}: {summary}", issues=issues
        ) from e
