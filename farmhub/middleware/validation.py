"""
Declarative request validation

validate(body=..., query=..., params=...) validates every given section with
its pydantic model, collects the violations of all sections and rejects once
with the full list. Unknown fields are dropped by the models.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type

from fastapi import Request
from pydantic import BaseModel, ValidationError

from farmhub.core.errors import ValidationFailed


@dataclass
class ValidatedRequest:
    body: Optional[Any] = None
    query: Optional[Any] = None
    params: Optional[Any] = None


def format_error(section: str, error: Dict[str, Any]) -> str:
    loc = [str(part) for part in error.get("loc", ())]
    field = ".".join([section] + loc)
    message = error.get("msg", "invalid value")
    if message.startswith("Value error, "):
        message = message[len("Value error, "):]
    return f"{field}: {message}"


async def _read_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return {}
    try:
        return await request.json()
    except ValueError:
        raise ValidationFailed(["body: Invalid JSON"])


def validate(
    *,
    body: Optional[Type[BaseModel]] = None,
    query: Optional[Type[BaseModel]] = None,
    params: Optional[Type[BaseModel]] = None,
):
    """
    Dependency factory

    Usage:
        def list_things(validated: ValidatedRequest = Depends(validate(query=PaginationQuery))):
            validated.query.page
    """

    async def validator(request: Request) -> ValidatedRequest:
        sources = []
        if body is not None:
            sources.append(("body", body, await _read_body(request)))
        if query is not None:
            sources.append(("query", query, dict(request.query_params)))
        if params is not None:
            sources.append(("params", params, dict(request.path_params)))

        errors: List[str] = []
        result = ValidatedRequest()
        for section, model, data in sources:
            try:
                setattr(result, section, model.model_validate(data))
            except ValidationError as exc:
                errors.extend(format_error(section, err) for err in exc.errors())

        if errors:
            raise ValidationFailed(errors)

        request.state.validated = result
        return result

    return validator
