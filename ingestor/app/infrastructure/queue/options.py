"""Shared option validation for queue client adapters."""
from __future__ import annotations

from typing import Any, Mapping, TypeVar

from pydantic import BaseModel, ValidationError

from ingestor.app.ports.queue_client import InvalidClientOptions

OptionsT = TypeVar("OptionsT", bound=BaseModel)


def describe_validation_error(exc: ValidationError) -> str:
    """One clause per offending option: '<option>: <constraint>, got: <value>'."""
    parts = []
    for error in exc.errors():
        option = ".".join(str(part) for part in error["loc"]) or "options"
        parts.append(f"{option}: {error['msg']}, got: {error.get('input')!r}")
    return "; ".join(parts)


def parse_options(model: type[OptionsT], options: Mapping[str, Any]) -> OptionsT:
    try:
        return model.model_validate(dict(options))
    except ValidationError as exc:
        raise InvalidClientOptions(describe_validation_error(exc)) from exc
