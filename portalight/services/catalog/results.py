from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union


T = TypeVar("T")

ERROR_KIND_CONFIG = "config"
ERROR_KIND_FETCH = "fetch"
ERROR_KIND_PARSE = "parse"
ERROR_KIND_VALIDATION = "validation"
ERROR_KIND_RESOLUTION = "resolution"
ERROR_KIND_PERSISTENCE = "persistence"
ERROR_KIND_TIMEOUT = "timeout"
ERROR_KIND_BUSY = "busy"
ERROR_KIND_INTERNAL = "internal"


@dataclass(frozen=True)
class FieldError:
    # Field paths use document notation, e.g. spec.services[2].name.
    field: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


@dataclass(frozen=True)
class StageOk(Generic[T]):
    value: T


@dataclass(frozen=True)
class StageFailed:
    kind: str
    message: str
    errors: tuple[FieldError, ...] = field(default_factory=tuple)


StageResult = Union[StageOk[T], StageFailed]


def format_field_path(loc: tuple[Any, ...]) -> str:
    # ("spec", "services", 2, "name") -> "spec.services[2].name"
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif path:
            path += f".{part}"
        else:
            path = str(part)
    return path
