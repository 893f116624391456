from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Type

from pydantic import BaseModel, ValidationError

from tabletasks.core.errors import InvalidOptions
from tabletasks.io.schemas import FileRecord


@dataclass(frozen=True)
class AppContext:
    owner_id: str
    job_id: str
    input_file: FileRecord
    input_bytes: bytes
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class AppRunResult:
    report: Dict[str, Any]
    output_bytes: bytes
    output_filename: str
    output_content_type: str


@dataclass(frozen=True)
class AppEntry:
    id: str
    name: str
    slug: str
    description: str
    accepted_content_types: FrozenSet[str]
    options_model: Type[BaseModel]
    run: Callable[[AppContext], AppRunResult]

    def accepts(self, content_type: str) -> bool:
        return content_type in self.accepted_content_types

    def validate_options(self, options: Dict[str, Any] | None) -> Dict[str, Any]:
        """Validate against the options model and return it with defaults filled in."""
        try:
            parsed = self.options_model.model_validate(options or {})
        except ValidationError as e:
            raise InvalidOptions([
                {"path": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]) from e
        return parsed.model_dump()

    def describe(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "description": self.description,
            "acceptedMimeTypes": sorted(self.accepted_content_types),
            "optionsSchema": self.options_model.model_json_schema(),
        }
