"""
Data shapes exchanged with the image playground API.

Everything here is parsed from JSON payloads with pydantic and treated as
read-only once fetched.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

NUMERIC_TYPES = ("integer", "number")


class Model(BaseModel):
    """A selectable generation backend."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str


class SchemaProperty(BaseModel):
    """One named input accepted by a model."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: str = "string"
    description: str = ""
    default: Optional[Any] = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None

    @property
    def has_default(self) -> bool:
        # An explicit ``null`` is still a declared default.
        return "default" in self.model_fields_set

    @property
    def is_numeric(self) -> bool:
        return self.type in NUMERIC_TYPES


class InputSchema(BaseModel):
    """
    Server-declared description of a model's inputs.

    ``properties`` keeps the payload's insertion order, which is also the
    display order of the form.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    properties: Dict[str, SchemaProperty] = Field(default_factory=dict)
    required: List[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _unwrap_input(cls, data: Any) -> Any:
        # The API serves the schema as {"input": {...}}; accept both shapes.
        if isinstance(data, dict) and "properties" not in data and isinstance(data.get("input"), dict):
            return data["input"]
        return data

    @model_validator(mode="after")
    def _check_required(self) -> "InputSchema":
        unknown = [name for name in self.required if name not in self.properties]
        if unknown:
            raise ValueError(f"required names not declared in properties: {', '.join(unknown)}")
        return self

    def is_required(self, name: str) -> bool:
        return name in self.required

    def default_values(self) -> Dict[str, Any]:
        """Return ``{name: default}`` for every property declaring a default."""
        return {
            name: prop.default
            for name, prop in self.properties.items()
            if prop.has_default
        }


class R2Image(BaseModel):
    """A stored image as listed by the object store."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    key: str
    uploaded: str = ""
