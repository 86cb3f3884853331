"""
Schema-driven form state for the Generate tab.

The engine owns the selected model id, the schema currently on screen and the
typed input values entered against it. It knows nothing about Gradio: the UI
renders ``fields()`` into widgets and feeds raw widget values back through
``commit()``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from schemas import InputSchema, SchemaProperty

logger = logging.getLogger(__name__)


class FieldKind(str, Enum):
    TEXT = "text"
    INTEGER = "integer"
    NUMBER = "number"


def field_kind(prop: SchemaProperty) -> FieldKind:
    if not prop.is_numeric:
        return FieldKind.TEXT
    if prop.type == "integer":
        return FieldKind.INTEGER
    return FieldKind.NUMBER


def format_field_label(name: str, required: bool) -> str:
    label = name[:1].upper() + name[1:]
    return f"{label} *" if required else label


@dataclass(frozen=True)
class FormField:
    name: str
    label: str
    kind: FieldKind
    placeholder: str
    required: bool
    value: Any = None
    minimum: Optional[float] = None
    maximum: Optional[float] = None

    @property
    def is_numeric(self) -> bool:
        return self.kind in (FieldKind.INTEGER, FieldKind.NUMBER)


def coerce_field_value(name: str, kind: FieldKind, value: Any) -> Tuple[Any, Optional[str]]:
    """
    Parse a raw widget value into the field's value variant.

    Returns ``(value, warning)``. A ``None`` value with no warning means the
    entry was cleared; a warning means the entry was rejected.
    """
    if kind == FieldKind.TEXT:
        if value is None:
            return "", None
        return str(value), None

    if isinstance(value, bool):
        return None, f"Unexpected type for `{name}`"

    if kind == FieldKind.INTEGER:
        if isinstance(value, int):
            return value, None
        if isinstance(value, float):
            if value.is_integer():
                return int(value), None
            return None, f"`{name}` must be a whole number"
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return None, None
            try:
                return int(stripped), None
            except ValueError:
                return None, f"Could not parse integer for `{name}`"
        if value is None:
            return None, None
        return None, f"Unexpected type for `{name}`"

    if isinstance(value, (int, float)):
        return float(value), None
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            return None, None
        try:
            return float(stripped), None
        except ValueError:
            return None, f"Could not parse number for `{name}`"
    if value is None:
        return None, None
    return None, f"Unexpected type for `{name}`"


class DynamicFormEngine:
    def __init__(self):
        self.selected_model: str = ""
        self.schema: Optional[InputSchema] = None
        # Model id the displayed schema belongs to; can lag behind
        # selected_model while a fetch is pending or after one failed.
        self.schema_model_id: str = ""
        self.values: Dict[str, Any] = {}

    def select_model(self, model_id: Optional[str]) -> None:
        self.selected_model = model_id or ""

    def apply_schema(self, model_id: str, schema: InputSchema) -> None:
        """Show ``schema`` and replace all values with its declared defaults."""
        self.schema = schema
        self.schema_model_id = model_id
        self.values = schema.default_values()

    @property
    def schema_is_stale(self) -> bool:
        return self.schema is not None and self.schema_model_id != self.selected_model

    def fields(self) -> List[FormField]:
        if self.schema is None:
            return []
        result: List[FormField] = []
        for name, prop in self.schema.properties.items():
            required = self.schema.is_required(name)
            result.append(
                FormField(
                    name=name,
                    label=format_field_label(name, required),
                    kind=field_kind(prop),
                    placeholder=prop.description,
                    required=required,
                    value=self.values.get(name),
                    minimum=prop.minimum,
                    maximum=prop.maximum,
                )
            )
        return result

    def commit(self, name: str, raw: Any) -> Optional[str]:
        """
        Store one edited value. Only ``name`` is touched.

        Returns a warning when the entry is rejected; the previous value is kept.
        Bounds are not enforced here.
        """
        if self.schema is None or name not in self.schema.properties:
            logger.debug(f"Ignoring edit for unknown field `{name}`")
            return None
        kind = field_kind(self.schema.properties[name])
        value, warning = coerce_field_value(name, kind, raw)
        if warning:
            return warning
        if value is None:
            self.values.pop(name, None)
        else:
            self.values[name] = value
        return None

    def missing_required(self) -> List[str]:
        if self.schema is None:
            return []
        return [
            name
            for name in self.schema.required
            if self.values.get(name) is None or self.values.get(name) == ""
        ]

    def is_valid(self) -> bool:
        # No schema yet means nothing to submit against.
        if not self.selected_model or self.schema is None:
            return False
        return not self.missing_required()

    def payload(self) -> Dict[str, Any]:
        return dict(self.values)
