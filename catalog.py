"""
Model catalog and per-model schema loading.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import List, Optional

from api_client import ApiError, PlaygroundClient
from form_engine import DynamicFormEngine
from schemas import InputSchema, Model

logger = logging.getLogger(__name__)


class ModelCatalogLoader:
    """Fetches the selectable models; failures leave the list empty."""

    def __init__(self, client: PlaygroundClient):
        self.client = client
        self.models: List[Model] = []

    def load(self) -> List[Model]:
        try:
            self.models = self.client.list_models()
        except ApiError as exc:
            logger.error(f"Failed to load model catalog: {exc}")
            self.models = []
        else:
            logger.info(f"Loaded {len(self.models)} models")
        return self.models

    def choices(self) -> List[tuple]:
        return [(model.name, model.id) for model in self.models]


@dataclass(frozen=True)
class SchemaTicket:
    model_id: str
    sequence: int


class SchemaResolver:
    """
    Loads the input schema of the selected model into a form engine.

    Each request is tagged with a ticket when issued. Only the response for the
    latest ticket is applied, so a slow answer for a model the user already
    moved away from never overwrites the current form.
    """

    def __init__(self, client: PlaygroundClient, form: DynamicFormEngine):
        self.client = client
        self.form = form
        self._sequence = itertools.count(1)
        self._current: Optional[SchemaTicket] = None

    @property
    def current_ticket(self) -> Optional[SchemaTicket]:
        return self._current

    def issue(self, model_id: Optional[str]) -> Optional[SchemaTicket]:
        """Record a new selection; returns the ticket to fetch with, if any."""
        self.form.select_model(model_id)
        if not model_id:
            self._current = None
            return None
        self._current = SchemaTicket(model_id, next(self._sequence))
        return self._current

    def fetch(self, ticket: SchemaTicket) -> Optional[InputSchema]:
        try:
            return self.client.get_schema(ticket.model_id)
        except ApiError as exc:
            shown = self.form.schema_model_id or "none"
            logger.error(
                f"Failed to load schema for `{ticket.model_id}` (form still shows `{shown}`): {exc}"
            )
            return None

    def apply(self, ticket: SchemaTicket, schema: Optional[InputSchema]) -> bool:
        if ticket != self._current:
            logger.debug(f"Discarding schema for superseded selection {ticket}")
            return False
        if schema is None:
            return False
        self.form.apply_schema(ticket.model_id, schema)
        logger.info(f"Schema for `{ticket.model_id}` applied with {len(schema.properties)} fields")
        return True

    def resolve(self, model_id: Optional[str]) -> bool:
        """Select ``model_id`` and load its schema. Returns True when applied."""
        ticket = self.issue(model_id)
        if ticket is None:
            return False
        return self.apply(ticket, self.fetch(ticket))
