"""
Generation request state machine.

    Idle ──submit──▶ Loading ──accepted──▶ Success
                        │                    │
                        └──rejected/error──▶ Failed
    Success/Failed ──submit──▶ Loading

Every transition publishes an immutable ``GenerationSnapshot``. A successful
request publishes two: one carrying the image reference, then, after a short
delay, one with the reveal flag set so the UI can fade the image in.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, Mapping, Optional

from api_client import ApiError, PlaygroundClient, decode_data_uri

logger = logging.getLogger(__name__)

DOWNLOAD_FILENAME = "generated-image.png"
PREVIEW_FILENAME = "preview.png"
DEFAULT_REVEAL_DELAY = 0.05


class GenerationState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class GenerationSnapshot:
    state: GenerationState = GenerationState.IDLE
    result: Optional[str] = None
    revealed: bool = False

    @property
    def is_loading(self) -> bool:
        return self.state == GenerationState.LOADING

    @property
    def has_result(self) -> bool:
        return self.result is not None


IDLE = GenerationSnapshot()


class GenerationOrchestrator:
    def __init__(
        self,
        client: PlaygroundClient,
        reveal_delay: float = DEFAULT_REVEAL_DELAY,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.client = client
        self.reveal_delay = reveal_delay
        self._sleep = sleep
        self._snapshot = IDLE

    @property
    def snapshot(self) -> GenerationSnapshot:
        return self._snapshot

    @property
    def state(self) -> GenerationState:
        return self._snapshot.state

    @property
    def result(self) -> Optional[str]:
        return self._snapshot.result

    @property
    def revealed(self) -> bool:
        return self._snapshot.revealed

    def can_submit(self, form_valid: bool) -> bool:
        return form_valid and not self._snapshot.is_loading

    # -- transitions ---------------------------------------------------------

    def _enter_loading(self) -> GenerationSnapshot:
        self._snapshot = GenerationSnapshot(GenerationState.LOADING)
        return self._snapshot

    def _succeed(self, reference: str) -> GenerationSnapshot:
        self._snapshot = GenerationSnapshot(GenerationState.SUCCESS, result=reference)
        return self._snapshot

    def _reveal(self) -> GenerationSnapshot:
        if self._snapshot.state == GenerationState.SUCCESS:
            self._snapshot = GenerationSnapshot(
                GenerationState.SUCCESS, result=self._snapshot.result, revealed=True
            )
        return self._snapshot

    def _fail(self) -> GenerationSnapshot:
        self._snapshot = GenerationSnapshot(GenerationState.FAILED)
        return self._snapshot

    # -- operations ----------------------------------------------------------

    def submit(
        self, model_id: str, values: Mapping[str, Any], form_valid: bool
    ) -> Iterator[GenerationSnapshot]:
        """
        Run one generation request, yielding each state it passes through.

        Yields nothing when the form is invalid or a request is already in
        flight.
        """
        if not self.can_submit(form_valid):
            logger.debug(f"Ignoring submission in state {self.state.value} (valid={form_valid})")
            return

        yield self._enter_loading()
        logger.info(f"Generating image with `{model_id}`")
        try:
            reference = self.client.generate_image(model_id, values)
        except ApiError as exc:
            logger.error(f"Error generating image: {exc}")
            yield self._fail()
            return

        yield self._succeed(reference)
        self._sleep(self.reveal_delay)
        yield self._reveal()

    def display_source(self, preview_dir: str) -> Optional[str]:
        """Something an image widget can show: a URL or a local file path."""
        reference = self.result
        if reference is None:
            return None
        if not reference.startswith("data:"):
            return self.client.resolve_reference(reference)
        try:
            data = decode_data_uri(reference)
            os.makedirs(preview_dir, exist_ok=True)
            # One file per session, overwritten by each new result.
            path = os.path.join(preview_dir, PREVIEW_FILENAME)
            with open(path, "wb") as fh:
                fh.write(data)
            return path
        except (ApiError, OSError) as exc:
            logger.error(f"Failed to prepare preview: {exc}")
            return None

    def download(self, target_dir: str) -> Optional[str]:
        """Save the held image as ``generated-image.png``; returns the path."""
        reference = self.result
        if reference is None:
            return None
        try:
            data = self.client.fetch_image_bytes(reference)
            os.makedirs(target_dir, exist_ok=True)
            path = os.path.join(target_dir, DOWNLOAD_FILENAME)
            with open(path, "wb") as fh:
                fh.write(data)
        except (ApiError, OSError) as exc:
            logger.error(f"Failed to download generated image: {exc}")
            return None
        logger.info(f"Saved generated image to {path}")
        return path
