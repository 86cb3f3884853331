"""Shared fakes for the playground tests. No test touches the network."""

from typing import Any, Dict, List, Optional

import pytest

from api_client import ApiConnectionError, ApiResponseError, image_proxy_url
from schemas import InputSchema, Model, R2Image

EXAMPLE_SCHEMA = {
    "input": {
        "properties": {
            "prompt": {"type": "string", "description": "Prompt"},
            "steps": {"type": "integer", "description": "Steps", "default": 20, "minimum": 1, "maximum": 50},
        },
        "required": ["prompt"],
    }
}


class FakeClient:
    """Stands in for PlaygroundClient; records every call it receives."""

    base_url = "http://api.test"

    def __init__(self):
        self.models: List[Model] = []
        self.schemas: Dict[str, InputSchema] = {}
        self.images: List[R2Image] = []
        self.generate_response: Any = "https://cdn.test/result.png"
        self.image_bytes: bytes = b"\x89PNG fake"
        self.fail_models = False
        self.fail_images = False
        self.calls: List[tuple] = []

    def list_models(self) -> List[Model]:
        self.calls.append(("list_models",))
        if self.fail_models:
            raise ApiConnectionError("catalog down")
        return list(self.models)

    def get_schema(self, model_id: str) -> InputSchema:
        self.calls.append(("get_schema", model_id))
        if model_id not in self.schemas:
            raise ApiResponseError(404, "Not Found", f"{self.base_url}/api/schema")
        return self.schemas[model_id]

    def generate_image(self, model_id: str, values: Dict[str, Any]) -> str:
        body = {"model": model_id}
        body.update(values)
        self.calls.append(("generate_image", body))
        if isinstance(self.generate_response, Exception):
            raise self.generate_response
        return self.generate_response

    def list_images(self) -> List[R2Image]:
        self.calls.append(("list_images",))
        if self.fail_images:
            raise ApiResponseError(500, "Internal Server Error", f"{self.base_url}/api/images")
        return list(self.images)

    def image_url(self, key: str) -> str:
        return image_proxy_url(self.base_url, key)

    def resolve_reference(self, reference: str) -> str:
        if reference.startswith(("http://", "https://", "data:")):
            return reference
        return self.base_url + "/" + reference.lstrip("/")

    def fetch_image_bytes(self, reference: str) -> bytes:
        self.calls.append(("fetch_image_bytes", reference))
        return self.image_bytes

    def count(self, name: str) -> int:
        return sum(1 for call in self.calls if call[0] == name)


def make_schema(payload: Optional[dict] = None) -> InputSchema:
    return InputSchema.model_validate(payload or EXAMPLE_SCHEMA)


@pytest.fixture
def client() -> FakeClient:
    fake = FakeClient()
    fake.models = [Model(id="@cf/flux", name="Flux"), Model(id="@cf/sdxl", name="SDXL")]
    fake.schemas = {
        "@cf/flux": make_schema(),
        "@cf/sdxl": make_schema(
            {
                "properties": {
                    "prompt": {"type": "string", "description": "Prompt"},
                    "guidance": {"type": "number", "description": "Guidance", "default": 7.5},
                    "width": {"type": "integer", "description": "Width", "default": 1024},
                },
                "required": ["prompt", "width"],
            }
        ),
    }
    return fake
