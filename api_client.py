"""
HTTP client for the image playground API.

Wraps the five collaborator endpoints (model catalog, input schema, image
generation, image listing and the image proxy) behind one ``requests.Session``.
Every failure surfaces as an ``ApiError`` subclass so callers only have one
exception family to catch.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote, unquote, urljoin

import requests
from pydantic import TypeAdapter, ValidationError

from schemas import InputSchema, Model, R2Image

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://127.0.0.1:8787"
DEFAULT_REQUEST_TIMEOUT = 15
DEFAULT_GENERATE_TIMEOUT = 120

MODELS_PATH = "/api/models"
SCHEMA_PATH = "/api/schema"
GENERATE_PATH = "/api/generate_image"
IMAGES_PATH = "/api/images"
IMAGE_PROXY_PATH = "/api/image"

_MODEL_LIST = TypeAdapter(List[Model])
_IMAGE_LIST = TypeAdapter(List[R2Image])


class ApiError(Exception):
    """Base class for every failure talking to the API."""


class ApiConnectionError(ApiError):
    """The request never produced a response (refused, DNS, timeout...)."""


class ApiResponseError(ApiError):
    """The API answered with a non-success status."""

    def __init__(self, status_code: int, reason: str = "", url: str = ""):
        self.status_code = status_code
        self.reason = reason
        self.url = url
        super().__init__(f"HTTP {status_code} {reason} from {url}".strip())


class SchemaError(ApiError):
    """A payload did not match the expected shape."""


def image_proxy_url(base_url: str, key: str) -> str:
    """Display URL for a stored image, routed through the proxy endpoint."""
    return f"{base_url.rstrip('/')}{IMAGE_PROXY_PATH}?key={quote(key, safe='')}"


def decode_data_uri(reference: str) -> bytes:
    """Decode a ``data:<mime>;base64,<payload>`` reference."""
    header, sep, payload = reference.partition(",")
    if not sep or not header.startswith("data:"):
        raise SchemaError("Malformed data URI")
    try:
        if header.endswith(";base64"):
            return base64.b64decode(payload, validate=True)
        return unquote(payload).encode("utf-8")
    except (binascii.Error, ValueError) as exc:
        raise SchemaError(f"Could not decode data URI: {exc}") from exc


class PlaygroundClient:
    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        generate_timeout: Optional[float] = DEFAULT_GENERATE_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or DEFAULT_API_URL).rstrip("/")
        self.request_timeout = request_timeout
        self.generate_timeout = generate_timeout
        self.session = session or requests.Session()

    def url(self, path: str) -> str:
        return urljoin(f"{self.base_url}/", path.lstrip("/"))

    def _request(self, method: str, path: str, timeout: Optional[float], **kwargs) -> requests.Response:
        url = self.url(path)
        logger.debug(f"{method} {url}")
        try:
            response = self.session.request(method, url, timeout=timeout, **kwargs)
        except requests.exceptions.RequestException as exc:
            raise ApiConnectionError(f"Failed to reach {url}: {exc}") from exc
        if not response.ok:
            raise ApiResponseError(response.status_code, response.reason or "", url)
        return response

    def _json(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise SchemaError(f"Response from {response.url} is not JSON: {exc}") from exc

    def list_models(self) -> List[Model]:
        response = self._request("GET", MODELS_PATH, self.request_timeout)
        try:
            return _MODEL_LIST.validate_python(self._json(response))
        except ValidationError as exc:
            raise SchemaError(f"Unexpected model catalog payload: {exc}") from exc

    def get_schema(self, model_id: str) -> InputSchema:
        response = self._request("GET", SCHEMA_PATH, self.request_timeout, params={"model": model_id})
        try:
            return InputSchema.model_validate(self._json(response))
        except ValidationError as exc:
            raise SchemaError(f"Unexpected schema payload for `{model_id}`: {exc}") from exc

    def generate_image(self, model_id: str, values: Mapping[str, Any]) -> str:
        """Submit a generation request and return the opaque image reference."""
        body: Dict[str, Any] = {"model": model_id}
        body.update(values)
        response = self._request("POST", GENERATE_PATH, self.generate_timeout, json=body)
        return response.text.strip()

    def list_images(self) -> List[R2Image]:
        response = self._request("GET", IMAGES_PATH, self.request_timeout)
        try:
            return _IMAGE_LIST.validate_python(self._json(response))
        except ValidationError as exc:
            raise SchemaError(f"Unexpected image list payload: {exc}") from exc

    def image_url(self, key: str) -> str:
        return image_proxy_url(self.base_url, key)

    def resolve_reference(self, reference: str) -> str:
        """Turn a relative image reference into an absolute URL; leave others alone."""
        if reference.startswith(("http://", "https://", "data:")):
            return reference
        return self.url(reference)

    def fetch_image_bytes(self, reference: str) -> bytes:
        """Materialise an image reference (data URI or URL) as raw bytes."""
        reference = reference.strip()
        if not reference:
            raise SchemaError("Empty image reference")
        if reference.startswith("data:"):
            return decode_data_uri(reference)
        url = self.resolve_reference(reference)
        try:
            response = self.session.get(url, timeout=self.request_timeout)
        except requests.exceptions.RequestException as exc:
            raise ApiConnectionError(f"Failed to download {url}: {exc}") from exc
        if not response.ok:
            raise ApiResponseError(response.status_code, response.reason or "", url)
        return response.content
