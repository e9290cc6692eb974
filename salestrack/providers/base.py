from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Iterator, Protocol, TypeVar

import httpx
from pydantic import BaseModel, BeforeValidator, ValidationError

from salestrack.domain.models import Order, Product, SalesProviderType, Store

logger = logging.getLogger(__name__)

WireModel = TypeVar("WireModel", bound=BaseModel)


class ErrorKind(str, Enum):
    INVALID_API_KEY = "invalid_api_key"
    RATE_LIMITED = "rate_limited"
    NETWORK_ERROR = "network_error"
    DECODING_ERROR = "decoding_error"
    SERVER_ERROR = "server_error"
    NO_API_KEY = "no_api_key"


class SalesAPIError(Exception):
    kind: ErrorKind = ErrorKind.SERVER_ERROR
    message: str = "Something went wrong. Try again later."

    def __init__(self, detail: str | None = None):
        super().__init__(detail or self.message)


class InvalidAPIKeyError(SalesAPIError):
    kind = ErrorKind.INVALID_API_KEY
    message = "Invalid API key. Check your key in Settings."


class RateLimitedError(SalesAPIError):
    kind = ErrorKind.RATE_LIMITED
    message = "Rate limited. Try again in a moment."


class NetworkError(SalesAPIError):
    kind = ErrorKind.NETWORK_ERROR
    message = "Network error. Check your connection."

    def __init__(self, underlying: BaseException):
        self.underlying = underlying
        super().__init__(f"network error: {underlying}")


class DecodingError(SalesAPIError):
    kind = ErrorKind.DECODING_ERROR
    message = "Failed to parse response from server."

    def __init__(self, underlying: BaseException | str):
        self.underlying = underlying
        super().__init__(f"decoding error: {underlying}")


class ServerError(SalesAPIError):
    kind = ErrorKind.SERVER_ERROR
    message = "Server error. Try again later."

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"server error ({status_code})")


class NoAPIKeyError(SalesAPIError):
    kind = ErrorKind.NO_API_KEY
    message = "No API key configured. Add one in Settings."


class SalesProvider(Protocol):
    provider_type: SalesProviderType

    def fetch_all_orders(self) -> list[Order]:
        ...

    def fetch_products(self) -> list[Product]:
        ...

    def fetch_store(self) -> Store:
        ...

    def validate_api_key(self, key: str) -> bool:
        ...


class APIKeySlot:
    """Holds an adapter's credential; a candidate key is rolled back on any failure."""

    def __init__(self, key: str):
        self._key = key
        self._lock = threading.RLock()

    @property
    def value(self) -> str:
        with self._lock:
            return self._key

    @contextmanager
    def candidate(self, key: str) -> Iterator[None]:
        with self._lock:
            previous = self._key
            self._key = key
            try:
                yield
            except BaseException:
                self._key = previous
                raise


class ProviderHTTP:
    """GET-only JSON transport shared by the adapters, with status-code mapping."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: int,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = max(1, timeout_seconds)
        self.transport = transport

    def url(self, path: str) -> httpx.URL:
        return httpx.URL(f"{self.base_url}/{path.lstrip('/')}")

    def resolve(self, link: str) -> httpx.URL:
        return httpx.URL(f"{self.base_url}/").join(link)

    def get(
        self,
        url: httpx.URL | str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> bytes:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.get(url, params=params, headers=headers)
        except (httpx.TransportError, httpx.InvalidURL) as exc:
            raise NetworkError(exc) from exc

        status = response.status_code
        # path only: Gumroad carries its token in the query string
        logger.debug("GET %s -> %s", response.request.url.path, status)
        if 200 <= status < 300:
            return response.content
        if status == 401:
            raise InvalidAPIKeyError()
        if status == 429:
            raise RateLimitedError()
        raise ServerError(status)


def decode(model: type[WireModel], content: bytes) -> WireModel:
    try:
        return model.model_validate_json(content)
    except ValidationError as exc:
        raise DecodingError(exc) from exc


def parse_timestamp(value: Any) -> Any:
    """ISO 8601 with or without fractional seconds, ``Z`` or numeric offsets."""
    if not isinstance(value, str):
        return value
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return value
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def from_epoch(seconds: int) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


Timestamp = Annotated[datetime, BeforeValidator(parse_timestamp)]
