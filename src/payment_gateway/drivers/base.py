"""Base interface and shared implementation for payment provider drivers."""

import hashlib
import hmac
import json
import secrets
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Mapping
from urllib.parse import parse_qs, urlencode, urlsplit, urlunsplit

import httpx
import structlog

from payment_gateway.models import (
    UNKNOWN_STATUS,
    ChargeRequest,
    ChargeResponse,
    InvalidConfigurationException,
    VerificationResponse,
)
from payment_gateway.services.channel_mapper import ChannelMapper
from payment_gateway.services.status_normalizer import StatusNormalizer

logger = structlog.get_logger(__name__)


def dig(data: Any, path: str, default: Any = None) -> Any:
    """Read a dotted path ("data.object.id") out of nested dicts and lists."""
    current = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return default
        if current is None:
            return default
    return current


def first_of(data: Any, *paths: str, default: Any = None) -> Any:
    """Return the first non-empty value among several dotted paths."""
    for path in paths:
        value = dig(data, path)
        if value not in (None, ""):
            return value
    return default


def get_header(headers: Mapping[str, Any], name: str) -> str | None:
    """Case-insensitive header lookup; list values yield their first item."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            if isinstance(value, (list, tuple)):
                return str(value[0]) if value else None
            return str(value)
    return None


def hmac_hexdigest(secret: str, body: bytes, digestmod: Callable[..., Any] = hashlib.sha512) -> str:
    return hmac.new(secret.encode(), body, digestmod).hexdigest()


def as_bytes(raw_body: bytes | str) -> bytes:
    return raw_body.encode() if isinstance(raw_body, str) else raw_body


def parse_payload(raw_body: bytes | str) -> dict[str, Any]:
    """Decode a webhook body as JSON, falling back to form encoding."""
    text = raw_body.decode("utf-8", errors="replace") if isinstance(raw_body, bytes) else raw_body
    try:
        payload = json.loads(text)
    except ValueError:
        return {key: values[0] for key, values in parse_qs(text).items()}
    return payload if isinstance(payload, dict) else {"data": payload}


def error_message(error: Exception) -> str:
    """Extract the most useful message from a transport error."""
    if isinstance(error, httpx.HTTPStatusError):
        try:
            body = error.response.json()
        except ValueError:
            body = None
        if isinstance(body, Mapping):
            message = first_of(body, "message", "error.message", "detail", "error_description", "error")
            if message:
                return f"{message} (HTTP {error.response.status_code})"
        return f"HTTP {error.response.status_code}"
    return str(error) or error.__class__.__name__


class PaymentDriver(ABC):
    """
    Abstract base class for payment provider integrations.

    All providers (Paystack, Stripe, PayPal, etc.) must implement this
    interface so the manager and the webhook pipeline can treat them
    interchangeably.
    """

    name: str = ""

    @abstractmethod
    async def charge(self, request: ChargeRequest) -> ChargeResponse:
        """
        Initialize a payment with the provider.

        Args:
            request: Validated charge request (amount in major units)

        Returns:
            ChargeResponse with the provider's checkout URL and a canonical status

        Raises:
            ChargeException: On transport failure, a non-success provider
                response, or a success response missing a required field
        """

    @abstractmethod
    async def verify(self, verification_id: str) -> VerificationResponse:
        """
        Fetch the current state of a payment from the provider.

        Args:
            verification_id: Reference or provider-side id, see
                resolve_verification_id()

        Raises:
            VerificationException: On transport failure or a non-success response
        """

    @abstractmethod
    async def validate_webhook(self, headers: Mapping[str, Any], raw_body: bytes | str) -> bool:
        """
        Authenticate an inbound webhook.

        Args:
            headers: Request headers (names matched case-insensitively)
            raw_body: The exact, unparsed request body

        Returns:
            True if the signature is valid
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True if the provider API is reachable (2xx or 4xx)."""

    @abstractmethod
    def extract_webhook_reference(self, payload: dict[str, Any]) -> str | None:
        """Return the payment reference carried by a webhook payload."""

    @abstractmethod
    def extract_webhook_status(self, payload: dict[str, Any]) -> str:
        """Return the raw status carried by a webhook payload, or "unknown"."""

    @abstractmethod
    def extract_webhook_channel(self, payload: dict[str, Any]) -> str | None:
        """Return the payment channel carried by a webhook payload."""

    def extract_webhook_paid_at(self, payload: dict[str, Any]) -> Any:
        """Return the payment timestamp carried by a webhook payload, if any."""
        return None

    @abstractmethod
    def resolve_verification_id(self, reference: str, provider_id: str | None) -> str:
        """Choose the identifier to pass to verify()."""

    @abstractmethod
    def is_currency_supported(self, currency: str) -> bool:
        """Return True if the provider is configured for this currency."""

    @abstractmethod
    def generate_reference(self, prefix: str | None = None) -> str:
        """Generate a new unique payment reference."""


class BaseDriver(PaymentDriver):
    """
    Shared behaviour for HTTP-based drivers.

    Subclasses declare REQUIRED_CONFIG and DEFAULT_BASE_URL and implement
    only the provider-specific request/response shaping and webhook check.
    """

    REQUIRED_CONFIG: tuple[str, ...] = ()
    DEFAULT_BASE_URL: str = ""
    REFERENCE_PREFIX: str | None = None
    IDEMPOTENCY_HEADER: str = "Idempotency-Key"

    def __init__(
        self,
        config: Mapping[str, Any],
        http_client: httpx.AsyncClient | None = None,
        status_normalizer: StatusNormalizer | None = None,
        channel_mapper: ChannelMapper | None = None,
    ) -> None:
        """
        Initialize the driver.

        Args:
            config: Provider config (credentials, currencies, base_url, ...)
            http_client: Optional shared client; one is created lazily otherwise
            status_normalizer: Normalizer with any provider overrides
            channel_mapper: Channel vocabulary mapper

        Raises:
            InvalidConfigurationException: If a required credential is missing
        """
        self.config: dict[str, Any] = dict(config or {})
        self.validate_config()

        self.base_url = (self.config.get("base_url") or self.DEFAULT_BASE_URL).rstrip("/")
        self.timeout_seconds = float(self.config.get("timeout_seconds") or 30)
        self.currencies = [str(c).upper() for c in self.config.get("currencies") or []]
        self.status_normalizer = status_normalizer or StatusNormalizer()
        self.channel_mapper = channel_mapper or ChannelMapper()
        self._client = http_client
        self._owns_client = http_client is None

    def validate_config(self) -> None:
        for key in self.REQUIRED_CONFIG:
            value = self.config.get(key)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise InvalidConfigurationException(
                    f"{self.name or self.__class__.__name__} {key} is required",
                    context={"provider": self.name, "missing": key},
                )

    # HTTP transport

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        return self._client

    def default_headers(self) -> dict[str, str]:
        """Headers sent on every request (auth, content type)."""
        return {"Accept": "application/json", "Content-Type": "application/json"}

    def build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def _send(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        idempotency_key: str | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        merged = {**self.default_headers(), **(headers or {})}
        if idempotency_key and not get_header(merged, self.IDEMPOTENCY_HEADER):
            merged[self.IDEMPOTENCY_HEADER] = idempotency_key
        return await self.client.request(method, self.build_url(path), headers=merged, **kwargs)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request and raise httpx.HTTPStatusError on 4xx/5xx.

        An Idempotency-Key header is added when idempotency_key is given,
        unless the caller already supplied one (in any letter case).
        """
        response = await self._send(method, path, **kwargs)
        response.raise_for_status()
        return response

    async def _probe(self, method: str, path: str, **kwargs: Any) -> bool:
        """Health probe: any response below 500 means the API is reachable."""
        kwargs.setdefault("timeout", float(self.config.get("health_timeout_seconds") or 5))
        try:
            response = await self._send(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("health_check_failed", provider=self.name, error=str(e))
            return False

        healthy = response.status_code < 500
        if not healthy:
            logger.warning("health_check_failed", provider=self.name, status_code=response.status_code)
        return healthy

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    # Shared helpers

    def generate_reference(self, prefix: str | None = None) -> str:
        prefix = (prefix or self.REFERENCE_PREFIX or self.name).upper()
        return f"{prefix}_{int(time.time())}_{secrets.token_hex(8)}"

    def is_currency_supported(self, currency: str) -> bool:
        return bool(currency) and currency.upper() in self.currencies

    def map_channels(self, request: ChargeRequest) -> list[str] | None:
        if not self.channel_mapper.should_include_channels(self.name, request.channels):
            return None
        return self.channel_mapper.map_channels(request.channels, self.name)

    def normalize_status(self, raw_status: str | None) -> str:
        return self.status_normalizer.normalize(raw_status, self.name)

    def callback_url(self, request: ChargeRequest) -> str | None:
        return request.callback_url or self.config.get("callback_url")

    @staticmethod
    def append_query_params(url: str, **params: Any) -> str:
        """Append query parameters to a URL that may already have a query string."""
        parts = urlsplit(url)
        extra = urlencode({k: v for k, v in params.items() if v is not None})
        query = f"{parts.query}&{extra}" if parts.query else extra
        return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))

    def resolve_verification_id(self, reference: str, provider_id: str | None) -> str:
        return provider_id if provider_id else reference

    # Default webhook payload extraction

    def extract_webhook_reference(self, payload: dict[str, Any]) -> str | None:
        return first_of(payload, "reference", "transactionReference")

    def extract_webhook_status(self, payload: dict[str, Any]) -> str:
        return first_of(payload, "status", "paymentStatus", default=UNKNOWN_STATUS)

    def extract_webhook_channel(self, payload: dict[str, Any]) -> str | None:
        return first_of(payload, "channel", "paymentMethod")

    def extract_webhook_paid_at(self, payload: dict[str, Any]) -> Any:
        return first_of(payload, "paid_at", "paidAt", "paidOn")
