"""
Workorder API Client

Architectural Intent:
- Implements SupportTicketPort against the provider's Workorder API
- Every call is an RPC-style GET signed with ACS3-HMAC-SHA256
- Resolves the product and ticket category from the live catalog when the
  configuration leaves them at zero

Design Decisions:
- httpx.AsyncClient per call; tests inject an httpx.MockTransport
- Clock and nonce factory are injectable so signed requests are reproducible
- The envelope's Success flag is authoritative; Data alone proves nothing
- No retries: every failure surfaces to the caller as a typed error
- Catalog matching is substring based on the provider's wording. If the
  provider renames the product or its categories, resolution falls back to
  NotFoundError / the first category; set ticket.product_id and
  ticket.category_id explicitly to pin them.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Callable, Optional
import json
import logging
import uuid

import httpx

from bandwatch.domain.errors import NotFoundError, TransportError, UpstreamApiError
from bandwatch.infrastructure.config import BandwatchConfig, TicketConfig
from bandwatch.infrastructure.signing.acs3_signer import Acs3Signer, sha256_hex

logger = logging.getLogger(__name__)

# Product name markers: the Chinese one is matched as-is, the English one
# case-insensitively.
PRODUCT_MARKER = "轻量"
PRODUCT_MARKER_EN = "simple application"

CATEGORY_KEYWORDS: tuple[str, ...] = ("带宽", "网络", "限速", "bandwidth", "network")

DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def object_list(data: Any, action: str) -> list[dict]:
    """Data that must be a JSON array of objects.

    Raises:
        UpstreamApiError: the provider sent something else
    """
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise UpstreamApiError(
            f"unexpected Data shape: expected a list of objects, got {type(data).__name__}",
            action=action,
        )
    return data


def parse_id(value: Any, action: str, label: str) -> int:
    """Positive integer id from a provider field that may be a number or a string."""
    if isinstance(value, bool):
        value = None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise UpstreamApiError(f"{label} {value!r} is not an integer", action=action) from None
    if parsed <= 0:
        raise UpstreamApiError(f"{label} {value!r} is not a positive id", action=action)
    return parsed


@dataclass(frozen=True)
class ApiEnvelope:
    """Standard Workorder response wrapper."""
    code: Any = None
    message: str = ""
    success: Optional[bool] = None
    data: Any = None
    request_id: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: dict) -> ApiEnvelope:
        return cls(
            code=payload.get("Code"),
            message=payload.get("Message") or "",
            success=payload.get("Success"),
            data=payload.get("Data"),
            request_id=payload.get("RequestId"),
        )


@dataclass(frozen=True)
class Product:
    product_id: Optional[int]
    product_name: str


@dataclass(frozen=True)
class ProductDirectory:
    directory_id: Optional[int]
    directory_name: str
    products: tuple[Product, ...] = ()

    @classmethod
    def from_dict(cls, payload: dict) -> ProductDirectory:
        return cls(
            directory_id=payload.get("DirectoryId"),
            directory_name=str(payload.get("DirectoryName") or "unknown"),
            products=tuple(
                Product(
                    product_id=p.get("ProductId"),
                    product_name=str(p.get("ProductName") or ""),
                )
                for p in object_list(payload.get("ProductList") or [], "ListProducts")
            ),
        )


@dataclass(frozen=True)
class Category:
    category_id: Optional[int]
    category_name: str

    @classmethod
    def from_dict(cls, payload: dict) -> Category:
        return cls(
            category_id=payload.get("CategoryId"),
            category_name=str(payload.get("CategoryName") or ""),
        )


@dataclass(frozen=True)
class CatalogReport:
    """Result of a catalog lookup, for operators configuring fixed ids."""
    product_id: int
    category_id: int
    categories: tuple[Category, ...] = field(default_factory=tuple)


def match_product(directories: list[ProductDirectory]) -> Optional[Product]:
    """First product, in listing order, whose name carries a product marker."""
    for directory in directories:
        for product in directory.products:
            name = product.product_name
            if PRODUCT_MARKER in name or PRODUCT_MARKER_EN in name.lower():
                return product
    return None


def match_category(
    categories: list[Category],
    keywords: tuple[str, ...] = CATEGORY_KEYWORDS,
) -> Optional[Category]:
    """Earliest keyword wins; within a keyword, the first listed category wins."""
    for keyword in keywords:
        for category in categories:
            if keyword in category.category_name.lower():
                return category
    return None


def _describe_products(directories: list[ProductDirectory]) -> tuple[str, ...]:
    return tuple(
        f"[{d.directory_name}] {p.product_name or 'unknown'} (ProductId: {p.product_id or 0})"
        for d in directories
        for p in d.products
    )


class WorkorderClient:
    """Workorder API client (SupportTicketPort implementation)."""

    def __init__(
        self,
        config: BandwatchConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], datetime]] = None,
        nonce_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self._config = config
        self._signer = Acs3Signer(
            config.credentials.access_key_id,
            config.credentials.access_key_secret,
        )
        self._transport = transport
        self._clock = clock or (lambda: datetime.now(UTC))
        self._nonce_factory = nonce_factory or (lambda: str(uuid.uuid4()))

    @property
    def ticket(self) -> TicketConfig:
        return self._config.ticket

    def build_headers(self, action: str) -> dict[str, str]:
        """Common signed headers for one call, with a fresh date and nonce."""
        provider = self._config.provider
        return {
            "host": provider.endpoint,
            "x-acs-action": action,
            "x-acs-version": provider.api_version,
            "x-acs-date": self._clock().strftime(DATE_FORMAT),
            "x-acs-signature-nonce": self._nonce_factory(),
            "x-acs-content-sha256": sha256_hex(""),
        }

    async def call_api(self, action: str, params: dict[str, str]) -> ApiEnvelope:
        """Sign and send one RPC call, returning a successful envelope.

        Raises:
            SigningError: the access key secret is unusable
            TransportError: the request never produced an HTTP response
            UpstreamApiError: non-2xx status, unparseable body, or Success != true
        """
        headers = self.build_headers(action)
        headers["Authorization"] = self._signer.sign("GET", params, headers, "")
        url = f"https://{self._config.provider.endpoint}/"

        logger.debug("Workorder %s %s", action, params)
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=self._config.provider.timeout_seconds,
            ) as client:
                response = await client.get(url, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(f"{action} request failed: {e}") from e

        text = response.text
        if not response.is_success:
            message = text
            try:
                message = ApiEnvelope.from_dict(json.loads(text)).message or text
            except (json.JSONDecodeError, AttributeError):
                pass
            raise UpstreamApiError(message, action=action, status_code=response.status_code)

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as e:
            raise UpstreamApiError(
                f"unparseable response: {e}", action=action, status_code=response.status_code
            ) from e
        if not isinstance(payload, dict):
            raise UpstreamApiError(
                "response is not a JSON object", action=action, status_code=response.status_code
            )

        envelope = ApiEnvelope.from_dict(payload)
        if envelope.success is not True:
            raise UpstreamApiError(
                envelope.message, action=action, request_id=envelope.request_id
            )
        return envelope

    async def find_product_id(self) -> int:
        """Find the product id of the lightweight application server."""
        logger.info("Querying provider product catalog...")
        envelope = await self.call_api(
            "ListProducts", {"Language": self._config.provider.language}
        )
        if envelope.data is None:
            raise UpstreamApiError("ListProducts returned no data", action="ListProducts")

        directories = [
            ProductDirectory.from_dict(d) for d in object_list(envelope.data, "ListProducts")
        ]
        product = match_product(directories)
        if product is not None:
            if not product.product_id:
                raise UpstreamApiError(
                    f"product '{product.product_name}' has no ProductId",
                    action="ListProducts",
                )
            logger.info(
                "Found product: %s (ProductId: %s)", product.product_name, product.product_id
            )
            return parse_id(product.product_id, "ListProducts", "ProductId")

        candidates = _describe_products(directories)
        logger.warning("No lightweight server product found, all products:")
        for line in candidates:
            logger.warning("  %s", line)
        raise NotFoundError(
            "No lightweight application server product found; "
            "set ticket.product_id explicitly",
            candidates=candidates,
        )

    async def list_categories(self, product_id: int) -> list[Category]:
        envelope = await self.call_api(
            "ListCategories",
            {"ProductId": str(product_id), "Language": self._config.provider.language},
        )
        if envelope.data is None:
            raise UpstreamApiError("ListCategories returned no data", action="ListCategories")
        return [Category.from_dict(c) for c in object_list(envelope.data, "ListCategories")]

    async def find_category_id(self, product_id: int) -> int:
        """Pick the bandwidth/network category for a product."""
        logger.info("Querying ticket categories (ProductId: %s)...", product_id)
        categories = await self.list_categories(product_id)
        return self._choose_category(product_id, categories)

    def _choose_category(self, product_id: int, categories: list[Category]) -> int:
        if not categories:
            raise NotFoundError(
                f"No ticket categories for ProductId {product_id}; "
                "set ticket.category_id explicitly"
            )

        chosen = match_category(categories)
        if chosen is not None:
            logger.info(
                "Matched ticket category: %s (CategoryId: %s)",
                chosen.category_name,
                chosen.category_id,
            )
        else:
            chosen = categories[0]
            logger.warning(
                "No network/bandwidth category found, using the first one: %s (CategoryId: %s)",
                chosen.category_name,
                chosen.category_id,
            )
            for category in categories:
                logger.info(
                    "  %s (CategoryId: %s)", category.category_name, category.category_id
                )

        if not chosen.category_id:
            raise UpstreamApiError(
                f"category '{chosen.category_name}' has no CategoryId",
                action="ListCategories",
            )
        return parse_id(chosen.category_id, "ListCategories", "CategoryId")

    async def create_ticket(self, category_id: int, title: str, description: str) -> str:
        """Create the ticket. Returns the provider-assigned ticket id."""
        logger.info("Submitting ticket: %s", title)
        envelope = await self.call_api(
            "CreateTicket",
            {
                "CategoryId": str(category_id),
                "Severity": str(self._config.ticket.severity),
                "Title": title,
                "Description": description,
            },
        )
        if not envelope.data or not isinstance(envelope.data, (str, int)):
            raise UpstreamApiError(
                f"CreateTicket returned no ticket id: {envelope.data!r}",
                action="CreateTicket",
                request_id=envelope.request_id,
            )
        ticket_id = str(envelope.data)
        logger.info("Ticket submitted, ticket id: %s", ticket_id)
        return ticket_id

    async def resolve_category_id(self) -> int:
        ticket = self._config.ticket
        if ticket.category_id > 0:
            logger.info("Using configured CategoryId: %s", ticket.category_id)
            return ticket.category_id
        if ticket.product_id > 0:
            logger.info("Using configured ProductId: %s", ticket.product_id)
            product_id = ticket.product_id
        else:
            product_id = await self.find_product_id()
        return await self.find_category_id(product_id)

    async def submit_ticket(self) -> str:
        """Run the full pipeline: product, category, then CreateTicket."""
        category_id = await self.resolve_category_id()
        ticket = self._config.ticket
        return await self.create_ticket(category_id, ticket.title, ticket.description)

    async def list_catalog(self) -> CatalogReport:
        """Resolve the product and recommended category without filing anything."""
        product_id = self._config.ticket.product_id or await self.find_product_id()
        categories = await self.list_categories(product_id)
        category_id = self._choose_category(product_id, categories)
        return CatalogReport(
            product_id=product_id,
            category_id=category_id,
            categories=tuple(categories),
        )
