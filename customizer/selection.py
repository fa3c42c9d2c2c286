import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from .catalog import ProductCatalog, can_select
from .config import SETTINGS
from .notifications import LoggingNotifier, Notifier
from .rules_engine import (
	CategorySelection,
	PriceBreakdown,
	PricingEngine,
	SelectedOption,
	SelectionError,
	validate_category_selections,
)
from .schemas import CatalogProduct, ConfigurationSystem, PurchaseOption

logger = logging.getLogger(__name__)


class SelectionState(str, Enum):
	BROWSING = "browsing"
	VALIDATING = "validating"
	BLOCKED = "blocked"
	READY = "ready"
	SUBMITTED = "submitted"


class Destination(str, Enum):
	BACKGROUND_CUSTOMIZE = "background_customize"
	CART = "cart"


@dataclass
class Handoff:
	destination: Destination
	payload: Dict[str, Any]


@dataclass
class ContinueResult:
	state: SelectionState
	errors: List[SelectionError] = field(default_factory=list)
	handoff: Optional[Handoff] = None

	@property
	def messages(self) -> List[str]:
		return [error.message for error in self.errors]


def _catalog_price(product: CatalogProduct) -> Decimal:
	try:
		return Decimal(str(product.price))
	except InvalidOperation:
		logger.warning("Product custom %s has an unparsable price %r", product.id, product.price)
		return Decimal("0")


class SelectionOrchestrator:
	def __init__(
		self,
		product_id: str,
		variant_id: str,
		base_price: Any,
		config: ConfigurationSystem,
		catalog: Optional[ProductCatalog] = None,
		notifier: Optional[Notifier] = None,
		on_handoff: Optional[Callable[[Handoff], None]] = None,
		engine: Optional[PricingEngine] = None,
		catalog_limit: int = SETTINGS.catalog_limit,
	):
		self.product_id = product_id
		self.variant_id = variant_id
		self.base_price = base_price
		self.config = config
		self.catalog = catalog
		self.notifier = notifier or LoggingNotifier()
		self.on_handoff = on_handoff
		self.engine = engine or PricingEngine()
		self.catalog_limit = catalog_limit

		self.state = SelectionState.BROWSING
		self.errors: List[SelectionError] = []
		self.selected_options: List[SelectedOption] = []
		self.custom_quantities: Dict[str, int] = {}
		self.selected_category_products: Dict[str, List[CategorySelection]] = {}

		self.products_by_category: Dict[str, List[CatalogProduct]] = {}
		self.category_names: Dict[str, str] = {}
		self.product_details: Dict[str, CatalogProduct] = {}
		self.prices: Dict[str, Decimal] = {}
		self.unavailable: Set[str] = set()
		self.has_background: Optional[bool] = None

		self._catalog_loaded = False
		self._in_flight: Set[str] = set()
		self._closed = False

	@property
	def closed(self) -> bool:
		return self._closed

	def close(self) -> None:
		self._closed = True

	async def load(self) -> None:
		"""Fetch the category-grouped catalog and the background capability, once each."""
		if self.catalog is None:
			return
		await asyncio.gather(self._load_catalog(), self._load_background_capability())

	async def _load_catalog(self) -> None:
		if self._catalog_loaded:
			return
		self._catalog_loaded = True
		try:
			page = await self.catalog.get_product_customs_by_category("active", self.catalog_limit)
		except Exception as exc:
			logger.warning("Catalog fetch failed for product %s: %s", self.product_id, exc)
			return
		if self._closed:
			logger.debug("Dropping catalog result after close")
			return
		grouped: Dict[str, List[CatalogProduct]] = {}
		for product in page.data:
			if not product.category_id:
				continue
			grouped.setdefault(product.category_id, []).append(product)
			self.category_names.setdefault(product.category_id, product.category_name or product.category_id)
			self.product_details.setdefault(product.id, product)
			self.prices.setdefault(product.id, _catalog_price(product))
		self.products_by_category = grouped

	async def _load_background_capability(self) -> None:
		if self.has_background is not None:
			return
		try:
			capability = await self.catalog.has_background_customization(self.product_id)
		except Exception as exc:
			logger.warning("Background capability check failed for product %s: %s", self.product_id, exc)
			capability = False
		if self._closed:
			logger.debug("Dropping background capability result after close")
			return
		self.has_background = bool(capability)

	async def refresh_prices(self) -> None:
		"""Resolve prices for selected products the catalog listing did not price."""
		if self.catalog is None:
			return
		wanted = {
			selection.product_custom_id
			for selections in self.selected_category_products.values()
			for selection in selections
		}
		missing = [pid for pid in sorted(wanted) if pid not in self.prices and pid not in self._in_flight]
		if missing:
			await asyncio.gather(*(self._fetch_price(pid) for pid in missing))

	async def _fetch_price(self, product_custom_id: str) -> None:
		self._in_flight.add(product_custom_id)
		try:
			product = await self.catalog.get_product_custom_by_id(product_custom_id)
		except Exception as exc:
			logger.warning("Price lookup failed for product custom %s: %s", product_custom_id, exc)
			product = None
		finally:
			self._in_flight.discard(product_custom_id)
		self._merge_product(product_custom_id, product)

	def _merge_product(self, product_custom_id: str, product: Optional[CatalogProduct]) -> None:
		if self._closed:
			logger.debug("Dropping price result for %s after close", product_custom_id)
			return
		if product is None:
			self.unavailable.add(product_custom_id)
			self.prices[product_custom_id] = Decimal("0")
			return
		self.unavailable.discard(product_custom_id)
		self.product_details[product_custom_id] = product
		self.prices[product_custom_id] = _catalog_price(product)

	def _accepting(self) -> bool:
		return self.state == SelectionState.BROWSING and not self._closed

	def max_selections(self, category_id: str) -> Optional[int]:
		rule = self.config.category_rule_for(category_id)
		return rule.max_selections if rule is not None else None

	def is_selected(self, category_id: str, product_custom_id: str) -> bool:
		return any(s.product_custom_id == product_custom_id for s in self.selected_category_products.get(category_id, []))

	def toggle_category_product(self, category_id: str, product_custom_id: str, quantity: int = 1) -> bool:
		"""Select or deselect a product; returns whether anything changed."""
		if not self._accepting():
			return False
		current = self.selected_category_products.get(category_id, [])
		if self.is_selected(category_id, product_custom_id):
			self.selected_category_products[category_id] = [s for s in current if s.product_custom_id != product_custom_id]
			return True
		cap = self.max_selections(category_id)
		if cap is not None and len(current) >= cap:
			return False
		product = self.product_details.get(product_custom_id)
		if product is not None and not can_select(product, quantity).can_select:
			return False
		self.selected_category_products[category_id] = [*current, CategorySelection(product_custom_id, max(1, quantity))]
		return True

	def is_option_selected(self, option_id: str) -> bool:
		return any(selected.id == option_id for selected in self.selected_options)

	def toggle_option(self, option: PurchaseOption) -> bool:
		if not self._accepting():
			return False
		if self.is_option_selected(option.id):
			self.selected_options = [selected for selected in self.selected_options if selected.id != option.id]
		else:
			self.selected_options = [*self.selected_options, SelectedOption(id=option.id, price=option.price)]
		return True

	def quantity_for(self, item_id: str) -> Optional[int]:
		item = self.config.find_item(item_id)
		if item is None:
			return None
		return self.custom_quantities.get(item_id, item.base_quantity)

	def set_custom_quantity(self, item_id: str, quantity: int) -> bool:
		if not self._accepting() or not self.config.allow_custom_quantity:
			return False
		if self.config.find_item(item_id) is None:
			return False
		low, high = self.config.min_custom_quantity, self.config.max_custom_quantity
		self.custom_quantities[item_id] = min(high, max(low, quantity))
		return True

	def price_of(self, product_custom_id: str) -> Decimal:
		return self.prices.get(product_custom_id, Decimal("0"))

	def breakdown(self) -> PriceBreakdown:
		return self.engine.compute_breakdown(
			self.base_price,
			self.config,
			self.custom_quantities,
			self.selected_options,
			self.selected_category_products,
			self.price_of,
		)

	@property
	def total(self) -> Decimal:
		return self.breakdown().total

	def validate(self) -> List[SelectionError]:
		return validate_category_selections(self.config.variant_category_rules, self.selected_category_products)

	def proceed(self) -> ContinueResult:
		"""Handle the shopper's "continue" action."""
		if not self._accepting():
			return ContinueResult(state=self.state, errors=list(self.errors))
		self.state = SelectionState.VALIDATING
		self.errors = self.validate()
		if self.errors:
			self.state = SelectionState.BLOCKED
			logger.info("Selection for variant %s blocked by %d unmet categories", self.variant_id, len(self.errors))
			for error in self.errors:
				self.notifier.notify(error.message, "warning")
			return ContinueResult(state=self.state, errors=list(self.errors))

		self.state = SelectionState.READY
		handoff = Handoff(destination=self.destination(), payload=self.handoff_payload())
		if self.on_handoff is not None:
			self.on_handoff(handoff)
		self.state = SelectionState.SUBMITTED
		logger.info("Selection for variant %s handed off to %s", self.variant_id, handoff.destination.value)
		self.close()
		return ContinueResult(state=self.state, handoff=handoff)

	def acknowledge(self) -> bool:
		if self.state != SelectionState.BLOCKED:
			return False
		self.state = SelectionState.BROWSING
		self.errors = []
		return True

	def destination(self) -> Destination:
		if self.has_background:
			return Destination.BACKGROUND_CUSTOMIZE
		return Destination.CART

	def handoff_payload(self) -> Dict[str, Any]:
		return {
			"productId": self.product_id,
			"variantId": self.variant_id,
			"selectedOptions": [{"id": o.id, "price": o.price} for o in self.selected_options],
			"customQuantities": dict(self.custom_quantities),
			"selectedCategoryProducts": {
				category_id: [{"productCustomId": s.product_custom_id, "quantity": s.quantity} for s in selections]
				for category_id, selections in self.selected_category_products.items()
			},
			"totalPrice": float(self.total),
		}
