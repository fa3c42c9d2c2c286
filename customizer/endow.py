import logging
from dataclasses import dataclass
from typing import List, Optional

from .catalog import ProductCatalog, can_select
from .payloads import new_id
from .schemas import EndowCustomProduct, EndowItem, EndowSystem

logger = logging.getLogger(__name__)

UNAVAILABLE_PLACEHOLDER = "Product unavailable"


def add_endow_text(endow: EndowSystem, content: str, entry_id: Optional[str] = None) -> EndowSystem:
	if not content or not content.strip():
		logger.debug("Endow change rejected: blank content")
		return endow
	item = EndowItem(id=entry_id or new_id("endow"), content=content.strip(), priority=len(endow.items) + 1)
	return endow.model_copy(update={"items": [*endow.items, item]})


def remove_endow_text(endow: EndowSystem, entry_id: str) -> EndowSystem:
	if not any(item.id == entry_id for item in endow.items):
		return endow
	return endow.model_copy(update={"items": [item for item in endow.items if item.id != entry_id]})


def add_custom_product(
	endow: EndowSystem,
	product_custom_id: Optional[str],
	quantity: Optional[int] = None,
	entry_id: Optional[str] = None,
) -> EndowSystem:
	if not product_custom_id:
		logger.debug("Endow change rejected: missing product custom id")
		return endow
	entry = EndowCustomProduct(
		id=entry_id or new_id("custom"),
		product_custom_id=product_custom_id,
		quantity=max(1, quantity or 1),
		priority=len(endow.custom_products) + 1,
	)
	return endow.model_copy(update={"custom_products": [*endow.custom_products, entry]})


def remove_custom_product(endow: EndowSystem, entry_id: str) -> EndowSystem:
	if not any(entry.id == entry_id for entry in endow.custom_products):
		return endow
	return endow.model_copy(update={"custom_products": [e for e in endow.custom_products if e.id != entry_id]})


def active_endow_items(endow: EndowSystem) -> List[EndowItem]:
	return sorted((item for item in endow.items if item.is_active), key=lambda item: item.priority)


def active_custom_products(endow: EndowSystem) -> List[EndowCustomProduct]:
	return sorted((entry for entry in endow.custom_products if entry.is_active), key=lambda entry: entry.priority)


@dataclass(frozen=True)
class EndowProductView:
	entry_id: str
	product_custom_id: str
	quantity: int
	name: str
	resolved: bool
	can_select: bool
	message: str


async def describe_custom_products(endow: EndowSystem, catalog: ProductCatalog) -> List[EndowProductView]:
	"""Resolve bundled products against the catalog for display.

	A product the catalog cannot return is still listed, by id, with a
	placeholder name.
	"""
	views: List[EndowProductView] = []
	for entry in active_custom_products(endow):
		try:
			product = await catalog.get_product_custom_by_id(entry.product_custom_id)
		except Exception as exc:
			logger.warning("Catalog lookup failed for endow product %s: %s", entry.product_custom_id, exc)
			views.append(
				EndowProductView(
					entry_id=entry.id,
					product_custom_id=entry.product_custom_id,
					quantity=entry.quantity,
					name=UNAVAILABLE_PLACEHOLDER,
					resolved=False,
					can_select=False,
					message=UNAVAILABLE_PLACEHOLDER,
				)
			)
			continue
		availability = can_select(product, entry.quantity)
		views.append(
			EndowProductView(
				entry_id=entry.id,
				product_custom_id=entry.product_custom_id,
				quantity=entry.quantity,
				name=product.name,
				resolved=True,
				can_select=availability.can_select,
				message=availability.message,
			)
		)
	return views


async def check_endow_availability(endow: EndowSystem, catalog: ProductCatalog) -> List[str]:
	"""Messages for bundled products whose stock cannot cover their quantity."""
	return [f"{view.name} ({view.message})" for view in await describe_custom_products(endow, catalog) if view.resolved and not view.can_select]
