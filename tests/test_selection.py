import asyncio
from decimal import Decimal

import pytest

from customizer.catalog import CatalogLookupError
from customizer.schemas import (
	CatalogPage,
	CatalogProduct,
	CategoryRule,
	ConfigurationItem,
	ConfigurationSystem,
	InventoryRecord,
	PriceRule,
	PurchaseOption,
)
from customizer.selection import Destination, SelectionOrchestrator, SelectionState


def _product(product_id, price, stock=10, category_id="cat-lego", category_name="Lego"):
	return CatalogProduct(
		id=product_id,
		name=product_id.upper(),
		price=price,
		category_id=category_id,
		category_name=category_name,
		inventories=[InventoryRecord(current_stock=stock)],
	)


class FakeCatalog:
	def __init__(self, products, has_bg=False, fail_listing=False):
		self.products = {p.id: p for p in products}
		self.has_bg = has_bg
		self.fail_listing = fail_listing
		self.lookups = []
		self.capability_checks = 0

	async def get_product_customs_by_category(self, status, limit):
		if self.fail_listing:
			raise ConnectionError("catalog down")
		return CatalogPage(data=list(self.products.values())[:limit])

	async def get_product_custom_by_id(self, product_custom_id):
		self.lookups.append(product_custom_id)
		if product_custom_id not in self.products:
			raise CatalogLookupError(product_custom_id)
		return self.products[product_custom_id]

	async def has_background_customization(self, product_id):
		self.capability_checks += 1
		return self.has_bg


class GatedCatalog(FakeCatalog):
	def __init__(self, products):
		super().__init__(products)
		self.gate = asyncio.Event()

	async def get_product_custom_by_id(self, product_custom_id):
		await self.gate.wait()
		return await super().get_product_custom_by_id(product_custom_id)


class RecordingNotifier:
	def __init__(self):
		self.messages = []

	def notify(self, message, kind="info"):
		self.messages.append((kind, message))


@pytest.fixture
def config():
	return ConfigurationSystem(
		items=[
			ConfigurationItem(
				id="lego",
				name="Lego",
				base_quantity=2,
				price_rules=[PriceRule(id="r1", condition="greater_than", min_quantity=5, price_per_unit=1000)],
			)
		],
		variant_category_rules=[CategoryRule(id="vr1", category_id="cat-lego", category_name="Lego", is_required=True, max_selections=2)],
		min_custom_quantity=1,
		max_custom_quantity=10,
	)


def _session(config, **kwargs):
	return SelectionOrchestrator(product_id="p1", variant_id="v1", base_price=100000, config=config, **kwargs)


def test_category_cap_ignores_extra_toggle(config):
	session = _session(config)
	assert [e.category_id for e in session.validate()] == ["cat-lego"]

	assert session.toggle_category_product("cat-lego", "pc-1") is True
	assert session.validate() == []
	assert session.toggle_category_product("cat-lego", "pc-2") is True
	assert session.toggle_category_product("cat-lego", "pc-3") is False
	assert len(session.selected_category_products["cat-lego"]) == 2

	# deselecting frees a slot
	assert session.toggle_category_product("cat-lego", "pc-1") is True
	assert session.toggle_category_product("cat-lego", "pc-3") is True
	assert [s.product_custom_id for s in session.selected_category_products["cat-lego"]] == ["pc-2", "pc-3"]


def test_uncapped_category_accepts_any_number(config):
	session = _session(config)
	for index in range(5):
		assert session.toggle_category_product("cat-other", f"pc-{index}") is True
	assert len(session.selected_category_products["cat-other"]) == 5


def test_toggle_option(config):
	session = _session(config)
	wrap = PurchaseOption(id="wrap", content="Gift wrap", price=20000)
	session.toggle_option(wrap)
	assert [o.id for o in session.selected_options] == ["wrap"]
	assert session.total == Decimal("120000")
	session.toggle_option(wrap)
	assert session.selected_options == []


def test_custom_quantity_is_clamped(config):
	session = _session(config)
	assert session.quantity_for("lego") == 2
	assert session.set_custom_quantity("lego", 50) is True
	assert session.quantity_for("lego") == 10
	assert session.set_custom_quantity("lego", 0) is True
	assert session.quantity_for("lego") == 1
	assert session.set_custom_quantity("missing", 3) is False

	session.set_custom_quantity("lego", 6)
	assert session.breakdown().items_total == Decimal("6000")


def test_custom_quantity_fixed_when_not_allowed(config):
	session = _session(config.model_copy(update={"allow_custom_quantity": False}))
	assert session.set_custom_quantity("lego", 6) is False
	assert session.quantity_for("lego") == 2


def test_blocked_then_acknowledged(config):
	notifier = RecordingNotifier()
	session = _session(config, notifier=notifier)
	result = session.proceed()
	assert result.state == SelectionState.BLOCKED
	assert result.messages == ['Please select at least one product from category "Lego"']
	assert notifier.messages == [("warning", 'Please select at least one product from category "Lego"')]

	# selections are frozen until the shopper acknowledges
	assert session.toggle_category_product("cat-lego", "pc-1") is False
	assert session.acknowledge() is True
	assert session.state == SelectionState.BROWSING
	assert session.toggle_category_product("cat-lego", "pc-1") is True


@pytest.mark.asyncio
async def test_ready_hands_off_to_cart_with_total(config):
	catalog = FakeCatalog([_product("pc-1", "15000")])
	handoffs = []
	session = _session(config, catalog=catalog, on_handoff=handoffs.append)
	await session.load()
	session.toggle_option(PurchaseOption(id="wrap", content="Gift wrap", price=20000))
	session.toggle_category_product("cat-lego", "pc-1", quantity=2)
	await session.refresh_prices()

	result = session.proceed()
	assert result.state == SelectionState.SUBMITTED
	assert result.handoff.destination == Destination.CART
	assert handoffs == [result.handoff]
	payload = result.handoff.payload
	assert payload["totalPrice"] == 150000.0
	assert payload["selectedCategoryProducts"] == {"cat-lego": [{"productCustomId": "pc-1", "quantity": 2}]}
	assert payload["selectedOptions"] == [{"id": "wrap", "price": 20000}]
	assert session.closed is True
	assert session.proceed().state == SelectionState.SUBMITTED


@pytest.mark.asyncio
async def test_background_capability_routes_and_is_checked_once(config):
	catalog = FakeCatalog([_product("pc-1", "15000")], has_bg=True)
	session = _session(config, catalog=catalog)
	await session.load()
	await session.load()
	assert catalog.capability_checks == 1
	assert list(session.products_by_category) == ["cat-lego"]
	session.toggle_category_product("cat-lego", "pc-1")
	assert session.proceed().handoff.destination == Destination.BACKGROUND_CUSTOMIZE


@pytest.mark.asyncio
async def test_listing_prices_count_before_refresh(config):
	catalog = FakeCatalog([_product("pc-1", "15000")])
	session = _session(config, catalog=catalog)
	await session.load()
	session.toggle_category_product("cat-lego", "pc-1")
	assert session.total == Decimal("115000")
	await session.refresh_prices()
	assert catalog.lookups == []


@pytest.mark.asyncio
async def test_out_of_stock_product_cannot_be_selected(config):
	catalog = FakeCatalog([_product("pc-empty", "9000", stock=0), _product("pc-1", "15000")])
	session = _session(config, catalog=catalog)
	await session.load()
	assert session.toggle_category_product("cat-lego", "pc-empty") is False
	assert session.toggle_category_product("cat-lego", "pc-1") is True


@pytest.mark.asyncio
async def test_prices_fetched_once_and_failures_degrade(config):
	catalog = FakeCatalog([_product("pc-1", "15000")])
	session = _session(config, catalog=catalog)
	session.toggle_category_product("cat-lego", "pc-1")
	session.toggle_category_product("cat-lego", "pc-gone")
	await session.refresh_prices()
	await session.refresh_prices()

	assert sorted(catalog.lookups) == ["pc-1", "pc-gone"]
	assert session.price_of("pc-1") == Decimal("15000")
	assert "pc-gone" in session.unavailable
	assert session.breakdown().category_products_total == Decimal("15000")


@pytest.mark.asyncio
async def test_catalog_failure_leaves_screen_usable(config):
	session = _session(config, catalog=FakeCatalog([], fail_listing=True))
	await session.load()
	assert session.products_by_category == {}
	assert session.toggle_category_product("cat-lego", "pc-1") is True


@pytest.mark.asyncio
async def test_results_after_close_are_dropped(config):
	catalog = GatedCatalog([_product("pc-1", "15000")])
	session = _session(config, catalog=catalog)
	session.toggle_category_product("cat-lego", "pc-1")

	pending = asyncio.create_task(session.refresh_prices())
	await asyncio.sleep(0)
	session.close()
	catalog.gate.set()
	await pending

	assert session.prices == {}
	assert session.toggle_category_product("cat-lego", "pc-1") is False
