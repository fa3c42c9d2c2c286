from dataclasses import asdict
from typing import Any, Callable, Dict

from fastapi import Depends, FastAPI, HTTPException
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from . import authoring, endow as endow_ops, purchase_options as option_ops
from .cache import ResourceCache
from .catalog import SqlProductCatalog
from .config import SETTINGS, configure_logging
from .db import get_db, init_db
from .models import ProductVariant
from .notifications import LoggingNotifier
from .payloads import MalformedConfiguration, Parsed, or_empty, parse_payload
from .schemas import (
	CategoryRuleIn,
	CustomQuantityIn,
	EndowProductIn,
	EndowTextIn,
	ItemIn,
	PayloadModel,
	PayloadOut,
	PriceBreakdownOut,
	PriceRuleIn,
	PurchaseOptionIn,
	QuoteRequest,
	QuoteResponse,
)
from .selection import SelectionOrchestrator

configure_logging(SETTINGS)

app = FastAPI(title="Customizer API")

# Create tables at startup (simple dev approach; in prod use migrations)
init_db()

cache = ResourceCache()
notifier = LoggingNotifier()

COLUMNS = {"configuration": "config", "endow": "endow", "options": "option"}
MUTATIONS = {
	"configuration": "variant.configuration.update",
	"endow": "variant.endow.update",
	"options": "variant.options.update",
}


def _get_variant(db: Session, variant_id: str) -> ProductVariant:
	variant = db.get(ProductVariant, variant_id)
	if not variant:
		raise HTTPException(status_code=404, detail="Variant not found")
	return variant


def _load(variant: ProductVariant, kind: str) -> Parsed:
	return cache.get_or_load(kind, variant.id, lambda: parse_payload(kind, getattr(variant, COLUMNS[kind])))


def _payload_out(variant_id: str, parsed: Parsed) -> PayloadOut:
	if isinstance(parsed, MalformedConfiguration):
		return PayloadOut(variant_id=variant_id, malformed=True, error=parsed.error, payload=or_empty(parsed).to_payload())
	return PayloadOut(variant_id=variant_id, malformed=False, payload=parsed.to_payload())


def _mutate(
	db: Session,
	variant_id: str,
	kind: str,
	operation: Callable[..., PayloadModel],
	*args: Any,
	allow_noop: bool = False,
) -> PayloadOut:
	variant = _get_variant(db, variant_id)
	current = or_empty(_load(variant, kind))
	updated = operation(current, *args)
	if updated is current:
		if allow_noop:
			return _payload_out(variant.id, current)
		raise HTTPException(status_code=422, detail="Change rejected")
	setattr(variant, COLUMNS[kind], updated.to_payload())
	db.commit()
	cache.invalidate_for(MUTATIONS[kind], variant.id)
	notifier.notify(f"Variant {variant.id} {kind} saved", "success")
	return _payload_out(variant.id, updated)


def _require_item(db: Session, variant_id: str, item_id: str) -> None:
	config = or_empty(_load(_get_variant(db, variant_id), "configuration"))
	if config.find_item(item_id) is None:
		raise HTTPException(status_code=404, detail="Configuration item not found")


@app.get("/variants/{variant_id}/configuration", response_model=PayloadOut)
def get_configuration(variant_id: str, db: Session = Depends(get_db)):
	return _payload_out(variant_id, _load(_get_variant(db, variant_id), "configuration"))


@app.get("/variants/{variant_id}/endow", response_model=PayloadOut)
def get_endow(variant_id: str, db: Session = Depends(get_db)):
	return _payload_out(variant_id, _load(_get_variant(db, variant_id), "endow"))


@app.get("/variants/{variant_id}/options", response_model=PayloadOut)
def get_options(variant_id: str, db: Session = Depends(get_db)):
	return _payload_out(variant_id, _load(_get_variant(db, variant_id), "options"))


@app.post("/variants/{variant_id}/configuration/items", response_model=PayloadOut)
def add_item(variant_id: str, req: ItemIn, db: Session = Depends(get_db)):
	return _mutate(db, variant_id, "configuration", authoring.add_item, req.name, req.base_quantity, req.is_required)


@app.put("/variants/{variant_id}/configuration/items/{item_id}", response_model=PayloadOut)
def update_item(variant_id: str, item_id: str, req: ItemIn, db: Session = Depends(get_db)):
	_require_item(db, variant_id, item_id)
	return _mutate(db, variant_id, "configuration", authoring.update_item, item_id, req.name, req.base_quantity, req.is_required)


@app.delete("/variants/{variant_id}/configuration/items/{item_id}", response_model=PayloadOut)
def remove_item(variant_id: str, item_id: str, db: Session = Depends(get_db)):
	return _mutate(db, variant_id, "configuration", authoring.remove_item, item_id, allow_noop=True)


@app.post("/variants/{variant_id}/configuration/items/{item_id}/price-rules", response_model=PayloadOut)
def add_price_rule(variant_id: str, item_id: str, req: PriceRuleIn, db: Session = Depends(get_db)):
	_require_item(db, variant_id, item_id)
	return _mutate(
		db,
		variant_id,
		"configuration",
		authoring.add_price_rule,
		item_id,
		req.condition,
		req.min_quantity,
		req.price_per_unit,
		req.description,
		req.max_quantity,
	)


@app.delete("/variants/{variant_id}/configuration/items/{item_id}/price-rules/{rule_id}", response_model=PayloadOut)
def remove_price_rule(variant_id: str, item_id: str, rule_id: str, db: Session = Depends(get_db)):
	return _mutate(db, variant_id, "configuration", authoring.remove_price_rule, item_id, rule_id, allow_noop=True)


@app.post("/variants/{variant_id}/configuration/category-rules", response_model=PayloadOut)
def add_category_rule(variant_id: str, req: CategoryRuleIn, db: Session = Depends(get_db)):
	return _mutate(
		db,
		variant_id,
		"configuration",
		authoring.add_variant_category_rule,
		req.category_id,
		req.is_required,
		req.max_selections,
		req.category_name,
	)


@app.delete("/variants/{variant_id}/configuration/category-rules/{rule_id}", response_model=PayloadOut)
def remove_category_rule(variant_id: str, rule_id: str, db: Session = Depends(get_db)):
	return _mutate(db, variant_id, "configuration", authoring.remove_variant_category_rule, rule_id, allow_noop=True)


def _apply_custom_quantity(config, req: CustomQuantityIn):
	updated = config
	if req.allow_custom_quantity is not None:
		updated = authoring.set_allow_custom_quantity(updated, req.allow_custom_quantity)
	if req.min_custom_quantity is not None:
		updated = authoring.set_min_custom_quantity(updated, req.min_custom_quantity)
	if req.max_custom_quantity is not None:
		updated = authoring.set_max_custom_quantity(updated, req.max_custom_quantity)
	return updated


@app.put("/variants/{variant_id}/configuration/custom-quantity", response_model=PayloadOut)
def set_custom_quantity(variant_id: str, req: CustomQuantityIn, db: Session = Depends(get_db)):
	return _mutate(db, variant_id, "configuration", _apply_custom_quantity, req, allow_noop=True)


@app.post("/variants/{variant_id}/endow/items", response_model=PayloadOut)
def add_endow_text(variant_id: str, req: EndowTextIn, db: Session = Depends(get_db)):
	return _mutate(db, variant_id, "endow", endow_ops.add_endow_text, req.content)


@app.delete("/variants/{variant_id}/endow/items/{entry_id}", response_model=PayloadOut)
def remove_endow_text(variant_id: str, entry_id: str, db: Session = Depends(get_db)):
	return _mutate(db, variant_id, "endow", endow_ops.remove_endow_text, entry_id, allow_noop=True)


@app.post("/variants/{variant_id}/endow/custom-products", response_model=PayloadOut)
def add_endow_product(variant_id: str, req: EndowProductIn, db: Session = Depends(get_db)):
	return _mutate(db, variant_id, "endow", endow_ops.add_custom_product, req.product_custom_id, req.quantity)


@app.delete("/variants/{variant_id}/endow/custom-products/{entry_id}", response_model=PayloadOut)
def remove_endow_product(variant_id: str, entry_id: str, db: Session = Depends(get_db)):
	return _mutate(db, variant_id, "endow", endow_ops.remove_custom_product, entry_id, allow_noop=True)


def _load_payloads(db: Session, variant_id: str, *kinds: str):
	variant = _get_variant(db, variant_id)
	return (variant, *(or_empty(_load(variant, kind)) for kind in kinds))


@app.get("/variants/{variant_id}/endow/availability")
async def endow_availability(variant_id: str, db: Session = Depends(get_db)) -> Dict[str, Any]:
	variant, endow = await run_in_threadpool(_load_payloads, db, variant_id, "endow")
	views = await endow_ops.describe_custom_products(endow, SqlProductCatalog())
	return {
		"variant_id": variant.id,
		"unavailable": [f"{v.name} ({v.message})" for v in views if v.resolved and not v.can_select],
		"products": [asdict(v) for v in views],
	}


@app.post("/variants/{variant_id}/options", response_model=PayloadOut)
def add_purchase_option(variant_id: str, req: PurchaseOptionIn, db: Session = Depends(get_db)):
	return _mutate(db, variant_id, "options", option_ops.add_purchase_option, req.content, req.price)


@app.delete("/variants/{variant_id}/options/{option_id}", response_model=PayloadOut)
def remove_purchase_option(variant_id: str, option_id: str, db: Session = Depends(get_db)):
	return _mutate(db, variant_id, "options", option_ops.remove_purchase_option, option_id, allow_noop=True)


@app.post("/variants/{variant_id}/quote", response_model=QuoteResponse)
async def quote(variant_id: str, req: QuoteRequest, db: Session = Depends(get_db)):
	variant, config, options = await run_in_threadpool(_load_payloads, db, variant_id, "configuration", "options")

	session = SelectionOrchestrator(
		product_id=variant.product_id,
		variant_id=variant.id,
		base_price=variant.price,
		config=config,
		catalog=SqlProductCatalog(),
		notifier=notifier,
	)
	session.has_background = cache.get("background_capability", variant.product_id)
	await session.load()
	cache.set("background_capability", variant.product_id, session.has_background)

	# The request lists what should end up selected; repeated entries are not toggles.
	for option_id in req.selected_option_ids:
		option = option_ops.find_purchase_option(options, option_id)
		if option is not None and option.is_active and not session.is_option_selected(option.id):
			session.toggle_option(option)
	for item_id, quantity in req.custom_quantities.items():
		session.set_custom_quantity(item_id, quantity)
	for category_id, selections in req.selected_category_products.items():
		for selection in selections:
			if not session.is_selected(category_id, selection.product_custom_id):
				session.toggle_category_product(category_id, selection.product_custom_id, selection.quantity)
	await session.refresh_prices()

	breakdown = session.breakdown()
	result = session.proceed()
	return QuoteResponse(
		variant_id=variant.id,
		state=result.state.value,
		errors=result.messages,
		destination=result.handoff.destination.value if result.handoff else None,
		breakdown=PriceBreakdownOut(
			base_price=float(breakdown.base_price),
			items_total=float(breakdown.items_total),
			options_total=float(breakdown.options_total),
			category_products_total=float(breakdown.category_products_total),
			total=float(breakdown.total),
			applied_rules=[r.__dict__ for r in breakdown.applied_rules],
		),
	)
