from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .config import SETTINGS
from .schemas import CategoryRule, ConfigurationSystem, PriceRule

PriceLookup = Callable[[str], Any]


@dataclass
class AppliedRule:
	id: str
	name: str
	rule_type: str
	amount: float
	details: Dict[str, Any]


@dataclass(frozen=True)
class SelectedOption:
	id: str
	price: float


@dataclass(frozen=True)
class CategorySelection:
	product_custom_id: str
	quantity: int = 1


@dataclass(frozen=True)
class SelectionError:
	category_id: str
	category_name: str
	message: str


@dataclass
class PriceBreakdown:
	base_price: Decimal
	items_total: Decimal
	options_total: Decimal
	category_products_total: Decimal
	total: Decimal
	applied_rules: List[AppliedRule] = field(default_factory=list)


def _to_decimal(value: Any) -> Decimal:
	if value is None:
		return Decimal("0")
	return Decimal(str(value))


def _round_currency(value: Decimal, quantum: Decimal = SETTINGS.currency_quantum) -> Decimal:
	return value.quantize(quantum, rounding=ROUND_HALF_UP)


def rule_matches(rule: PriceRule, quantity: int) -> bool:
	if rule.condition == "greater_than":
		return quantity > rule.min_quantity
	if rule.condition == "equal_to":
		return quantity == rule.min_quantity
	if rule.condition == "between":
		return rule.min_quantity <= quantity <= rule.max_quantity
	return False


def select_price_rule(quantity: int, rules: Iterable[PriceRule]) -> Optional[PriceRule]:
	"""Return the satisfied rule with the largest minQuantity.

	On a tie the rule listed first wins.
	"""
	best: Optional[PriceRule] = None
	for rule in rules:
		if not rule_matches(rule, quantity):
			continue
		if best is None or rule.min_quantity > best.min_quantity:
			best = rule
	return best


def resolve(quantity: int, rules: Iterable[PriceRule]) -> Decimal:
	"""Price of ``quantity`` units under the winning rule, 0 when none applies."""
	rule = select_price_rule(quantity, rules)
	if rule is None:
		return Decimal("0")
	return _to_decimal(rule.price_per_unit) * quantity


def required_category_message(category_name: str) -> str:
	return f'Please select at least one product from category "{category_name}"'


def validate_category_selections(
	rules: Iterable[CategoryRule],
	selections: Mapping[str, Sequence[Any]],
) -> List[SelectionError]:
	"""Collect every unmet required category.

	Only emptiness is checked; maxSelections is guarded when selecting, so an
	over-cap selection still satisfies a required rule here.
	"""
	errors: Dict[str, SelectionError] = {}
	for rule in rules:
		if not rule.is_required or rule.category_id in errors:
			continue
		if selections.get(rule.category_id):
			continue
		name = rule.category_name or rule.category_id
		errors[rule.category_id] = SelectionError(category_id=rule.category_id, category_name=name, message=required_category_message(name))
	return list(errors.values())


def categories_at_cap(rules: Iterable[CategoryRule], selections: Mapping[str, Sequence[Any]]) -> List[str]:
	capped: List[str] = []
	for rule in rules:
		if rule.max_selections is not None and len(selections.get(rule.category_id, ())) >= rule.max_selections:
			capped.append(rule.category_id)
	return capped


class PricingEngine:
	def __init__(self, quantum: Decimal = SETTINGS.currency_quantum):
		self.quantum = quantum

	def compute_item_adjustments(
		self, config: ConfigurationSystem, custom_quantities: Mapping[str, int]
	) -> Tuple[Decimal, List[AppliedRule]]:
		applied: List[AppliedRule] = []
		total = Decimal("0")
		for item in config.items:
			quantity = custom_quantities.get(item.id)
			if quantity is None:
				quantity = item.base_quantity
			rule = select_price_rule(quantity, item.price_rules)
			if rule is None:
				continue
			amount = _to_decimal(rule.price_per_unit) * quantity
			total += amount
			applied.append(
				AppliedRule(
					id=rule.id,
					name=item.name,
					rule_type=f"price_rule:{rule.condition}",
					amount=float(amount),
					details={"item_id": item.id, "quantity": quantity, "min_quantity": rule.min_quantity, "price_per_unit": rule.price_per_unit},
				)
			)
		return total, applied

	def compute_options_total(self, selected_options: Iterable[SelectedOption]) -> Decimal:
		return sum((_to_decimal(option.price) for option in selected_options), Decimal("0"))

	def compute_category_products_total(
		self,
		selected_category_products: Mapping[str, Sequence[CategorySelection]],
		price_lookup: PriceLookup,
	) -> Decimal:
		total = Decimal("0")
		for selections in selected_category_products.values():
			for selection in selections:
				total += _to_decimal(price_lookup(selection.product_custom_id)) * selection.quantity
		return total

	def compute_breakdown(
		self,
		base_price: Any,
		config: ConfigurationSystem,
		custom_quantities: Mapping[str, int],
		selected_options: Iterable[SelectedOption],
		selected_category_products: Mapping[str, Sequence[CategorySelection]],
		price_lookup: PriceLookup,
	) -> PriceBreakdown:
		base = _to_decimal(base_price)
		items_total, applied = self.compute_item_adjustments(config, custom_quantities)
		options_total = self.compute_options_total(selected_options)
		category_total = self.compute_category_products_total(selected_category_products, price_lookup)
		return PriceBreakdown(
			base_price=_round_currency(base, self.quantum),
			items_total=_round_currency(items_total, self.quantum),
			options_total=_round_currency(options_total, self.quantum),
			category_products_total=_round_currency(category_total, self.quantum),
			total=_round_currency(base + items_total + options_total + category_total, self.quantum),
			applied_rules=applied,
		)

	def compute_total(
		self,
		base_price: Any,
		config: ConfigurationSystem,
		custom_quantities: Mapping[str, int],
		selected_options: Iterable[SelectedOption],
		selected_category_products: Mapping[str, Sequence[CategorySelection]],
		price_lookup: PriceLookup,
	) -> Decimal:
		return self.compute_breakdown(
			base_price, config, custom_quantities, selected_options, selected_category_products, price_lookup
		).total


def compute_total(
	base_price: Any,
	config: ConfigurationSystem,
	custom_quantities: Mapping[str, int],
	selected_options: Iterable[SelectedOption],
	selected_category_products: Mapping[str, Sequence[CategorySelection]],
	price_lookup: PriceLookup,
) -> Decimal:
	return PricingEngine().compute_total(
		base_price, config, custom_quantities, selected_options, selected_category_products, price_lookup
	)
