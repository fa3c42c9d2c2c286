import logging
from typing import Callable, List, Optional

from .payloads import new_id
from .schemas import CategoryRule, ConfigurationItem, ConfigurationSystem, PriceCondition, PriceRule

logger = logging.getLogger(__name__)


def _rejected(config: ConfigurationSystem, reason: str, *args) -> ConfigurationSystem:
	logger.debug("Configuration change rejected: " + reason, *args)
	return config


def _format_amount(value: float) -> str:
	if float(value).is_integer():
		return f"{int(value):,}"
	return f"{value:,.2f}"


def describe_price_rule(condition: str, min_quantity: int, price_per_unit: float, max_quantity: Optional[int] = None) -> str:
	price = _format_amount(price_per_unit)
	if condition == "equal_to":
		return f"Price {price}/unit when = {min_quantity}"
	if condition == "between":
		return f"Price {price}/unit when between {min_quantity} and {max_quantity}"
	return f"Price {price}/unit when > {min_quantity}"


def _replace_item(config: ConfigurationSystem, item_id: str, change: Callable[[ConfigurationItem], ConfigurationItem]) -> ConfigurationSystem:
	if config.find_item(item_id) is None:
		return _rejected(config, "item %s not found", item_id)
	items = [change(item) if item.id == item_id else item for item in config.items]
	return config.model_copy(update={"items": items})


def add_item(
	config: ConfigurationSystem,
	name: str,
	base_quantity: int = 1,
	is_required: bool = False,
	item_id: Optional[str] = None,
) -> ConfigurationSystem:
	if not name or not name.strip():
		return _rejected(config, "blank item name")
	if base_quantity < 0:
		return _rejected(config, "negative base quantity %s", base_quantity)
	item = ConfigurationItem(
		id=item_id or new_id("item"),
		name=name.strip(),
		base_quantity=base_quantity,
		is_required=is_required,
		priority=len(config.items) + 1,
	)
	return config.model_copy(update={"items": [*config.items, item]})


def update_item(config: ConfigurationSystem, item_id: str, name: str, base_quantity: int, is_required: bool) -> ConfigurationSystem:
	if not name or not name.strip():
		return _rejected(config, "blank item name")
	if base_quantity < 0:
		return _rejected(config, "negative base quantity %s", base_quantity)
	return _replace_item(
		config,
		item_id,
		lambda item: item.model_copy(update={"name": name.strip(), "base_quantity": base_quantity, "is_required": is_required}),
	)


def remove_item(config: ConfigurationSystem, item_id: str) -> ConfigurationSystem:
	if config.find_item(item_id) is None:
		return config
	return config.model_copy(update={"items": [item for item in config.items if item.id != item_id]})


def add_price_rule(
	config: ConfigurationSystem,
	item_id: str,
	condition: PriceCondition,
	min_quantity: int,
	price_per_unit: float,
	description: Optional[str] = None,
	max_quantity: Optional[int] = None,
	rule_id: Optional[str] = None,
) -> ConfigurationSystem:
	if price_per_unit is None or price_per_unit <= 0:
		return _rejected(config, "non-positive price per unit %s", price_per_unit)
	if min_quantity < 0:
		return _rejected(config, "negative minimum quantity %s", min_quantity)
	if condition == "between":
		if max_quantity is None or max_quantity < min_quantity:
			return _rejected(config, "inverted bounds %s..%s", min_quantity, max_quantity)
	else:
		max_quantity = None
	rule = PriceRule(
		id=rule_id or new_id("rule"),
		condition=condition,
		min_quantity=min_quantity,
		max_quantity=max_quantity,
		price_per_unit=price_per_unit,
		description=description or describe_price_rule(condition, min_quantity, price_per_unit, max_quantity),
	)
	return _replace_item(config, item_id, lambda item: item.model_copy(update={"price_rules": [*item.price_rules, rule]}))


def remove_price_rule(config: ConfigurationSystem, item_id: str, rule_id: str) -> ConfigurationSystem:
	item = config.find_item(item_id)
	if item is None or not any(rule.id == rule_id for rule in item.price_rules):
		return config
	return _replace_item(
		config,
		item_id,
		lambda it: it.model_copy(update={"price_rules": [rule for rule in it.price_rules if rule.id != rule_id]}),
	)


def _new_category_rule(
	category_id: Optional[str],
	category_name: str,
	is_required: bool,
	max_selections: Optional[int],
	rule_id: Optional[str],
) -> Optional[CategoryRule]:
	if not category_id:
		return None
	# A cap of 0 or blank means "unlimited", a negative cap is invalid.
	if max_selections is not None and max_selections < 0:
		return None
	return CategoryRule(
		id=rule_id or new_id("category_rule"),
		category_id=category_id,
		category_name=category_name or category_id,
		is_required=is_required,
		max_selections=max_selections or None,
	)


def add_variant_category_rule(
	config: ConfigurationSystem,
	category_id: Optional[str],
	is_required: bool = True,
	max_selections: Optional[int] = None,
	category_name: str = "",
	rule_id: Optional[str] = None,
) -> ConfigurationSystem:
	if config.category_rule_for(category_id) is not None:
		return _rejected(config, "category %s already has a rule", category_id)
	rule = _new_category_rule(category_id, category_name, is_required, max_selections, rule_id)
	if rule is None:
		return _rejected(config, "invalid category rule for %r", category_id)
	return config.model_copy(update={"variant_category_rules": [*config.variant_category_rules, rule]})


def remove_variant_category_rule(config: ConfigurationSystem, rule_id: str) -> ConfigurationSystem:
	if not any(rule.id == rule_id for rule in config.variant_category_rules):
		return config
	return config.model_copy(update={"variant_category_rules": [r for r in config.variant_category_rules if r.id != rule_id]})


def add_item_category_rule(
	config: ConfigurationSystem,
	item_id: str,
	category_id: Optional[str],
	is_required: bool = True,
	max_selections: Optional[int] = None,
	category_name: str = "",
	rule_id: Optional[str] = None,
) -> ConfigurationSystem:
	item = config.find_item(item_id)
	if item is not None and any(r.category_id == category_id for r in item.category_rules):
		return _rejected(config, "category %s already has a rule on item %s", category_id, item_id)
	rule = _new_category_rule(category_id, category_name, is_required, max_selections, rule_id)
	if rule is None:
		return _rejected(config, "invalid category rule for %r", category_id)
	return _replace_item(config, item_id, lambda item: item.model_copy(update={"category_rules": [*item.category_rules, rule]}))


def remove_item_category_rule(config: ConfigurationSystem, item_id: str, rule_id: str) -> ConfigurationSystem:
	item = config.find_item(item_id)
	if item is None or not any(rule.id == rule_id for rule in item.category_rules):
		return config
	return _replace_item(
		config,
		item_id,
		lambda it: it.model_copy(update={"category_rules": [r for r in it.category_rules if r.id != rule_id]}),
	)


def set_allow_custom_quantity(config: ConfigurationSystem, allow: bool) -> ConfigurationSystem:
	if config.allow_custom_quantity == allow:
		return config
	return config.model_copy(update={"allow_custom_quantity": allow})


def set_min_custom_quantity(config: ConfigurationSystem, value: int) -> ConfigurationSystem:
	next_min = max(1, value)
	next_max = max(config.max_custom_quantity, next_min)
	return config.model_copy(update={"min_custom_quantity": next_min, "max_custom_quantity": next_max})


def set_max_custom_quantity(config: ConfigurationSystem, value: int) -> ConfigurationSystem:
	next_max = max(1, value, config.min_custom_quantity)
	return config.model_copy(update={"max_custom_quantity": next_max})


class ConfigurationDraft:
	"""An administrator's working copy with edit mode and undo/redo.

	Snapshots are immutable, so history is just the list of previous values.
	"""

	def __init__(self, config: Optional[ConfigurationSystem] = None):
		self.config = config if config is not None else ConfigurationSystem()
		self.editing_item_id: Optional[str] = None
		self._undo: List[ConfigurationSystem] = []
		self._redo: List[ConfigurationSystem] = []

	@property
	def is_editing(self) -> bool:
		return self.editing_item_id is not None

	@property
	def can_undo(self) -> bool:
		return bool(self._undo)

	@property
	def can_redo(self) -> bool:
		return bool(self._redo)

	def apply(self, operation: Callable[..., ConfigurationSystem], *args, **kwargs) -> bool:
		updated = operation(self.config, *args, **kwargs)
		if updated is self.config:
			return False
		self._undo.append(self.config)
		self._redo.clear()
		self.config = updated
		return True

	def add_item(self, name: str, base_quantity: int = 1, is_required: bool = False) -> bool:
		changed = self.apply(add_item, name, base_quantity, is_required)
		if changed:
			# A freshly added item opens for editing so rules can be attached to it.
			self.editing_item_id = self.config.items[-1].id
		return changed

	def begin_edit(self, item_id: str) -> bool:
		if self.config.find_item(item_id) is None:
			return False
		self.editing_item_id = item_id
		return True

	def cancel_edit(self) -> None:
		self.editing_item_id = None

	def update_item(self, name: str, base_quantity: int, is_required: bool) -> bool:
		if self.editing_item_id is None:
			return False
		changed = self.apply(update_item, self.editing_item_id, name, base_quantity, is_required)
		if changed:
			self.editing_item_id = None
		return changed

	def remove_item(self, item_id: str) -> bool:
		changed = self.apply(remove_item, item_id)
		if self.editing_item_id == item_id:
			self.editing_item_id = None
		return changed

	def undo(self) -> bool:
		if not self._undo:
			return False
		self._redo.append(self.config)
		self.config = self._undo.pop()
		self._drop_stale_edit()
		return True

	def redo(self) -> bool:
		if not self._redo:
			return False
		self._undo.append(self.config)
		self.config = self._redo.pop()
		self._drop_stale_edit()
		return True

	def _drop_stale_edit(self) -> None:
		if self.editing_item_id is not None and self.config.find_item(self.editing_item_id) is None:
			self.editing_item_id = None
