import logging
from typing import List, Optional

from .payloads import new_id
from .schemas import PurchaseOption, PurchaseOptions

logger = logging.getLogger(__name__)


def add_purchase_option(options: PurchaseOptions, content: str, price: float, option_id: Optional[str] = None) -> PurchaseOptions:
	if not content or not content.strip():
		logger.debug("Purchase option rejected: blank content")
		return options
	if price is None or price <= 0:
		logger.debug("Purchase option rejected: non-positive price %s", price)
		return options
	option = PurchaseOption(
		id=option_id or new_id("option"),
		content=content.strip(),
		price=price,
		priority=len(options.options) + 1,
	)
	return options.model_copy(update={"options": [*options.options, option]})


def remove_purchase_option(options: PurchaseOptions, option_id: str) -> PurchaseOptions:
	if not any(option.id == option_id for option in options.options):
		return options
	return options.model_copy(update={"options": [o for o in options.options if o.id != option_id]})


def active_purchase_options(options: PurchaseOptions) -> List[PurchaseOption]:
	return sorted((o for o in options.options if o.is_active), key=lambda o: o.priority)


def find_purchase_option(options: PurchaseOptions, option_id: str) -> Optional[PurchaseOption]:
	for option in options.options:
		if option.id == option_id:
			return option
	return None
