from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .config import SETTINGS

PriceCondition = Literal["greater_than", "equal_to", "between"]


class PayloadModel(BaseModel):
	"""Base for everything stored in a variant's JSON columns.

	Fields are snake_case in Python and camelCase on the wire. Instances are
	frozen: authoring produces new values with ``model_copy`` instead of
	mutating.
	"""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, extra="ignore")

	def to_payload(self) -> Any:
		return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PriceRule(PayloadModel):
	id: str
	condition: PriceCondition = "greater_than"
	min_quantity: int = 0
	max_quantity: Optional[int] = None
	price_per_unit: float = Field(ge=0)
	description: str = ""

	@model_validator(mode="after")
	def check_bounds(self) -> "PriceRule":
		if self.condition == "between":
			if self.max_quantity is None:
				raise ValueError("between rule requires maxQuantity")
			if self.max_quantity < self.min_quantity:
				raise ValueError("maxQuantity must be >= minQuantity")
		return self


class CategoryRule(PayloadModel):
	id: str
	category_id: str
	category_name: str = ""
	is_required: bool = False
	max_selections: Optional[int] = Field(default=None, ge=1)


class ConfigurationItem(PayloadModel):
	id: str
	name: str
	base_quantity: int = Field(default=0, ge=0)
	is_required: bool = False
	is_active: bool = True
	priority: int = 0
	price_rules: List[PriceRule] = Field(default_factory=list)
	category_rules: List[CategoryRule] = Field(default_factory=list)


class ConfigurationSystem(PayloadModel):
	items: List[ConfigurationItem] = Field(default_factory=list)
	variant_category_rules: List[CategoryRule] = Field(default_factory=list)
	allow_custom_quantity: bool = True
	min_custom_quantity: int = Field(default=SETTINGS.default_min_custom_quantity, validate_default=True)
	max_custom_quantity: int = Field(default=SETTINGS.default_max_custom_quantity, validate_default=True)

	@field_validator("min_custom_quantity")
	@classmethod
	def floor_min(cls, v: int) -> int:
		return max(1, v)

	@field_validator("max_custom_quantity")
	@classmethod
	def raise_max(cls, v: int, info) -> int:
		return max(v, info.data.get("min_custom_quantity", 1))

	def find_item(self, item_id: str) -> Optional[ConfigurationItem]:
		for item in self.items:
			if item.id == item_id:
				return item
		return None

	def category_rule_for(self, category_id: str) -> Optional[CategoryRule]:
		for rule in self.variant_category_rules:
			if rule.category_id == category_id:
				return rule
		return None


class PurchaseOption(PayloadModel):
	id: str
	content: str
	price: float = Field(ge=0)
	is_active: bool = True
	priority: int = 0


class PurchaseOptions(PayloadModel):
	options: List[PurchaseOption] = Field(default_factory=list)

	@model_validator(mode="before")
	@classmethod
	def accept_stored_shapes(cls, data: Any) -> Any:
		# Stored as a bare list, or wrapped as {"purchaseOptions": [...]} by older screens.
		if isinstance(data, list):
			return {"options": data}
		if isinstance(data, dict) and "purchaseOptions" in data:
			return {"options": data["purchaseOptions"]}
		return data

	def to_payload(self) -> Any:
		return [option.to_payload() for option in self.options]


class EndowItem(PayloadModel):
	id: str
	content: str
	is_active: bool = True
	priority: int = 0


class EndowCustomProduct(PayloadModel):
	id: str
	product_custom_id: str
	quantity: int = Field(default=1, ge=1)
	is_active: bool = True
	priority: int = 0


class EndowSystem(PayloadModel):
	items: List[EndowItem] = Field(default_factory=list)
	custom_products: List[EndowCustomProduct] = Field(default_factory=list)
	display_settings: Optional[Dict[str, Any]] = None

	@model_validator(mode="before")
	@classmethod
	def accept_plain_endows(cls, data: Any) -> Any:
		# Older drafts kept free-text entries as a list of strings under "endows".
		if isinstance(data, dict) and "items" not in data and isinstance(data.get("endows"), list):
			data = dict(data)
			data["items"] = [
				{"id": f"endow-{index + 1}", "content": content, "priority": index + 1}
				for index, content in enumerate(data.pop("endows"))
			]
		return data


class InventoryRecord(BaseModel):
	current_stock: int = 0
	reserved_stock: int = 0


class CatalogProduct(BaseModel):
	id: str
	name: str
	price: str = "0"
	image_url: Optional[str] = None
	category_id: Optional[str] = None
	category_name: Optional[str] = None
	status: str = "active"
	inventories: List[InventoryRecord] = Field(default_factory=list)


class CatalogPage(BaseModel):
	data: List[CatalogProduct] = Field(default_factory=list)


class ItemIn(BaseModel):
	name: str
	base_quantity: int = 1
	is_required: bool = False


class PriceRuleIn(BaseModel):
	condition: PriceCondition = "greater_than"
	min_quantity: int = 0
	max_quantity: Optional[int] = None
	price_per_unit: float
	description: Optional[str] = None


class CategoryRuleIn(BaseModel):
	category_id: Optional[str] = None
	category_name: str = ""
	is_required: bool = True
	max_selections: Optional[int] = None


class CustomQuantityIn(BaseModel):
	allow_custom_quantity: Optional[bool] = None
	min_custom_quantity: Optional[int] = None
	max_custom_quantity: Optional[int] = None


class EndowTextIn(BaseModel):
	content: str


class EndowProductIn(BaseModel):
	product_custom_id: Optional[str] = None
	quantity: Optional[int] = None


class PurchaseOptionIn(BaseModel):
	content: str
	price: float


class PayloadOut(BaseModel):
	variant_id: str
	malformed: bool
	error: Optional[str] = None
	payload: Any


class SelectionIn(BaseModel):
	product_custom_id: str
	quantity: int = Field(default=1, ge=1)


class QuoteRequest(BaseModel):
	selected_option_ids: List[str] = Field(default_factory=list)
	custom_quantities: Dict[str, int] = Field(default_factory=dict)
	selected_category_products: Dict[str, List[SelectionIn]] = Field(default_factory=dict)


class PriceBreakdownOut(BaseModel):
	base_price: float
	items_total: float
	options_total: float
	category_products_total: float
	total: float
	applied_rules: List[dict]


class QuoteResponse(BaseModel):
	variant_id: str
	state: str
	errors: List[str]
	destination: Optional[str] = None
	breakdown: PriceBreakdownOut
