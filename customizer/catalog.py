import logging
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol, TypeVar

from sqlalchemy.orm import Session, selectinload
from starlette.concurrency import run_in_threadpool

from .db import SessionLocal
from .models import Product, ProductCustom
from .schemas import CatalogPage, CatalogProduct, InventoryRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CatalogLookupError(LookupError):
	pass


class ProductCatalog(Protocol):
	"""Read-only view of the external product-custom catalog."""

	async def get_product_customs_by_category(self, status: str, limit: int) -> CatalogPage: ...

	async def get_product_custom_by_id(self, product_custom_id: str) -> CatalogProduct: ...

	async def has_background_customization(self, product_id: str) -> bool: ...


@dataclass(frozen=True)
class Availability:
	available: bool
	stock: int
	message: str
	can_select: bool = True


def product_availability(product: CatalogProduct) -> Availability:
	if not product.inventories:
		return Availability(available=False, stock=0, message="No inventory information for this product", can_select=False)
	stock = sum(max(0, record.current_stock - record.reserved_stock) for record in product.inventories)
	if stock > 0:
		return Availability(available=True, stock=stock, message=f"{stock} in stock")
	return Availability(available=False, stock=0, message="Temporarily out of stock", can_select=False)


def can_select(product: CatalogProduct, quantity: int = 1) -> Availability:
	availability = product_availability(product)
	if not availability.available:
		return availability
	if availability.stock >= quantity:
		return availability
	return Availability(
		available=True,
		stock=availability.stock,
		message=f"Only {availability.stock} left, not enough for the requested quantity ({quantity})",
		can_select=False,
	)


def _to_catalog_product(row: ProductCustom) -> CatalogProduct:
	return CatalogProduct(
		id=row.id,
		name=row.name,
		price=row.price,
		image_url=row.image_url,
		category_id=row.category_id,
		category_name=row.category.name if row.category is not None else None,
		status=row.status,
		inventories=[InventoryRecord(current_stock=i.current_stock, reserved_stock=i.reserved_stock) for i in row.inventories],
	)


class SqlProductCatalog:
	"""ProductCatalog backed by the local catalog tables.

	Each lookup runs in the threadpool on a session of its own.
	"""

	def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
		self.session_factory = session_factory

	def _run(self, work: Callable[[Session], T]) -> T:
		db = self.session_factory()
		try:
			return work(db)
		finally:
			db.close()

	def _list_by_category(self, db: Session, status: str, limit: int) -> CatalogPage:
		rows: List[ProductCustom] = (
			db.query(ProductCustom)
			.options(selectinload(ProductCustom.inventories), selectinload(ProductCustom.category))
			.filter(ProductCustom.status == status)
			.order_by(ProductCustom.category_id.asc(), ProductCustom.name.asc())
			.limit(limit)
			.all()
		)
		return CatalogPage(data=[_to_catalog_product(row) for row in rows])

	def _get_by_id(self, db: Session, product_custom_id: str) -> CatalogProduct:
		row: Optional[ProductCustom] = db.get(ProductCustom, product_custom_id)
		if row is None:
			raise CatalogLookupError(f"product custom {product_custom_id} not found")
		return _to_catalog_product(row)

	def _background_capability(self, db: Session, product_id: str) -> bool:
		product: Optional[Product] = db.get(Product, product_id)
		if product is None:
			return False
		return bool(product.has_bg or product.collection_has_bg or any(v.has_bg for v in product.variants))

	async def get_product_customs_by_category(self, status: str = "active", limit: int = 1000) -> CatalogPage:
		return await run_in_threadpool(self._run, lambda db: self._list_by_category(db, status, limit))

	async def get_product_custom_by_id(self, product_custom_id: str) -> CatalogProduct:
		return await run_in_threadpool(self._run, lambda db: self._get_by_id(db, product_custom_id))

	async def has_background_customization(self, product_id: str) -> bool:
		return await run_in_threadpool(self._run, lambda db: self._background_capability(db, product_id))
