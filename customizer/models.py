from datetime import datetime
from typing import Optional

from sqlalchemy import (
	JSON,
	Boolean,
	DateTime,
	ForeignKey,
	Integer,
	Numeric,
	String,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from .db import Base


class Product(Base):
	__tablename__ = "products"

	id: Mapped[str] = mapped_column(String(64), primary_key=True)
	name: Mapped[str] = mapped_column(String(255), nullable=False)
	has_bg: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
	collection_has_bg: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

	variants: Mapped[list["ProductVariant"]] = relationship("ProductVariant", back_populates="product")


class ProductVariant(Base):
	__tablename__ = "product_variants"

	id: Mapped[str] = mapped_column(String(64), primary_key=True)
	product_id: Mapped[str] = mapped_column(ForeignKey("products.id"), nullable=False)
	name: Mapped[str] = mapped_column(String(255), nullable=False)
	price: Mapped[float] = mapped_column(Numeric(14, 2), nullable=False)
	has_bg: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

	# Stored as opaque JSON; shape is validated in payloads.py when read.
	config: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
	endow: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
	option: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

	updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

	product: Mapped["Product"] = relationship("Product", back_populates="variants")


class ProductCategory(Base):
	__tablename__ = "product_categories"

	id: Mapped[str] = mapped_column(String(64), primary_key=True)
	name: Mapped[str] = mapped_column(String(255), nullable=False)

	product_customs: Mapped[list["ProductCustom"]] = relationship("ProductCustom", back_populates="category")


class ProductCustom(Base):
	__tablename__ = "product_customs"

	id: Mapped[str] = mapped_column(String(64), primary_key=True)
	category_id: Mapped[Optional[str]] = mapped_column(ForeignKey("product_categories.id"), nullable=True)
	name: Mapped[str] = mapped_column(String(255), nullable=False)
	# The catalog API exposes prices as decimal strings.
	price: Mapped[str] = mapped_column(String(32), nullable=False, default="0")
	image_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
	status: Mapped[str] = mapped_column(String(32), default="active", nullable=False)

	category: Mapped[Optional["ProductCategory"]] = relationship("ProductCategory", back_populates="product_customs")
	inventories: Mapped[list["Inventory"]] = relationship("Inventory", back_populates="product_custom")


class Inventory(Base):
	__tablename__ = "inventories"

	id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
	product_custom_id: Mapped[str] = mapped_column(ForeignKey("product_customs.id"), nullable=False)
	current_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
	reserved_stock: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

	product_custom: Mapped["ProductCustom"] = relationship("ProductCustom", back_populates="inventories")
