from __future__ import annotations

from flask import current_app

from ..extensions import db
from pos_erp.time_utils import to_utc_z

DEFAULT_TARA_LINES = ("Granos", "Aceites")


class Product(db.Model):
    """
    Product catalog entry with five price tiers.

    PRICING: price1_cents is required. Tiers 2-5 are optional; when unset
    they are derived from tier 1 by the pricing service (fixed markups).

    STOCK: `stock` is the aggregate on-hand quantity in base units. It is
    mutated only by the order/payment services, which also write an
    InventoryMovement row for every outbound debit.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_status_name", "status", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)

    # Classification
    line = db.Column(db.String(64), nullable=True, index=True)
    subline = db.Column(db.String(64), nullable=True)
    unit = db.Column(db.String(16), nullable=False, default="PZA")

    stock = db.Column(db.Integer, nullable=False, default=0)

    price1_cents = db.Column(db.Integer, nullable=False)
    price2_cents = db.Column(db.Integer, nullable=True)
    price3_cents = db.Column(db.Integer, nullable=True)
    price4_cents = db.Column(db.Integer, nullable=True)
    price5_cents = db.Column(db.Integer, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)  # active, inactive

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} name={self.name!r} stock={self.stock}>"

    @property
    def has_tara(self) -> bool:
        lines = current_app.config.get("TARA_PRODUCT_LINES", DEFAULT_TARA_LINES)
        return self.line in lines

    def stored_prices(self) -> dict[int, int | None]:
        return {
            1: self.price1_cents,
            2: self.price2_cents,
            3: self.price3_cents,
            4: self.price4_cents,
            5: self.price5_cents,
        }

    def to_dict(self) -> dict:
        from ..services.pricing_service import tier_prices

        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "line": self.line,
            "subline": self.subline,
            "unit": self.unit,
            "stock": self.stock,
            "prices": {f"price{tier}": cents for tier, cents in tier_prices(self.stored_prices()).items()},
            "status": self.status,
            "has_tara": self.has_tara,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Warehouse(db.Model):
    """Physical stock location (bodega)."""
    __tablename__ = "warehouses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False, unique=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class WarehouseStock(db.Model):
    """
    Per-warehouse stock row.

    Rows are created lazily the first time a warehouse is debited or credited
    for a product.
    """
    __tablename__ = "warehouse_stock"
    __table_args__ = (
        db.UniqueConstraint("warehouse_id", "product_id", name="uq_warehouse_stock_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    stock = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    warehouse = db.relationship("Warehouse", backref=db.backref("stock_rows", lazy=True))
    product = db.relationship("Product", backref=db.backref("warehouse_stock", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "warehouse_id": self.warehouse_id,
            "warehouse_name": self.warehouse.name if self.warehouse else None,
            "product_id": self.product_id,
            "stock": self.stock,
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryMovement(db.Model):
    """
    Append-only audit log of stock movements.

    TYPES:
    - salida: outbound (sale consumption)
    - entrada: inbound (cancellation return)

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "inventory_movements"
    __table_args__ = (
        db.Index("ix_inventory_movements_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    reference = db.Column(db.String(64), nullable=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=True)

    # Attribution
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    user_name = db.Column(db.String(128), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "type": self.type,
            "quantity": self.quantity,
            "reference": self.reference,
            "sale_id": self.sale_id,
            "warehouse_id": self.warehouse_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "occurred_at": to_utc_z(self.occurred_at),
        }
