from __future__ import annotations

from ..extensions import db
from pos_erp.time_utils import to_utc_z


class Sale(db.Model):
    """
    Persisted order header.

    STATUS (persisted vocabulary, see services.order_status):
    - pending: saved, balance outstanding (includes credit sales)
    - saved: parked order, not yet presented for payment
    - paid: remaining balance at or below one cent
    - overdue: cancelled order

    STOCK: stock_committed is set once the sale's quantities have been
    debited from product stock. Every later stock write for this sale is a
    delta against what was committed, never a re-debit.

    CONCURRENCY: version_id is SQLAlchemy's optimistic version counter.
    A concurrent writer makes the flush fail with StaleDataError.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_created_by_status", "created_by_user_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)
    client_name = db.Column(db.String(255), nullable=False, default="Cliente General")

    date = db.Column(db.Date, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    # Amounts (all in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    voucher_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    # Flags
    is_credit = db.Column(db.Boolean, nullable=False, default=False)
    is_invoice = db.Column(db.Boolean, nullable=False, default=False)
    is_quote = db.Column(db.Boolean, nullable=False, default=False)
    is_external = db.Column(db.Boolean, nullable=False, default=False)

    stock_committed = db.Column(db.Boolean, nullable=False, default=False)
    payment_method = db.Column(db.String(16), nullable=True)

    # Attribution
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_by_name = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client", backref=db.backref("sales", lazy=True))
    items = db.relationship(
        "SaleItem",
        backref="sale",
        order_by="SaleItem.position",
        cascade="all, delete-orphan",
        lazy=True,
    )
    payments = db.relationship(
        "Payment",
        backref="sale",
        order_by="Payment.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "date": self.date.isoformat() if self.date else None,
            "status": self.status,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "remaining_balance_cents": self.remaining_balance_cents,
            "voucher_amount_cents": self.voucher_amount_cents,
            "is_credit": self.is_credit,
            "is_invoice": self.is_invoice,
            "is_quote": self.is_quote,
            "is_external": self.is_external,
            "stock_committed": self.stock_committed,
            "payment_method": self.payment_method,
            "created_by_user_id": self.created_by_user_id,
            "created_by_name": self.created_by_name,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "version_id": self.version_id,
        }


class SaleItem(db.Model):
    """Line item on a persisted sale. Replaced wholesale on every edit."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)
    product_code = db.Column(db.String(64), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    price_tier = db.Column(db.Integer, nullable=False, default=1)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)

    # Optional packaging selection (display only; quantity is in base units)
    tara_id = db.Column(db.String(16), nullable=True)
    tara_name = db.Column(db.String(64), nullable=True)
    tara_factor = db.Column(db.Integer, nullable=True)
    tara_adjustment_cents = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "position": self.position,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_code": self.product_code,
            "quantity": self.quantity,
            "price_tier": self.price_tier,
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
            "tara_id": self.tara_id,
            "tara_name": self.tara_name,
            "tara_factor": self.tara_factor,
            "tara_adjustment_cents": self.tara_adjustment_cents,
        }


class Payment(db.Model):
    """
    Payment record for a sale.

    METHODS: cash, card, transfer, mixed. Credit settlements do not create a
    payment row (nothing is collected); voucher settlements record only the
    cash residual.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_register_method", "cash_register_id", "method"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    method = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)

    # Change given (for cash over-tender)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    reference = db.Column(db.String(128), nullable=True)

    # Per-tender split for mixed payments: {"cash": .., "card": .., "transfer": .., "credit": ..}
    breakdown = db.Column(db.JSON, nullable=True)

    cash_register_id = db.Column(db.Integer, db.ForeignKey("cash_registers.id"), nullable=True, index=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "change_cents": self.change_cents,
            "reference": self.reference,
            "breakdown": self.breakdown,
            "cash_register_id": self.cash_register_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class OrderWarehouseDistribution(db.Model):
    """
    Allocation of a sale's product quantity across warehouses.

    Rewritten (delete then insert) whenever an order is saved with a
    distribution map.
    """
    __tablename__ = "order_warehouse_distribution"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "product_id", "warehouse_id", name="uq_order_distribution_line"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "quantity": self.quantity,
            "created_at": to_utc_z(self.created_at),
        }
