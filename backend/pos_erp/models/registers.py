from __future__ import annotations

from ..extensions import db
from pos_erp.time_utils import to_utc_z


class CashRegister(db.Model):
    """
    Per-operator cash drawer session (corte de caja).

    LIFECYCLE:
    - open: accepting payments; totals are refreshed after each payment
    - closed: closing count recorded, totals frozen

    At most one open register per operator. This is enforced by the
    service query, not by a database constraint.
    """
    __tablename__ = "cash_registers"
    __table_args__ = (
        db.Index("ix_cash_registers_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="open", index=True)  # open, closed

    # Cash tracking (all amounts in cents)
    opening_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_amount_cents = db.Column(db.Integer, nullable=True)

    total_sales_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    total_card_cents = db.Column(db.Integer, nullable=False, default=0)
    total_transfer_cents = db.Column(db.Integer, nullable=False, default=0)

    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", backref=db.backref("cash_registers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def expected_cash_cents(self) -> int:
        return self.opening_amount_cents + self.total_cash_cents

    def to_dict(self) -> dict:
        variance = None
        if self.closing_amount_cents is not None:
            variance = self.closing_amount_cents - self.expected_cash_cents
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "opening_amount_cents": self.opening_amount_cents,
            "closing_amount_cents": self.closing_amount_cents,
            "total_sales_cents": self.total_sales_cents,
            "total_cash_cents": self.total_cash_cents,
            "total_card_cents": self.total_card_cents,
            "total_transfer_cents": self.total_transfer_cents,
            "expected_cash_cents": self.expected_cash_cents,
            "variance_cents": variance,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
            "version_id": self.version_id,
        }
