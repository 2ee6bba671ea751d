from __future__ import annotations

from ..extensions import db
from pos_erp.time_utils import to_utc_z


class Client(db.Model):
    """
    Client master data with a credit line.

    CREDIT: balance_cents is the outstanding amount owed. It grows with
    credit sales and shrinks when credit sales are paid down. Exceeding
    credit_limit_cents is allowed only with an authorization override.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    rfc = db.Column(db.String(16), nullable=True)
    zone = db.Column(db.String(64), nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)

    default_price_tier = db.Column(db.Integer, nullable=False, default=1)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def available_credit_cents(self) -> int:
        return max(0, self.credit_limit_cents - self.balance_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "rfc": self.rfc,
            "zone": self.zone,
            "credit_limit_cents": self.credit_limit_cents,
            "balance_cents": self.balance_cents,
            "available_credit_cents": self.available_credit_cents,
            "default_price_tier": self.default_price_tier,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ReturnVoucher(db.Model):
    """
    Store-credit voucher (vale) issued on a return.

    STATUS:
    - enabled: available_cents may be applied as a tender
    - used: fully consumed
    - expired: no longer accepted
    """
    __tablename__ = "return_vouchers"
    __table_args__ = (
        db.Index("ix_return_vouchers_client_status", "client_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    folio = db.Column(db.String(32), nullable=False, unique=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    available_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="enabled", index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    client = db.relationship("Client", backref=db.backref("vouchers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "folio": self.folio,
            "client_id": self.client_id,
            "amount_cents": self.amount_cents,
            "available_cents": self.available_cents,
            "status": self.status,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }
