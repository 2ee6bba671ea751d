from __future__ import annotations

from ..extensions import db
from pos_erp.time_utils import to_utc_z


class OrderLock(db.Model):
    """
    Advisory edit lock on an order.

    Cooperative only: writers are not blocked by the database. The lock is
    a hint for "currently being edited by"; write-time conflicts are caught
    by the optimistic version counter on Sale.
    """
    __tablename__ = "order_locks"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_order_locks_order"),
        db.Index("ix_order_locks_expires", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(64), nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user_name = db.Column(db.String(128), nullable=False)
    session_id = db.Column(db.String(64), nullable=False, index=True)

    locked_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "session_id": self.session_id,
            "locked_at": to_utc_z(self.locked_at),
            "expires_at": to_utc_z(self.expires_at),
        }
