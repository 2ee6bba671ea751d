# Overview: Read access to products, clients and vouchers for the POS screens.

from __future__ import annotations

from typing import Iterable

from ..errors import PosError
from ..extensions import db
from ..models import Client, Product, ReturnVoucher
from .pricing_service import ProductSnapshot


def list_products(search: str | None = None, include_inactive: bool = False, limit: int = 200) -> list[Product]:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.status == "active")
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(Product.name.ilike(pattern), Product.code.ilike(pattern)))
    return query.order_by(Product.name).limit(limit).all()


def get_product(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def load_snapshot(product_id: int) -> ProductSnapshot:
    product = get_product(product_id)
    if product is None:
        raise PosError(f"Product {product_id} not found", details={"product_id": product_id})
    if product.status != "active":
        raise PosError(f"Product {product.name} is inactive", details={"product_id": product_id})
    return ProductSnapshot.from_model(product)


def load_catalog(product_ids: Iterable[int]) -> dict[int, ProductSnapshot]:
    """Snapshot the given products once; missing ids are left out."""
    ids = sorted({int(pid) for pid in product_ids})
    if not ids:
        return {}
    rows = db.session.query(Product).filter(Product.id.in_(ids)).all()
    return {p.id: ProductSnapshot.from_model(p) for p in rows}


def list_clients(search: str | None = None, zone: str | None = None, limit: int = 200) -> list[Client]:
    query = db.session.query(Client)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(Client.name.ilike(pattern), Client.rfc.ilike(pattern)))
    if zone:
        query = query.filter(Client.zone == zone)
    return query.order_by(Client.name).limit(limit).all()


def get_client(client_id: int) -> Client | None:
    return db.session.get(Client, client_id)


def client_vouchers(client_id: int, only_enabled: bool = True) -> list[ReturnVoucher]:
    query = db.session.query(ReturnVoucher).filter_by(client_id=client_id)
    if only_enabled:
        query = query.filter(ReturnVoucher.status == "enabled", ReturnVoucher.available_cents > 0)
    return query.order_by(ReturnVoucher.created_at).all()
