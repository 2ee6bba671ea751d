# Overview: Flask API routes for products, clients and client vouchers (read only).

from flask import Blueprint, request, jsonify

from ..services import catalog_service
from ..services.pricing_service import TARA_OPTIONS
from ..decorators import require_auth


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


@catalog_bp.get("/products")
@require_auth
def list_products_route():
    """
    Query params:
    - q: name/code search
    - include_inactive: "true" to include inactive products
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    products = catalog_service.list_products(request.args.get("q"), include_inactive=include_inactive)
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@catalog_bp.get("/products/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    product = catalog_service.get_product(product_id)
    if not product:
        return jsonify({"error": "Product not found"}), 404

    body = product.to_dict()
    body["tara_options"] = [t.to_dict() for t in TARA_OPTIONS] if product.has_tara else []
    body["warehouse_stock"] = [row.to_dict() for row in product.warehouse_stock]
    return jsonify({"product": body}), 200


@catalog_bp.get("/clients")
@require_auth
def list_clients_route():
    clients = catalog_service.list_clients(request.args.get("q"), zone=request.args.get("zone"))
    return jsonify({"clients": [c.to_dict() for c in clients]}), 200


@catalog_bp.get("/clients/<int:client_id>")
@require_auth
def get_client_route(client_id: int):
    client = catalog_service.get_client(client_id)
    if not client:
        return jsonify({"error": "Client not found"}), 404
    return jsonify({"client": client.to_dict()}), 200


@catalog_bp.get("/clients/<int:client_id>/vouchers")
@require_auth
def client_vouchers_route(client_id: int):
    if not catalog_service.get_client(client_id):
        return jsonify({"error": "Client not found"}), 404
    only_enabled = request.args.get("all", "false").lower() != "true"
    vouchers = catalog_service.client_vouchers(client_id, only_enabled=only_enabled)
    return jsonify({"vouchers": [v.to_dict() for v in vouchers]}), 200
