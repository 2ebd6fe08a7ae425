# Overview: Flask API routes for products and stock corrections.

from flask import Blueprint, current_app, g, jsonify, request

from ..errors import LedgerError
from ..decorators import json_body, ledger_error_response, require_actor
from ..services import stock_service
from .. import repositories


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/products")


@inventory_bp.post("")
@require_actor
def create_product_route():
    """
    Request body:
    {
        "sku": "EXB-200", "name": "Exercise Book 200pg",
        "department": "Stationery", "category": "Books",
        "sell_price_cents": 8000, "buy_price_cents": 5000,
        "reorder_level": 10, "is_allocatable": true,
        "supplier_id": 1, "initial_stock": 100
    }
    """
    try:
        data = json_body()
        product = stock_service.create_product(
            sku=data.get("sku"),
            name=data.get("name"),
            sell_price_cents=data.get("sell_price_cents"),
            buy_price_cents=data.get("buy_price_cents", 0),
            department=data.get("department", "General"),
            category=data.get("category"),
            description=data.get("description"),
            reorder_level=data.get("reorder_level", 10),
            is_allocatable=bool(data.get("is_allocatable", False)),
            supplier_id=data.get("supplier_id"),
            initial_stock=data.get("initial_stock", 0),
            actor=g.actor,
        )
        return jsonify({"product": product.to_dict()}), 201
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("")
def list_products_route():
    try:
        products = stock_service.list_products(
            department=request.args.get("department"),
            include_archived=request.args.get("include_archived", "false").lower() == "true",
        )
        return jsonify({"products": [p.to_dict() for p in products]}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/low-stock")
def low_stock_route():
    try:
        products = stock_service.get_low_stock_products(department=request.args.get("department"))
        return jsonify({"products": [p.to_dict() for p in products]}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list low-stock products")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = repositories.get_product(product_id, include_archived=True)
        return jsonify({"product": product.to_dict()}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:product_id>/adjust")
@require_actor
def adjust_stock_route(product_id: int):
    """
    Manual stock correction.

    Request body: {"delta": -3, "reason": "Damaged in storage"}
    """
    try:
        data = json_body()
        change = stock_service.adjust_stock(product_id, data.get("delta"), reason=data.get("reason"), actor=g.actor)
        return jsonify(change.to_dict()), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<int:product_id>/archive")
@require_actor
def archive_product_route(product_id: int):
    try:
        product = stock_service.archive_product(product_id, actor=g.actor)
        return jsonify({"product": product.to_dict()}), 200
    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to archive product")
        return jsonify({"error": "Internal server error"}), 500
