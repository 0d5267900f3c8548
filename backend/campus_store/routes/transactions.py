# Overview: Flask API routes for sales transactions; parses input and returns JSON responses.

# backend/campus_store/routes/transactions.py
"""Sales transaction routes (create / update / delete drive the stock ledger)."""

from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services import transaction_service
from ..services.stock_ledger_service import StockError
from ..validation import ValidationError, NotFoundError, InvalidStateTransitionError


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.post("")
def create_transaction_route():
    """
    Create a student sale.

    Request body:
    {
        "student_id": int,
        "items": [{"product_id": int, "quantity": int, "price_cents": int,
                   "name": str (optional),
                   "set_components": [{"product_id": int, "taken": bool, "reason": str}] (optional)}],
        "payment_method": "cash" | "online" | "transfer" (optional),
        "is_paid": bool (optional),
        "remarks": str (optional)
    }

    Returns:
        201: Transaction created
        400: Invalid request or insufficient stock
        404: Student or product not found
    """
    data = request.get_json(silent=True) or {}

    try:
        transaction = transaction_service.create_transaction(
            student_id=data.get("student_id"),
            items=data.get("items"),
            payment_method=data.get("payment_method"),
            is_paid=data.get("is_paid"),
            remarks=data.get("remarks"),
        )
        db.session.commit()
        return jsonify(transaction.to_dict()), 201

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except StockError as e:
        db.session.rollback()
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("")
def list_transactions_route():
    """
    Query parameters:
        course, student_id, payment_method, is_paid, transaction_type
    """
    try:
        transactions = transaction_service.list_transactions(
            course=request.args.get("course"),
            student_id=request.args.get("student_id", type=int),
            payment_method=request.args.get("payment_method"),
            is_paid=request.args.get("is_paid"),
            transaction_type=request.args.get("transaction_type"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify([t.to_dict() for t in transactions]), 200


@transactions_bp.get("/student/<int:student_id>")
def list_student_transactions_route(student_id: int):
    try:
        transactions = transaction_service.list_transactions_for_student(student_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify([t.to_dict() for t in transactions]), 200


@transactions_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    try:
        transaction = transaction_service.get_transaction(transaction_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(transaction.to_dict()), 200


@transactions_bp.put("/<int:transaction_id>")
def update_transaction_route(transaction_id: int):
    """
    Replace items (restore + reapply in one commit) and/or edit payment fields.

    Returns:
        200: Transaction updated
        400: Invalid request or insufficient stock (stock left unchanged)
        404: Transaction or product not found
        409: Branch transfer transaction items are fixed
    """
    data = request.get_json(silent=True) or {}

    try:
        transaction = transaction_service.update_transaction(
            transaction_id,
            items=data.get("items"),
            payment_method=data.get("payment_method"),
            is_paid=data.get("is_paid"),
            remarks=data.get("remarks"),
        )
        db.session.commit()
        return jsonify(transaction.to_dict()), 200

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except StockError as e:
        db.session.rollback()
        return jsonify({"error": str(e), "details": e.details}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except InvalidStateTransitionError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.delete("/<int:transaction_id>")
def delete_transaction_route(transaction_id: int):
    try:
        transaction_service.delete_transaction(transaction_id)
        db.session.commit()
        return jsonify({"message": "Transaction deleted successfully"}), 200

    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except InvalidStateTransitionError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete transaction")
        return jsonify({"error": "Internal server error"}), 500
