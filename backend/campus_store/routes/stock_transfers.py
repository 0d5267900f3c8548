# backend/campus_store/routes/stock_transfers.py
"""
Branch and stock transfer API routes.
"""
from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services import transfer_service
from ..services.stock_ledger_service import StockError
from ..validation import (
    ConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
    parse_bool,
)


stock_transfers_bp = Blueprint("stock_transfers", __name__, url_prefix="/api/stock-transfers")


def _flag(name: str) -> bool:
    try:
        return parse_bool(request.args.get(name, ""), name)
    except ValidationError:
        return False


# ---------------------------------------------------------------------------
# Branches
# ---------------------------------------------------------------------------

@stock_transfers_bp.route("/branches", methods=["GET"])
def list_branches():
    """
    Query parameters:
        active_only: "true" to hide inactive branches
        with_stock: "true" to include branch stock entries
    """
    branches = transfer_service.list_branches(active_only=_flag("active_only"))
    with_stock = _flag("with_stock")
    return jsonify([b.to_dict(with_stock=with_stock) for b in branches]), 200


@stock_transfers_bp.route("/branches", methods=["POST"])
def create_branch():
    """
    Request body:
    {
        "name": str,
        "location": str (optional),
        "description": str (optional)
    }

    Returns:
        201: Branch created
        400: Name missing
        409: Name already used
    """
    data = request.get_json(silent=True) or {}

    try:
        branch = transfer_service.create_branch(
            name=data.get("name"),
            location=data.get("location"),
            description=data.get("description"),
        )
        db.session.commit()
        return jsonify(branch.to_dict()), 201

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create branch")
        return jsonify({"error": "Internal server error"}), 500


@stock_transfers_bp.route("/branches/<int:branch_id>", methods=["PUT"])
def update_branch(branch_id: int):
    data = request.get_json(silent=True) or {}

    try:
        branch = transfer_service.update_branch(
            branch_id,
            name=data.get("name"),
            location=data.get("location"),
            description=data.get("description"),
            is_active=data.get("is_active"),
        )
        db.session.commit()
        return jsonify(branch.to_dict()), 200

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update branch")
        return jsonify({"error": "Internal server error"}), 500


@stock_transfers_bp.route("/branches/<int:branch_id>", methods=["DELETE"])
def delete_branch(branch_id: int):
    """
    Returns:
        200: Branch deleted
        404: Branch not found
        409: Branch is referenced by transfers
    """
    try:
        transfer_service.delete_branch(branch_id)
        db.session.commit()
        return jsonify({"message": "Branch deleted successfully"}), 200

    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete branch")
        return jsonify({"error": "Internal server error"}), 500


@stock_transfers_bp.route("/branches/<int:branch_id>/stock", methods=["GET"])
def get_branch_stock_all(branch_id: int):
    try:
        return jsonify(transfer_service.get_branch_stock_all(branch_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@stock_transfers_bp.route("/branches/<int:branch_id>/stock/<int:product_id>", methods=["GET"])
def get_branch_stock(branch_id: int, product_id: int):
    try:
        return jsonify(transfer_service.get_branch_stock(branch_id, product_id)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


# ---------------------------------------------------------------------------
# Transfers
# ---------------------------------------------------------------------------

@stock_transfers_bp.route("", methods=["POST"])
def create_transfer():
    """
    Create a pending transfer from central stock to a branch.

    Request body:
    {
        "items": [{"product_id": int, "quantity": int}],
        "to_branch_id": int,
        "transfer_date": str (optional, ISO-8601),
        "is_paid": bool (optional, default false),
        "deduct_from_central": bool (optional, default true),
        "include_in_revenue": bool (optional, default true),
        "remarks": str (optional),
        "created_by": str (optional)
    }

    Returns:
        201: Transfer created (pending)
        400: Invalid request or insufficient central stock
        404: Branch missing/inactive or product not found
    """
    data = request.get_json(silent=True) or {}

    try:
        transfer = transfer_service.create_transfer(
            items=data.get("items"),
            to_branch_id=data.get("to_branch_id"),
            transfer_date=data.get("transfer_date"),
            is_paid=data.get("is_paid"),
            deduct_from_central=data.get("deduct_from_central"),
            include_in_revenue=data.get("include_in_revenue"),
            remarks=data.get("remarks"),
            created_by=data.get("created_by"),
        )
        db.session.commit()
        return jsonify(transfer.to_dict()), 201

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
        current_app.logger.exception("Failed to create stock transfer")
        return jsonify({"error": "Internal server error"}), 500


@stock_transfers_bp.route("", methods=["GET"])
def list_transfers():
    """
    Query parameters:
        product_id, to_branch_id, status, is_paid, start_date, end_date
    """
    try:
        transfers = transfer_service.list_transfers(
            product_id=request.args.get("product_id", type=int),
            to_branch_id=request.args.get("to_branch_id", type=int),
            status=request.args.get("status"),
            is_paid=request.args.get("is_paid"),
            start_date=request.args.get("start_date"),
            end_date=request.args.get("end_date"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify([t.to_dict() for t in transfers]), 200


@stock_transfers_bp.route("/<int:transfer_id>", methods=["GET"])
def get_transfer(transfer_id: int):
    try:
        transfer = transfer_service.get_transfer(transfer_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify(transfer.to_dict()), 200


@stock_transfers_bp.route("/<int:transfer_id>", methods=["PUT"])
def update_transfer(transfer_id: int):
    """
    Request body:
    {
        "status": "pending" | "completed" | "cancelled" (optional),
        "is_paid": bool (optional),
        "remarks": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}

    try:
        transfer = transfer_service.update_transfer(
            transfer_id,
            status=data.get("status"),
            is_paid=data.get("is_paid"),
            remarks=data.get("remarks"),
        )
        db.session.commit()
        return jsonify(transfer.to_dict()), 200

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
        current_app.logger.exception("Failed to update stock transfer")
        return jsonify({"error": "Internal server error"}), 500


@stock_transfers_bp.route("/<int:transfer_id>", methods=["DELETE"])
def delete_transfer(transfer_id: int):
    try:
        transfer_service.delete_transfer(transfer_id)
        db.session.commit()
        return jsonify({"message": "Stock transfer deleted"}), 200

    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except InvalidStateTransitionError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete stock transfer")
        return jsonify({"error": "Internal server error"}), 500


@stock_transfers_bp.route("/<int:transfer_id>/complete", methods=["POST"])
def complete_transfer(transfer_id: int):
    """
    Complete a pending transfer: deduct central stock (if configured), add to
    branch stock and record a branch_transfer transaction.

    Returns:
        200: Transfer completed
        400: Central stock no longer sufficient
        404: Transfer not found
        409: Transfer is not pending
    """
    try:
        transfer = transfer_service.complete_transfer(transfer_id)
        db.session.commit()
        return jsonify(transfer.to_dict()), 200

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
        current_app.logger.exception("Failed to complete stock transfer")
        return jsonify({"error": "Internal server error"}), 500


@stock_transfers_bp.route("/<int:transfer_id>/cancel", methods=["POST"])
def cancel_transfer(transfer_id: int):
    try:
        transfer = transfer_service.cancel_transfer(transfer_id)
        db.session.commit()
        return jsonify(transfer.to_dict()), 200

    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except InvalidStateTransitionError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel stock transfer")
        return jsonify({"error": "Internal server error"}), 500
