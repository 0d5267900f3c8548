# backend/campus_store/routes/audit_logs.py
"""
Stock correction (audit log) API routes.
"""
from flask import Blueprint, request, jsonify, current_app

from ..extensions import db
from ..services import audit_log_service
from ..validation import ValidationError, NotFoundError, InvalidStateTransitionError


audit_logs_bp = Blueprint("audit_logs", __name__, url_prefix="/api/audit-logs")


@audit_logs_bp.route("", methods=["POST"])
def create_audit_log():
    """
    Request body:
    {
        "product_id": int,
        "before_quantity": int,
        "after_quantity": int,
        "notes": str (optional),
        "created_by": str (optional)
    }

    Returns:
        201: Audit log created (pending)
        400: Invalid quantities
        404: Product not found
    """
    data = request.get_json(silent=True) or {}

    try:
        log = audit_log_service.create_audit_log(
            product_id=data.get("product_id"),
            before_quantity=data.get("before_quantity"),
            after_quantity=data.get("after_quantity"),
            notes=data.get("notes"),
            created_by=data.get("created_by"),
        )
        db.session.commit()
        return jsonify(log.to_dict()), 201

    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create audit log")
        return jsonify({"error": "Internal server error"}), 500


@audit_logs_bp.route("", methods=["GET"])
def list_audit_logs():
    """
    Query parameters:
        status: pending | approved | rejected | all (default all)
    """
    try:
        logs = audit_log_service.list_audit_logs(request.args.get("status"))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify([log.to_dict() for log in logs]), 200


@audit_logs_bp.route("/<int:audit_id>/approve", methods=["PATCH"])
def approve_audit_log(audit_id: int):
    """
    Approve a pending audit log and overwrite the product's stock.

    Returns:
        200: Approved
        404: Audit log or product not found
        409: Audit log not pending
    """
    data = request.get_json(silent=True) or {}

    try:
        log = audit_log_service.approve_audit_log(audit_id, approved_by=data.get("approved_by"))
        db.session.commit()
        return jsonify(log.to_dict()), 200

    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except InvalidStateTransitionError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to approve audit log")
        return jsonify({"error": "Internal server error"}), 500


@audit_logs_bp.route("/<int:audit_id>/reject", methods=["PATCH"])
def reject_audit_log(audit_id: int):
    data = request.get_json(silent=True) or {}

    try:
        log = audit_log_service.reject_audit_log(
            audit_id,
            approved_by=data.get("approved_by"),
            notes=data.get("notes"),
        )
        db.session.commit()
        return jsonify(log.to_dict()), 200

    except NotFoundError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 404
    except InvalidStateTransitionError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reject audit log")
        return jsonify({"error": "Internal server error"}), 500
