# Overview: Flask API routes for registration codes; parses input and returns JSON responses.

# backend/handheld/routes/registration_codes.py
"""
Registration Code API Routes

WHY: Handhelds join a store by presenting a code issued here. Only super
admins issue and manage codes.

DESIGN:
- Codes are shown in full to the issuing super admin (they are typed into the
  device); they are not secrets once used up
- A code with any consumed use can be deactivated but never deleted
- An exhausted code cannot be reactivated
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_role, error_response
from ..errors import DeviceAccessError
from ..permissions import Role
from ..services import access_service
from handheld.time_utils import parse_iso_datetime


registration_codes_bp = Blueprint("registration_codes", __name__, url_prefix="/api")


@registration_codes_bp.post("/stores/<int:store_id>/registration-codes")
@require_auth
@require_role(Role.SUPER_ADMIN)
def generate_code_route(store_id: int):
    """
    Issue a registration code for a store.

    Request body (all optional):
    {
        "max_uses": 5,
        "expires_at": "2026-12-31T23:59:59Z",
        "notes": "Warehouse scanners"
    }
    """
    try:
        data = request.get_json(silent=True) or {}

        max_uses = data.get("max_uses", 1)
        notes = data.get("notes")

        try:
            expires_at = parse_iso_datetime(data.get("expires_at"))
        except ValueError:
            return jsonify({"error": "expires_at must be an ISO-8601 datetime", "code": "ValidationError"}), 400

        record = access_service.generate_code(
            g.current_user,
            store_id,
            max_uses=max_uses,
            expires_at=expires_at,
            notes=notes,
        )

        return jsonify({
            "id": record.id,
            "code": record.code,
            "max_uses": record.max_uses,
            "expires_at": record.to_dict()["expires_at"],
            "registration_code": record.to_dict(),
        }), 201

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to generate registration code")
        return jsonify({"error": "Internal server error"}), 500


@registration_codes_bp.get("/stores/<int:store_id>/registration-codes")
@require_auth
@require_role(Role.SUPER_ADMIN)
def list_codes_route(store_id: int):
    """
    List a store's registration codes.

    Query params:
        include_used: "true" to include exhausted codes
    """
    try:
        include_used = request.args.get("include_used", "false").lower() == "true"
        codes = access_service.list_codes(g.current_user, store_id, include_used=include_used)
        return jsonify({"registration_codes": [c.to_dict() for c in codes]}), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list registration codes")
        return jsonify({"error": "Internal server error"}), 500


@registration_codes_bp.post("/registration-codes/<int:code_id>/deactivate")
@require_auth
@require_role(Role.SUPER_ADMIN)
def deactivate_code_route(code_id: int):
    try:
        record = access_service.deactivate_code(g.current_user, code_id)
        return jsonify({"registration_code": record.to_dict()}), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate registration code")
        return jsonify({"error": "Internal server error"}), 500


@registration_codes_bp.post("/registration-codes/<int:code_id>/reactivate")
@require_auth
@require_role(Role.SUPER_ADMIN)
def reactivate_code_route(code_id: int):
    try:
        record = access_service.reactivate_code(g.current_user, code_id)
        return jsonify({"registration_code": record.to_dict()}), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reactivate registration code")
        return jsonify({"error": "Internal server error"}), 500


@registration_codes_bp.delete("/registration-codes/<int:code_id>")
@require_auth
@require_role(Role.SUPER_ADMIN)
def delete_code_route(code_id: int):
    """Delete an unused code (409 DeletionBlocked once any device used it)."""
    try:
        access_service.delete_code(g.current_user, code_id)
        return jsonify({"message": "Registration code deleted"}), 200

    except DeviceAccessError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete registration code")
        return jsonify({"error": "Internal server error"}), 500
