import structlog
from flask import Flask, Response, current_app, g, jsonify, request
from flask_cors import CORS
from flask_jwt_extended import JWTManager, jwt_required

from consent_broker.access_control import Permission, require_permission
from consent_broker.config import Config
from consent_broker.database.config import init_db, init_engine
from consent_broker.database.session import close_db, get_db
from consent_broker.errors import ConsentBrokerError, InvalidArgumentError
from consent_broker.items import (
    add_item, delete_item, edit_item, list_owner_items, list_provider_items
)
from consent_broker.lifecycle import AccessGate, ActivationReconciler, GrantAdministration
from consent_broker.lifecycle.audit import AuditLog
from consent_broker.lifecycle.engine import Outcome
from consent_broker.lifecycle.fetcher import ContentFetcher
from consent_broker.logging_setup import configure_logging
from consent_broker.models.consent import utcnow

log = structlog.get_logger(__name__)

# HTTP status per access outcome; denials are well-formed bodies, not errors
OUTCOME_STATUS = {
    Outcome.PENDING: 202,
    Outcome.GRANTED: 200,
    Outcome.DENIED: 403,
}


def _services():
    return current_app.extensions["consent_broker"]


def _gate():
    services = _services()
    return AccessGate(get_db(), fetcher=services["fetcher"], clock=services["clock"])


def _administration():
    return GrantAdministration(get_db(), clock=_services()["clock"])


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidArgumentError("Request body must be a JSON object")
    return data


def _optional_int(value, name):
    if value is None or value == "":
        return None
    # Floats are refused, not truncated
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as exc:
            raise InvalidArgumentError(f"{name} must be an integer") from exc
    raise InvalidArgumentError(f"{name} must be an integer")


def create_app(overrides=None, clock=None, fetcher=None):
    app = Flask(__name__)

    # Configuration
    app.config.update(Config().as_dict())
    if overrides:
        app.config.update(overrides)

    configure_logging(app.config["LOG_LEVEL"], app.config["LOG_JSON"])

    CORS(app, origins=app.config["CORS_ORIGINS"])
    JWTManager(app)

    init_engine(app.config["DATABASE_URL"])
    init_db()

    app.extensions["consent_broker"] = {
        "clock": clock or utcnow,
        "fetcher": fetcher or ContentFetcher(timeout=app.config["FETCH_TIMEOUT_SECONDS"]),
    }
    app.teardown_appcontext(close_db)

    @app.errorhandler(ConsentBrokerError)
    def handle_consent_error(exc):
        if exc.http_status >= 500:
            log.error("request.failed", code=exc.code, error=exc.message, path=request.path)
        else:
            log.warning("request.rejected", code=exc.code, error=exc.message, path=request.path)
        return jsonify(exc.to_dict()), exc.http_status

    register_routes(app)
    return app


def register_routes(app):

    # ==================== HEALTH ====================

    @app.route("/health", methods=["GET"])
    def health():
        """Health check endpoint"""
        return jsonify({"status": "ok", "message": "Server is running"}), 200

    # ==================== PROVIDER ROUTES ====================

    @app.route("/provider/items", methods=["POST"])
    @jwt_required()
    @require_permission(Permission.ADD_ITEM)
    def provider_add_item():
        """Register an already-encrypted item"""
        data = _json_body()
        item = add_item(
            get_db(),
            g.principal.id,
            name=data.get("item_name"),
            item_type=data.get("item_type"),
            encrypted_key=data.get("encrypted_key"),
            iv=data.get("iv"),
            encrypted_data=data.get("encrypted_data"),
            encrypted_url=data.get("encrypted_url"),
        )
        return jsonify({
            "message": "Item added",
            "item_id": item.id,
            "delivery_mode": item.delivery_mode.value,
        }), 201

    @app.route("/provider/items", methods=["GET"])
    @jwt_required()
    @require_permission(Permission.LIST_OWN_ITEMS)
    def provider_items():
        return jsonify(list_owner_items(get_db(), g.principal.id)), 200

    @app.route("/provider/items/<int:item_id>", methods=["PUT"])
    @jwt_required()
    @require_permission(Permission.EDIT_ITEM)
    def provider_edit_item(item_id):
        """Replace an item's metadata or ciphertext"""
        data = _json_body()
        item = edit_item(
            get_db(),
            g.principal.id,
            item_id,
            name=data.get("item_name"),
            item_type=data.get("item_type"),
            encrypted_key=data.get("encrypted_key"),
            iv=data.get("iv"),
            encrypted_data=data.get("encrypted_data"),
            encrypted_url=data.get("encrypted_url"),
        )
        return jsonify({
            "message": "Item updated",
            "item_id": item.id,
            "delivery_mode": item.delivery_mode.value,
        }), 200

    @app.route("/provider/items/<int:item_id>", methods=["DELETE"])
    @jwt_required()
    @require_permission(Permission.DELETE_ITEM)
    def provider_delete_item(item_id):
        """Soft-delete an item; its consents become inactive"""
        item = delete_item(get_db(), g.principal.id, item_id, now=_services()["clock"]())
        return jsonify({"message": "Item deleted", "item_id": item.id}), 200

    @app.route("/provider/consents/pending", methods=["GET"])
    @jwt_required()
    @require_permission(Permission.LIST_PENDING_CONSENTS)
    def provider_pending_consents():
        """Pending consent requests on the provider's items"""
        return jsonify(_administration().list_pending(g.principal.id)), 200

    @app.route("/provider/consents/<int:consent_id>/decision", methods=["POST"])
    @jwt_required()
    @require_permission(Permission.DECIDE_CONSENT)
    def provider_decide_consent(consent_id):
        """Approve, reject or revoke a consent"""
        data = _json_body()
        decision = data.get("decision") or ""
        if not isinstance(decision, str):
            raise InvalidArgumentError("decision must be a string")
        result = _administration().decide(
            g.principal.id,
            consent_id,
            decision.strip().lower(),
            count=_optional_int(data.get("count"), "count"),
            valid_until=data.get("valid_until"),
            key_material=data.get("encrypted_key_for_seeker"),
        )
        return jsonify(result.to_dict()), 200

    @app.route("/provider/history", methods=["GET"])
    @jwt_required()
    @require_permission(Permission.VIEW_OWNER_HISTORY)
    def provider_history():
        return jsonify(_administration().history(g.principal.id)), 200

    # ==================== SEEKER ROUTES ====================

    @app.route("/seeker/provider-items", methods=["GET"])
    @jwt_required()
    @require_permission(Permission.BROWSE_PROVIDER_ITEMS)
    def seeker_provider_items():
        return jsonify(list_provider_items(get_db(), request.args.get("provider_email", ""))), 200

    @app.route("/seeker/items/<int:item_id>/access", methods=["POST"])
    @jwt_required()
    @require_permission(Permission.ACCESS_ITEM)
    def seeker_access_item(item_id):
        """Request access, or check and use an existing consent"""
        result = _gate().attempt_access(g.principal.id, item_id)
        return jsonify(result.to_dict()), OUTCOME_STATUS[result.outcome]

    @app.route("/seeker/items/<int:item_id>/request-again", methods=["POST"])
    @jwt_required()
    @require_permission(Permission.REREQUEST_ACCESS)
    def seeker_request_again(item_id):
        result = _gate().re_request(g.principal.id, item_id)
        return jsonify(result.to_dict()), OUTCOME_STATUS[result.outcome]

    @app.route("/seeker/items/<int:item_id>/content", methods=["GET"])
    @jwt_required()
    @require_permission(Permission.RETRIEVE_ITEM)
    def seeker_retrieve_item(item_id):
        """Relay an indirect item's ciphertext; consumes one access on success"""
        result = _gate().retrieve(g.principal.id, item_id)
        if not result.granted:
            return jsonify({
                "message": result.message,
                "consent_id": result.consent_id,
                "consent_status": result.status.value,
                **result.item,
            }), OUTCOME_STATUS[result.outcome]

        response = Response(result.content, mimetype=result.content_type)
        response.headers["X-Consent-Status"] = result.status.value
        response.headers["X-Access-Remaining"] = str(result.remaining)
        return response

    @app.route("/seeker/history", methods=["GET"])
    @jwt_required()
    @require_permission(Permission.VIEW_REQUESTER_HISTORY)
    def seeker_history():
        return jsonify(AuditLog(get_db()).history_for_requester(g.principal.id)), 200

    # ==================== ADMIN ROUTES ====================

    @app.route("/admin/providers/<int:provider_id>/activation", methods=["POST"])
    @jwt_required()
    @require_permission(Permission.MANAGE_PRINCIPALS)
    def admin_provider_activation(provider_id):
        """Admin: (de)activate a provider with its items and consents"""
        active = _json_body().get("active")
        if not isinstance(active, bool):
            raise InvalidArgumentError("active must be true or false")
        provider = ActivationReconciler(get_db()).set_owner_active(provider_id, active)
        return jsonify({"provider_id": provider.id, "is_active": provider.is_active}), 200

    @app.route("/admin/seekers/<int:seeker_id>/activation", methods=["POST"])
    @jwt_required()
    @require_permission(Permission.MANAGE_PRINCIPALS)
    def admin_seeker_activation(seeker_id):
        """Admin: (de)activate a seeker and their consents"""
        active = _json_body().get("active")
        if not isinstance(active, bool):
            raise InvalidArgumentError("active must be true or false")
        seeker = ActivationReconciler(get_db()).set_requester_active(seeker_id, active)
        return jsonify({"seeker_id": seeker.id, "is_active": seeker.is_active}), 200


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=5000, debug=False, use_reloader=False)
