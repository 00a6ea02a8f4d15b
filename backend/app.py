import os
import re
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from bson import ObjectId
from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_jwt_extended import JWTManager, get_jwt, get_jwt_identity, jwt_required
from flask_pymongo import PyMongo
from werkzeug.middleware.proxy_fix import ProxyFix

from credentials import (
    DEFAULT_BCRYPT_ROUNDS,
    authenticate_user,
    issue_token,
    register_user,
)
from errors import ApiError, NotFound
from orders import mark_delivered, place_order
from query_filters import (
    FLASH_SALE_FILTER,
    TOP_RATED_FILTER,
    build_order_filter,
    build_product_filter,
)
from storage import ORDERS, PRODUCTS, DocumentStore, parse_object_id

load_dotenv()

DEFAULT_MONGO_URI = "mongodb://localhost:27017/trenzyshirt"
DEFAULT_DB_NAME = "trenzyshirt"

duration_pattern = re.compile(r"^\s*(\d+)\s*([smhd]?)\s*$", re.IGNORECASE)
duration_units = {"": 1, "s": 1, "m": 60, "h": 3600, "d": 86400}


def parse_expires_in(value: Optional[str], default: str = "1h") -> timedelta:
    """Parse token lifetimes written as ``3600``, ``15m``, ``1h`` or ``7d``."""
    candidate = str(value or "").strip() or default
    match = duration_pattern.match(candidate)
    if not match:
        raise ValueError(f"Unsupported token lifetime: {candidate!r}")
    amount, unit = match.groups()
    return timedelta(seconds=int(amount) * duration_units[unit.lower()])


def serialize_value(value):
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        # stored datetimes come back naive; both forms are UTC
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return f"{value.isoformat()}Z"
    if isinstance(value, dict):
        return {key: serialize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    return value


def serialize_document(document: Optional[Dict]):
    if not document:
        return None
    return {
        key: serialize_value(value)
        for key, value in document.items()
        if key != "password"
    }


def read_json_object() -> Dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def success_response(message: str, result=None, status_code: int = 200, **extra):
    payload = {"success": True, "message": message}
    if result is not None:
        payload["result"] = result
    payload.update(extra)
    return jsonify(payload), status_code


def error_response(error: ApiError):
    return jsonify(error.to_payload()), error.status_code


def create_app(config: Optional[Dict] = None, store: Optional[DocumentStore] = None) -> Flask:
    """Create and configure the Flask application.

    ``store`` lets callers hand in an already built ``DocumentStore``; when it
    is omitted one is created from ``MONGO_URI`` through Flask-PyMongo.
    """
    app = Flask(__name__)

    trusted_proxy_hops_raw = os.getenv("TRUSTED_PROXY_HOPS", "1")
    try:
        trusted_proxy_hops = max(0, int(trusted_proxy_hops_raw))
    except (TypeError, ValueError):
        trusted_proxy_hops = 1
    if trusted_proxy_hops:
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=trusted_proxy_hops,
            x_proto=trusted_proxy_hops,
            x_host=trusted_proxy_hops,
            x_port=trusted_proxy_hops,
        )

    # --- Configuration ---
    app.config["JWT_SECRET_KEY"] = os.getenv("JWT_SECRET", "change-me-in-production")
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = parse_expires_in(os.getenv("EXPIRES_IN"))
    app.config["MONGO_URI"] = os.getenv("MONGODB_URI", DEFAULT_MONGO_URI) or DEFAULT_MONGO_URI
    app.config["MONGO_DBNAME"] = os.getenv("MONGODB_DB", DEFAULT_DB_NAME) or DEFAULT_DB_NAME
    app.config["BCRYPT_ROUNDS"] = int(
        os.getenv("BCRYPT_ROUNDS", str(DEFAULT_BCRYPT_ROUNDS))
    )
    if config:
        app.config.update(config)

    # --- Initialize extensions ---
    allowed_origins = []
    cors_extra = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if cors_extra:
        for origin in cors_extra.split(","):
            trimmed = origin.strip()
            if trimmed:
                allowed_origins.append(trimmed)

    CORS(app, origins=allowed_origins or "*")

    jwt = JWTManager(app)

    @jwt.unauthorized_loader
    def missing_token(reason: str):
        return jsonify({"success": False, "message": reason}), 401

    @jwt.invalid_token_loader
    def invalid_token(reason: str):
        return jsonify({"success": False, "message": reason}), 422

    @jwt.expired_token_loader
    def expired_token(_jwt_header, _jwt_payload):
        return jsonify({"success": False, "message": "Token has expired"}), 401

    if store is None:
        mongo = PyMongo(app)
        db = mongo.db if mongo.db is not None else mongo.cx[app.config["MONGO_DBNAME"]]
        store = DocumentStore(db)
    store.ensure_indexes()
    app.extensions["document_store"] = store

    # --- Error handlers ---

    @app.errorhandler(404)
    def api_not_found(_error):
        return jsonify({"success": False, "message": "Api Not Found"}), 404

    @app.errorhandler(405)
    def api_method_not_found(_error):
        return jsonify({"success": False, "message": "Api Not Found"}), 405

    @app.errorhandler(500)
    def internal_server_error(error):
        app.logger.error("Unhandled error: %s", getattr(error, "original_exception", error))
        return jsonify({"success": False, "message": "Internal server error"}), 500

    # --- ROUTES ---

    @app.route("/", methods=["GET"])
    def server_status():
        return jsonify(
            {
                "message": "Server is running smoothly",
                "timestamp": serialize_value(datetime.now(timezone.utc)),
            }
        )

    @app.route("/health")
    def health():
        return {"status": "ok"}, 200

    # Auth
    @app.route("/api/v1/register", methods=["POST"])
    def register():
        payload = read_json_object()
        try:
            register_user(
                store,
                payload.get("name"),
                payload.get("email"),
                payload.get("password"),
                rounds=app.config["BCRYPT_ROUNDS"],
            )
        except ApiError as exc:
            return error_response(exc)

        return success_response("User registered successfully", status_code=201)

    @app.route("/api/v1/login", methods=["POST"])
    def login():
        payload = read_json_object()
        try:
            user = authenticate_user(store, payload.get("email"), payload.get("password"))
        except ApiError as exc:
            if exc.status_code >= 500:
                app.logger.warning("Login failed on storage: %s", getattr(exc, "reason", exc))
            return error_response(exc)

        token = issue_token(user)
        return success_response("Login successful", token=token)

    @app.route("/api/v1/me", methods=["GET"])
    @jwt_required()
    def current_user():
        claims = get_jwt()
        profile = {
            "email": get_jwt_identity(),
            "name": claims.get("name", ""),
            "role": claims.get("role"),
        }
        return success_response("Current user fetched successfully", profile)

    # Products
    @app.route("/products", methods=["POST"])
    def create_product():
        payload = read_json_object()
        payload.pop("_id", None)
        try:
            inserted_id = store.insert_one(PRODUCTS, payload)
        except ApiError as exc:
            return error_response(exc)

        return success_response(
            "Product created successfully", {"insertedId": inserted_id}, 201
        )

    def respond_with_products(query: Dict, message: str):
        try:
            product_documents = store.find(PRODUCTS, query)
        except ApiError as exc:
            return error_response(exc)
        return success_response(
            message, [serialize_document(document) for document in product_documents]
        )

    @app.route("/products", methods=["GET"])
    def list_products():
        return respond_with_products({}, "All Product fetched successfully")

    @app.route("/products/filter", methods=["GET"])
    def filter_products():
        try:
            query = build_product_filter(request.args)
        except ApiError as exc:
            return error_response(exc)
        return respond_with_products(query, "Query Product fetched successfully")

    @app.route("/products/flash-sale", methods=["GET"])
    def flash_sale_products():
        return respond_with_products(
            FLASH_SALE_FILTER, "Flash sale products fetched successfully"
        )

    @app.route("/products/top-rated", methods=["GET"])
    def top_rated_products():
        return respond_with_products(
            TOP_RATED_FILTER, "Top rated products fetched successfully"
        )

    @app.route("/products/<product_id>", methods=["GET"])
    def get_product(product_id: str):
        try:
            object_id = parse_object_id(product_id, "product")
            product_document = store.find_one(PRODUCTS, {"_id": object_id})
            if not product_document:
                raise NotFound("product")
        except ApiError as exc:
            return error_response(exc)

        return success_response(
            "Product fetched successfully", serialize_document(product_document)
        )

    @app.route("/products/<product_id>", methods=["PUT", "PATCH"])
    def update_product(product_id: str):
        payload = read_json_object()
        payload.pop("_id", None)
        try:
            object_id = parse_object_id(product_id, "product")
            if payload:
                product_document = store.find_one_and_update(
                    PRODUCTS, {"_id": object_id}, {"$set": payload}
                )
            else:
                product_document = store.find_one(PRODUCTS, {"_id": object_id})
            if not product_document:
                raise NotFound("product")
        except ApiError as exc:
            return error_response(exc)

        return success_response(
            "Product updated successfully", serialize_document(product_document)
        )

    @app.route("/products/<product_id>", methods=["DELETE"])
    def delete_product(product_id: str):
        try:
            object_id = parse_object_id(product_id, "product")
            product_document = store.find_one_and_delete(PRODUCTS, {"_id": object_id})
            if not product_document:
                raise NotFound("product")
        except ApiError as exc:
            return error_response(exc)

        return success_response(
            "Product removed successfully", serialize_document(product_document)
        )

    # Orders
    @app.route("/orders", methods=["POST"])
    def create_order():
        payload = read_json_object()
        try:
            order_document = place_order(store, payload)
        except ApiError as exc:
            return error_response(exc)

        return success_response(
            "Order placed successfully", serialize_document(order_document), 201
        )

    @app.route("/orders", methods=["GET"])
    def list_orders():
        try:
            query = build_order_filter(request.args)
            order_documents = store.find(ORDERS, query)
        except ApiError as exc:
            return error_response(exc)

        return success_response(
            "Orders fetched successfully",
            [serialize_document(document) for document in order_documents],
        )

    @app.route("/orders/<order_id>", methods=["GET"])
    def get_order(order_id: str):
        try:
            object_id = parse_object_id(order_id, "order")
            order_document = store.find_one(ORDERS, {"_id": object_id})
            if not order_document:
                raise NotFound("order")
        except ApiError as exc:
            return error_response(exc)

        return success_response(
            "Order fetched successfully", serialize_document(order_document)
        )

    @app.route("/orders/<order_id>/status", methods=["PATCH", "PUT"])
    def deliver_order(order_id: str):
        try:
            order_document = mark_delivered(store, order_id)
        except ApiError as exc:
            return error_response(exc)

        return success_response(
            "Order status updated successfully", serialize_document(order_document)
        )

    @app.route("/orders/<order_id>", methods=["DELETE"])
    def delete_order(order_id: str):
        try:
            object_id = parse_object_id(order_id, "order")
            order_document = store.find_one_and_delete(ORDERS, {"_id": object_id})
            if not order_document:
                raise NotFound("order")
        except ApiError as exc:
            return error_response(exc)

        return success_response(
            "Order deleted successfully", serialize_document(order_document)
        )

    return app


if __name__ == "__main__":
    app = create_app()
    port = int(os.environ.get("PORT", 5000))
    app.logger.info("Server is running on http://localhost:%s", port)
    app.run(host="0.0.0.0", port=port)
