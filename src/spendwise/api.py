"""
Spendwise - Flask REST API

RESTful API for the Spendwise personal finance tracker. Flask-Login handles
session authentication; every /api route except registration, login and
health requires a logged-in user and only touches that user's data.

Authentication:
- Registration, login, demo login, logout, session check

Resources:
- Transactions (CRUD + search)
- Recurring templates (CRUD, cancel, upcoming preview)
- Budgets and savings goals (CRUD, manual progress, summary)
- Analytics (overview, categories, trends, monthly report, upcoming recurring)
- Receipts (upload + scan, image download, link/unlink, rescan, delete)
- AI assistance (categorize, bulk categorize, insights, budget recommendations, chat)
- Background jobs (manual trigger, when enabled)

Responses: mutations return {"success", "message", ...payload}; reads return
the resource JSON directly. Errors map to 400 (validation), 401 (auth),
404 (not found), 409 (state conflict), 500 (unexpected) and 503 (AI provider
unavailable or not configured).

Author: Spendwise contributors
License: MIT
"""

import datetime
import functools
import logging
import secrets
from decimal import Decimal

from flask import Blueprint, Flask, current_app, jsonify, request, send_file, session
from flask.json.provider import DefaultJSONProvider
from flask_cors import CORS
from flask_login import LoginManager, UserMixin, current_user, login_required, login_user, logout_user

from .config import configure_logging, get_config
from .engine import build_engine
from .scheduler import build_scheduler

logger = logging.getLogger(__name__)


class CustomJSONProvider(DefaultJSONProvider):
    """Serialize Decimal as float and dates as ISO 8601."""

    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, datetime.datetime):
            return obj.isoformat()
        if isinstance(obj, datetime.date):
            # Append time to avoid UTC interpretation issues
            return obj.isoformat() + "T12:00:00"
        return super().default(obj)


api = Blueprint("api", __name__, url_prefix="/api")

# --- FLASK-LOGIN SETUP ---
login_manager = LoginManager()


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify(success=False, message="Authorization required. Please log in."), 401


class User(UserMixin):
    def __init__(self, id, username):
        self.id = id
        self.username = username


@login_manager.user_loader
def load_user(user_id):
    engine = current_app.extensions.get("spendwise")
    if not engine:
        return None
    user_data = engine.get_user(user_id)
    if user_data:
        return User(id=str(user_data["user_id"]), username=user_data["username"])
    return None


def get_engine():
    return current_app.extensions["spendwise"]


def check_engine(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        if not current_app.extensions.get("spendwise"):
            return jsonify({"success": False, "message": "Engine not initialized. Check the server log."}), 500
        return func(*args, **kwargs)
    return wrapper


def _user_id():
    return int(current_user.id)


def _status_for(message):
    """HTTP status for an engine failure message."""
    if "not found" in message:
        return 404
    if message.startswith("Cannot"):
        return 409
    if message.startswith("An error occurred"):
        return 500
    if message.startswith("AI "):
        return 503
    return 400


def _failure(message):
    return jsonify({"success": False, "message": message}), _status_for(message)


@api.errorhandler(ValueError)
def handle_value_error(error):
    return jsonify({"success": False, "message": str(error)}), 400


# =============================================================================
# AUTHENTICATION
# =============================================================================

@api.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok", "engine": bool(current_app.extensions.get("spendwise"))})


@api.route("/register", methods=["POST"])
@check_engine
def register_user_api():
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")
    email = data.get("email")
    if not all([username, password]) or len(password) < 8:
        return jsonify({"success": False, "message": "Username and a password of at least 8 characters are required."}), 400

    success, message, new_user_id = get_engine().register_user(username, password, email)
    if success:
        login_user(User(id=str(new_user_id), username=username))
        return jsonify({"success": True, "message": message, "user_id": new_user_id}), 201
    status_code = 409 if "exists" in message else 500
    return jsonify({"success": False, "message": message}), status_code


@api.route("/login", methods=["POST"])
@check_engine
def login_user_api():
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")
    if not all([username, password]):
        return jsonify({"success": False, "message": "Username and password are required."}), 400

    user_data, message = get_engine().login_user(username, password)
    if user_data:
        login_user(User(id=str(user_data["user_id"]), username=user_data["username"]))
        return jsonify({"success": True, "message": message, "user": user_data})
    return jsonify({"success": False, "message": message}), 401


@api.route("/demo_login", methods=["POST"])
@check_engine
def demo_login():
    """
    Create a throwaway demo user filled with sample data and log in as it.

    The demo user and all of its data are deleted on logout.
    """
    from .demo_data import seed_demo_data

    engine = get_engine()
    demo_username = f"demo_{secrets.token_hex(4)}"
    success, message, demo_user_id = engine.register_user(
        demo_username, secrets.token_urlsafe(16), f"{demo_username}@demo.spendwise.local"
    )
    if not success:
        return jsonify({"success": False, "message": message}), 500

    demo_info = seed_demo_data(engine, demo_user_id)
    login_user(User(id=str(demo_user_id), username=demo_username))
    session["is_demo"] = True
    session["demo_user_id"] = demo_user_id
    logger.info("[DEMO] Created demo user %s", demo_user_id)

    return jsonify({"success": True, "message": "Welcome to the Spendwise demo!", "demo_info": demo_info})


@api.route("/logout", methods=["POST"])
@login_required
def logout():
    if session.get("is_demo"):
        demo_user_id = session.pop("demo_user_id", None)
        session.pop("is_demo", None)
        if demo_user_id:
            get_engine().delete_user(demo_user_id)
    logout_user()
    return jsonify({"success": True, "message": "You have been logged out."})


@api.route("/check_session", methods=["GET"])
@login_required
def check_session():
    return jsonify({
        "logged_in": True,
        "username": current_user.username,
        "is_demo": session.get("is_demo", False),
    })


# =============================================================================
# TRANSACTIONS
# =============================================================================

@api.route("/transactions", methods=["GET"])
@check_engine
@login_required
def get_transactions():
    return jsonify(get_engine().get_transactions(_user_id(), request.args.to_dict()))


@api.route("/transactions", methods=["POST"])
@check_engine
@login_required
def create_transaction():
    data = request.get_json(silent=True) or {}
    if not data.get("type") or data.get("amount") is None:
        return jsonify({"success": False, "message": "Missing required fields: type and amount."}), 400

    success, result = get_engine().create_transaction(_user_id(), data)
    if success:
        return jsonify({"success": True, "message": "Transaction created.", "transaction": result}), 201
    return _failure(result)


@api.route("/transactions/search", methods=["GET"])
@check_engine
@login_required
def search_transactions():
    query = request.args.get("q", "").strip()
    if not query:
        return jsonify({"success": False, "message": "Search query 'q' is required."}), 400
    return jsonify(get_engine().search_transactions(_user_id(), query, request.args.to_dict()))


@api.route("/transactions/<int:transaction_id>", methods=["GET"])
@check_engine
@login_required
def get_transaction(transaction_id):
    txn = get_engine().get_transaction(_user_id(), transaction_id)
    if txn is None:
        return jsonify({"success": False, "message": "Transaction not found."}), 404
    return jsonify(txn)


@api.route("/transactions/<int:transaction_id>", methods=["PUT"])
@check_engine
@login_required
def update_transaction(transaction_id):
    data = request.get_json(silent=True) or {}
    success, result = get_engine().update_transaction(_user_id(), transaction_id, data)
    if success:
        return jsonify({"success": True, "message": "Transaction updated.", "transaction": result})
    return _failure(result)


@api.route("/transactions/<int:transaction_id>", methods=["DELETE"])
@check_engine
@login_required
def delete_transaction(transaction_id):
    success, message = get_engine().delete_transaction(_user_id(), transaction_id)
    if success:
        return jsonify({"success": True, "message": message})
    return _failure(message)


# =============================================================================
# RECURRING TRANSACTIONS
# =============================================================================

@api.route("/recurring", methods=["GET"])
@check_engine
@login_required
def get_recurring_list():
    status = request.args.get("status", "all")
    if status not in ("all", "active", "ended"):
        return jsonify({"success": False, "message": "Status must be 'all', 'active' or 'ended'."}), 400
    return jsonify(get_engine().get_recurring_list(_user_id(), status=status))


@api.route("/recurring", methods=["POST"])
@check_engine
@login_required
def create_recurring():
    data = request.get_json(silent=True) or {}
    if not data.get("frequency"):
        return jsonify({"success": False, "message": "Frequency is required."}), 400

    success, result = get_engine().create_recurring(_user_id(), data)
    if success:
        return jsonify({"success": True, "message": "Recurring transaction created.", "recurring": result}), 201
    return _failure(result)


@api.route("/recurring/<int:template_id>", methods=["GET"])
@check_engine
@login_required
def get_recurring(template_id):
    template = get_engine().get_recurring(_user_id(), template_id)
    if template is None:
        return jsonify({"success": False, "message": "Recurring transaction not found."}), 404
    return jsonify(template)


@api.route("/recurring/<int:template_id>", methods=["PUT"])
@check_engine
@login_required
def update_recurring(template_id):
    data = request.get_json(silent=True) or {}
    success, result = get_engine().update_recurring(_user_id(), template_id, data)
    if success:
        return jsonify({"success": True, "message": "Recurring transaction updated.", "recurring": result})
    return _failure(result)


@api.route("/recurring/<int:template_id>", methods=["DELETE"])
@check_engine
@login_required
def delete_recurring(template_id):
    success, message = get_engine().delete_recurring(_user_id(), template_id)
    if success:
        return jsonify({"success": True, "message": message})
    return _failure(message)


@api.route("/recurring/<int:template_id>/cancel", methods=["POST"])
@check_engine
@login_required
def cancel_recurring(template_id):
    success, result = get_engine().cancel_recurring(_user_id(), template_id)
    if success:
        return jsonify({"success": True, "message": "Recurring transaction cancelled.", "recurring": result})
    return _failure(result)


@api.route("/recurring/<int:template_id>/upcoming", methods=["GET"])
@check_engine
@login_required
def get_upcoming_instances(template_id):
    success, result = get_engine().get_upcoming_instances(
        _user_id(), template_id, count=request.args.get("count", 5)
    )
    if success:
        return jsonify(result)
    return _failure(result)


# =============================================================================
# BUDGETS & SAVINGS GOALS
# =============================================================================

@api.route("/budgets", methods=["GET"])
@check_engine
@login_required
def get_budgets():
    return jsonify(get_engine().get_budgets(_user_id(), request.args.to_dict()))


@api.route("/budgets", methods=["POST"])
@check_engine
@login_required
def create_budget():
    data = request.get_json(silent=True) or {}
    if data.get("amount") is None:
        return jsonify({"success": False, "message": "Missing required field: amount."}), 400

    success, result = get_engine().create_budget(_user_id(), data)
    if success:
        return jsonify({"success": True, "message": "Budget created.", "budget": result}), 201
    return _failure(result)


@api.route("/budgets/summary", methods=["GET"])
@check_engine
@login_required
def get_budget_summary():
    return jsonify(get_engine().get_budget_summary(_user_id()))


@api.route("/budgets/<int:budget_id>", methods=["GET"])
@check_engine
@login_required
def get_budget(budget_id):
    budget = get_engine().get_budget(_user_id(), budget_id)
    if budget is None:
        return jsonify({"success": False, "message": "Budget not found."}), 404
    return jsonify(budget)


@api.route("/budgets/<int:budget_id>", methods=["PUT"])
@check_engine
@login_required
def update_budget(budget_id):
    data = request.get_json(silent=True) or {}
    success, result = get_engine().update_budget(_user_id(), budget_id, data)
    if success:
        return jsonify({"success": True, "message": "Budget updated.", "budget": result})
    return _failure(result)


@api.route("/budgets/<int:budget_id>", methods=["DELETE"])
@check_engine
@login_required
def delete_budget(budget_id):
    success, message = get_engine().delete_budget(_user_id(), budget_id)
    if success:
        return jsonify({"success": True, "message": message})
    return _failure(message)


@api.route("/budgets/<int:budget_id>/progress", methods=["POST"])
@check_engine
@login_required
def add_budget_progress(budget_id):
    data = request.get_json(silent=True) or {}
    if data.get("amount") is None:
        return jsonify({"success": False, "message": "Missing required field: amount."}), 400

    success, result = get_engine().add_progress(_user_id(), budget_id, data["amount"])
    if success:
        return jsonify({"success": True, "message": "Progress added.", "budget": result})
    return _failure(result)


# =============================================================================
# ANALYTICS
# =============================================================================

@api.route("/analytics/overview", methods=["GET"])
@check_engine
@login_required
def analytics_overview():
    return jsonify(get_engine().get_overview(
        _user_id(), request.args.get("start_date"), request.args.get("end_date")
    ))


@api.route("/analytics/categories", methods=["GET"])
@check_engine
@login_required
def analytics_categories():
    txn_type = request.args.get("type", "expense")
    if txn_type not in ("income", "expense"):
        return jsonify({"success": False, "message": "Type must be 'income' or 'expense'."}), 400
    return jsonify(get_engine().get_category_breakdown(
        _user_id(), txn_type, request.args.get("start_date"), request.args.get("end_date")
    ))


@api.route("/analytics/trends", methods=["GET"])
@check_engine
@login_required
def analytics_trends():
    return jsonify(get_engine().get_trends(
        _user_id(),
        period=request.args.get("period", "monthly"),
        txn_type=request.args.get("type"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
    ))


@api.route("/analytics/monthly", methods=["GET"])
@check_engine
@login_required
def analytics_monthly():
    return jsonify(get_engine().get_monthly_report(
        _user_id(), request.args.get("year"), request.args.get("month")
    ))


@api.route("/analytics/upcoming", methods=["GET"])
@check_engine
@login_required
def analytics_upcoming():
    return jsonify(get_engine().get_upcoming_recurring(_user_id(), days=request.args.get("days", 30)))


# =============================================================================
# RECEIPTS
# =============================================================================

def _optional_int(value, name):
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid {name}") from None


@api.route("/receipts", methods=["POST"])
@check_engine
@login_required
def upload_receipt():
    upload = request.files.get("receipt")
    if upload is None:
        return jsonify({"success": False, "message": "Receipt file is required."}), 400
    transaction_id = _optional_int(request.form.get("transaction_id"), "transaction id")

    success, result = get_engine().upload_receipt(
        _user_id(), upload.filename, upload.read(), upload.mimetype, transaction_id=transaction_id
    )
    if success:
        return jsonify({"success": True, "message": "Receipt uploaded.", "receipt": result}), 201
    return _failure(result)


@api.route("/receipts", methods=["GET"])
@check_engine
@login_required
def get_receipts():
    receipts = get_engine().get_receipts(_user_id(), status=request.args.get("status"))
    return jsonify({"receipts": receipts, "count": len(receipts)})


@api.route("/receipts/<int:receipt_id>", methods=["GET"])
@check_engine
@login_required
def get_receipt(receipt_id):
    receipt = get_engine().get_receipt(_user_id(), receipt_id)
    if receipt is None:
        return jsonify({"success": False, "message": "Receipt not found."}), 404
    return jsonify(receipt)


@api.route("/receipts/<int:receipt_id>/image", methods=["GET"])
@check_engine
@login_required
def get_receipt_image(receipt_id):
    stored = get_engine().get_receipt_file(_user_id(), receipt_id)
    if stored is None:
        return jsonify({"success": False, "message": "Receipt not found."}), 404
    path, mime_type = stored
    return send_file(path, mimetype=mime_type)


@api.route("/receipts/<int:receipt_id>/link", methods=["POST"])
@check_engine
@login_required
def link_receipt(receipt_id):
    data = request.get_json(silent=True) or {}
    transaction_id = _optional_int(data.get("transaction_id"), "transaction id")
    if transaction_id is None:
        return jsonify({"success": False, "message": "Missing required field: transaction_id."}), 400

    success, result = get_engine().link_receipt(_user_id(), receipt_id, transaction_id)
    if success:
        return jsonify({"success": True, "message": "Receipt linked to transaction.", "receipt": result})
    return _failure(result)


@api.route("/receipts/<int:receipt_id>/unlink", methods=["POST"])
@check_engine
@login_required
def unlink_receipt(receipt_id):
    success, result = get_engine().unlink_receipt(_user_id(), receipt_id)
    if success:
        return jsonify({"success": True, "message": "Receipt unlinked.", "receipt": result})
    return _failure(result)


@api.route("/receipts/<int:receipt_id>/retry-scan", methods=["POST"])
@check_engine
@login_required
def retry_receipt_scan(receipt_id):
    success, result = get_engine().retry_receipt_scan(_user_id(), receipt_id)
    if success:
        return jsonify({"success": True, "message": "Receipt scanned again.", "receipt": result})
    return _failure(result)


@api.route("/receipts/<int:receipt_id>", methods=["DELETE"])
@check_engine
@login_required
def delete_receipt(receipt_id):
    success, message = get_engine().delete_receipt(_user_id(), receipt_id)
    if success:
        return jsonify({"success": True, "message": message})
    return _failure(message)


# =============================================================================
# AI ASSISTANCE
# =============================================================================

@api.route("/ai/categorize", methods=["POST"])
@check_engine
@login_required
def ai_categorize():
    data = request.get_json(silent=True) or {}
    return jsonify(get_engine().categorize_description(data.get("description"), data.get("type", "expense")))


@api.route("/ai/bulk-categorize", methods=["POST"])
@check_engine
@login_required
def ai_bulk_categorize():
    success, result = get_engine().bulk_categorize(_user_id())
    if success:
        return jsonify({"success": True, **result})
    return _failure(result)


@api.route("/ai/insights", methods=["POST"])
@check_engine
@login_required
def ai_insights():
    data = request.get_json(silent=True) or {}
    success, result = get_engine().get_financial_insights(
        _user_id(), data.get("start_date"), data.get("end_date")
    )
    if success:
        return jsonify(result)
    return _failure(result)


@api.route("/ai/budget-recommendations", methods=["POST"])
@check_engine
@login_required
def ai_budget_recommendations():
    data = request.get_json(silent=True) or {}
    success, result = get_engine().get_budget_recommendations(_user_id(), data.get("monthly_income"))
    if success:
        return jsonify({"recommendations": result})
    return _failure(result)


@api.route("/ai/chat", methods=["POST"])
@check_engine
@login_required
def ai_chat():
    data = request.get_json(silent=True) or {}
    success, result = get_engine().chat(_user_id(), data.get("message"))
    if success:
        return jsonify(result)
    return _failure(result)


# =============================================================================
# BACKGROUND JOBS
# =============================================================================

@api.route("/jobs/<name>", methods=["POST"])
@check_engine
@login_required
def run_job(name):
    if not current_app.config.get("ENABLE_JOB_ENDPOINTS"):
        return jsonify({"success": False, "message": "Job endpoints are disabled."}), 404

    scheduler = current_app.extensions["spendwise_scheduler"]
    if name not in scheduler.job_names:
        return jsonify({"success": False, "message": f"Job '{name}' not found."}), 404

    summary = scheduler.run_job(name)
    if summary is None:
        return jsonify({"success": False, "message": f"Job '{name}' failed. Check the server log."}), 500
    return jsonify({"success": True, "message": f"Job '{name}' finished.", "summary": summary})


# =============================================================================
# APPLICATION FACTORY
# =============================================================================

def create_app(config=None, engine=None):
    """
    Build the Flask application.

    Args:
        config (dict, optional): Overrides on top of environment settings
        engine (FinanceEngine, optional): Pre-built engine (tests pass their own)

    Returns:
        Flask: Configured app. The engine is in app.extensions['spendwise'] and
               the job scheduler in app.extensions['spendwise_scheduler'].
    """
    settings = get_config(**(config or {}))
    configure_logging(settings["LOG_LEVEL"])

    app = Flask(__name__)
    app.json = CustomJSONProvider(app)
    app.config.update(settings)

    CORS(app, supports_credentials=True, origins=settings["CORS_ORIGINS"])

    try:
        if engine is None:
            engine = build_engine(settings)
        engine.initialize_database()
    except Exception:
        logger.exception("[API] FATAL: Could not initialize the finance engine")
        engine = None

    app.extensions["spendwise"] = engine
    if engine is not None:
        scheduler = build_scheduler(engine, engine.notifier, settings)
        app.extensions["spendwise_scheduler"] = scheduler
        if settings["ENABLE_SCHEDULER"]:
            scheduler.start()

    login_manager.init_app(app)
    app.register_blueprint(api)
    return app
