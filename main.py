from flask import Flask, request, jsonify
from flask_cors import CORS
from reconciliation import build_engine
from reconciliation.config import Settings
from reconciliation.errors import ReconciliationError, http_status_for
import asyncio
import logging

settings = Settings.from_env()

# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = Flask(__name__)

# Enable CORS for all routes (dashboard and automation callers)
CORS(app)

# Initialize the engine (store chosen by DATABASE_URL)
engine = build_engine(settings)


def _error_response(error, status, label="failed"):
    return jsonify({"error": error, "status": label}), status


@app.route("/api", methods=["GET"])
def api_info():
    """API information endpoint"""
    return jsonify({
        "status": "ok",
        "message": "Team Pot Reconciliation API",
        "version": "1.0",
        "environment": settings.environment,
        "endpoints": {
            "compute_shares": "/compute_shares [POST]",
            "scan_compliance": "/scan_compliance [POST]",
            "resolve_daily_entry": "/resolve_daily_entry [POST]",
            "run_billing_pass": "/run_billing_pass [POST]",
            "offer_summary": "/offer_summary [POST]",
            "commission_timeline": "/commission_timeline [POST]",
            "ledger_summary": "/ledger_summary [POST]",
            "ledger_timeline": "/ledger_timeline [POST]",
            "health": "/health [GET]"
        }
    }), 200


@app.route("/health", methods=["GET"])
def health():
    """Health check for monitoring"""
    return jsonify({"status": "healthy"}), 200


def _handle(operation, name, allow_empty=False, success_status=lambda result: 200):
    """
    Run one engine operation on the request body and map errors to status codes.

    ReconciliationError carries its own status; KeyError/TypeError/ValueError
    from parsing are 400; anything else is 500 with a generic message.
    """
    input_data = request.get_json(force=True, silent=True)
    if input_data is None:
        if not allow_empty:
            return _error_response("No input data provided", 400)
        input_data = {}

    try:
        logger.info(f"Processing {name}")
        result = operation(input_data)
        if asyncio.iscoroutine(result):
            result = asyncio.run(result)
        return jsonify(result), success_status(result)

    except ReconciliationError as e:
        logger.error(f"{name} failed: {e}")
        return jsonify({"error": e.to_dict(), "status": "failed"}), e.http_status

    except (ValueError, KeyError, TypeError) as e:
        # Parsing errors (missing fields, invalid types, etc.)
        logger.error(f"Validation error in {name}: {str(e)}")
        return _error_response(f"Validation error: {str(e)}", 400, "validation_failed")

    except Exception as e:
        logger.error(f"Unexpected error in {name}: {str(e)}", exc_info=True)
        return _error_response("An unexpected error occurred during processing", 500)


@app.route("/compute_shares", methods=["POST"])
def compute_shares():
    """Team share and participant split for one daily entry"""
    return _handle(engine.compute_shares_from_dict, "compute_shares")


@app.route("/scan_compliance", methods=["POST"])
def scan_compliance():
    """Missing daily entries over the compliance window"""
    return _handle(engine.scan_compliance_from_dict, "scan_compliance", allow_empty=True)


def _resolution_status(result):
    if result["status"] == "resolved":
        return 201
    return http_status_for(result["error"]["code"])


@app.route("/resolve_daily_entry", methods=["POST"])
def resolve_daily_entry():
    """Record one day of revenue and ads spend for an offer"""
    return _handle(
        engine.resolve_daily_entry_from_dict, "resolve_daily_entry", success_status=_resolution_status
    )


@app.route("/run_billing_pass", methods=["POST"])
def run_billing_pass():
    """Charge due subscriptions, once per billing cycle"""
    return _handle(engine.run_billing_pass_from_dict, "run_billing_pass", allow_empty=True)


@app.route("/offer_summary", methods=["POST"])
def offer_summary():
    """Totals and per-participant earnings for an offer"""
    return _handle(engine.offer_summary_from_dict, "offer_summary")


@app.route("/commission_timeline", methods=["POST"])
def commission_timeline():
    """Revenue and commission per day or month across offers"""
    return _handle(engine.commission_timeline_from_dict, "commission_timeline")


@app.route("/ledger_summary", methods=["POST"])
def ledger_summary():
    """Income, expense and profit split over ledger transactions"""
    return _handle(engine.ledger_summary_from_dict, "ledger_summary", allow_empty=True)


@app.route("/ledger_timeline", methods=["POST"])
def ledger_timeline():
    """Ledger income and expense per day or month"""
    return _handle(engine.ledger_timeline_from_dict, "ledger_timeline", allow_empty=True)


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=settings.port, debug=False)
