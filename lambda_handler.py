"""
AWS Lambda handler for the Team Pot Reconciliation API.

This is the production entry point for AWS Lambda deployments.
For local development, use main.py (Flask app) instead.
"""

import asyncio
import base64
import json
import logging

from reconciliation import build_engine
from reconciliation.config import Settings
from reconciliation.errors import ReconciliationError, http_status_for

settings = Settings.from_env()

# Configure logging
logger = logging.getLogger()
logger.setLevel(settings.log_level)

# Environment (dev, staging, prod)
ENVIRONMENT = settings.environment

# Initialize engine (reused across warm invocations)
engine = build_engine(settings)

# CORS headers for API Gateway
CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
}

# POST path -> (engine operation name, body may be empty)
OPERATIONS = {
    "/compute_shares": ("compute_shares_from_dict", False),
    "/scan_compliance": ("scan_compliance_from_dict", True),
    "/resolve_daily_entry": ("resolve_daily_entry_from_dict", False),
    "/run_billing_pass": ("run_billing_pass_from_dict", True),
    "/offer_summary": ("offer_summary_from_dict", False),
    "/commission_timeline": ("commission_timeline_from_dict", False),
    "/ledger_summary": ("ledger_summary_from_dict", True),
    "/ledger_timeline": ("ledger_timeline_from_dict", True),
}


def _response(status_code, payload):
    return {"statusCode": status_code, "headers": CORS_HEADERS, "body": json.dumps(payload)}


def lambda_handler(event, context):
    """
    Main Lambda entry point.

    Handles API Gateway events for:
    - GET /health, GET /api
    - POST to each path in OPERATIONS
    - OPTIONS (CORS preflight)
    """
    # Handle CORS preflight
    http_method = event.get("httpMethod") or event.get("requestContext", {}).get("http", {}).get("method", "")
    if http_method == "OPTIONS":
        return {"statusCode": 200, "headers": CORS_HEADERS, "body": ""}

    # Get path (supports both REST API and HTTP API formats)
    path = event.get("path") or event.get("rawPath", "")

    # Route to appropriate handler
    if path == "/health" and http_method == "GET":
        return handle_health()
    elif path == "/api" and http_method == "GET":
        return handle_api_info()
    elif path in OPERATIONS and http_method == "POST":
        return handle_operation(path, event)
    else:
        return _response(404, {"error": "Not found", "path": path})


def handle_health():
    """Health check endpoint."""
    return _response(200, {"status": "healthy", "environment": ENVIRONMENT})


def handle_api_info():
    """API information endpoint."""
    return _response(
        200,
        {
            "status": "ok",
            "message": "Team Pot Reconciliation API",
            "version": "1.0",
            "environment": ENVIRONMENT,
            "runtime": "AWS Lambda",
            "endpoints": {**{p: f"{p} [POST]" for p in OPERATIONS}, "health": "/health [GET]"},
        },
    )


def parse_body(event):
    """Request body as a dict, or None when there is none."""
    body = event.get("body") or ""
    if not isinstance(body, str):
        return body
    if not body:
        return None
    # Handle base64 encoded body (API Gateway)
    if event.get("isBase64Encoded"):
        body = base64.b64decode(body).decode("utf-8")
    return json.loads(body)


def handle_operation(path, event):
    """Run the engine operation mapped to `path` on the request body."""
    operation_name, allow_empty = OPERATIONS[path]
    try:
        input_data = parse_body(event)
        if input_data is None:
            if not allow_empty:
                return _response(400, {"error": "No input data provided", "status": "failed"})
            input_data = {}

        logger.info(f"Processing {path}")
        result = getattr(engine, operation_name)(input_data)
        if asyncio.iscoroutine(result):
            result = asyncio.run(result)

        status_code = 200
        if path == "/resolve_daily_entry":
            status_code = 201 if result["status"] == "resolved" else http_status_for(result["error"]["code"])
        return _response(status_code, result)

    except json.JSONDecodeError as e:
        logger.error(f"JSON parse error: {str(e)}")
        return _response(400, {"error": f"Invalid JSON: {str(e)}", "status": "failed"})

    except ReconciliationError as e:
        logger.error(f"{path} failed: {e}")
        return _response(e.http_status, {"error": e.to_dict(), "status": "failed"})

    except (ValueError, KeyError, TypeError) as e:
        # Validation errors from engine (missing fields, invalid types, etc.)
        logger.error(f"Validation error: {str(e)}")
        return _response(400, {"error": f"Validation error: {str(e)}", "status": "validation_failed"})

    except Exception as e:
        # Unexpected errors - log details but return generic message to avoid information disclosure
        logger.error(f"Unexpected processing error: {str(e)}", exc_info=True)
        return _response(500, {"error": "An unexpected error occurred during processing", "status": "failed"})
