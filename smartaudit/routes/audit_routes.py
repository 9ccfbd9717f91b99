# smartaudit/routes/audit_routes.py
import logging
from datetime import timedelta

from flask import Blueprint, current_app, jsonify, request

from smartaudit.models.session import COMPLETED
from smartaudit.services.credits import InsufficientCredits, PlanRestricted
from smartaudit.services.orchestrator import SessionNotFound

bp = Blueprint("audit", __name__)  # prefix applied at registration in smartaudit/__init__.py
logger = logging.getLogger(__name__)

# --- Local helpers ---

def _as_bool(v) -> bool:
    return str(v).lower() in ("1", "true", "yes", "on")

def _orchestrator():
    return current_app.extensions["audit_orchestrator"]

def _not_found(session_id):
    return jsonify({"ok": False, "error": f"Session {session_id} not found"}), 404


@bp.post("/sessions")
def create_session():
    """
    Audit: create a session and queue its analysis
    ---
    tags:
      - Audit
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          properties:
            contractCode:
              type: string
              description: Source to audit. Required unless contractAddress is given.
              example: "pragma solidity ^0.8.0; contract Vault { mapping(address => uint) b; }"
            contractLanguage:
              type: string
              default: "solidity"
            contractAddress:
              type: string
              description: Deployed contract; its verified source is fetched from Etherscan.
            network:
              type: string
              default: "ethereum"
            contractSource:
              type: string
              description: Origin tag (code-only, github, ...).
              default: "code-only"
            analysisType:
              type: string
              default: "security"
            isPublic:
              type: boolean
              default: true
            title:
              type: string
            description:
              type: string
            tags:
              type: array
              items:
                type: string
            userId:
              type: string
              description: Authenticated user to charge; anonymous sessions are free.
    responses:
      202:
        description: Accepted (analysis queued)
      400:
        description: Missing or invalid fields
      402:
        description: Insufficient credits
      403:
        description: Plan upgrade required
      501:
        description: Task not available
      503:
        description: Queue unavailable
    """
    data = request.get_json(silent=True) or {}
    code = data.get("contractCode")
    language = (data.get("contractLanguage") or data.get("language") or "solidity").strip().lower()
    address = (data.get("contractAddress") or "").strip()
    source = (data.get("contractSource") or "code-only").strip()
    user_id = (data.get("userId") or request.headers.get("X-User-ID") or "").strip() or None
    tags = data.get("tags") or []

    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        return jsonify({"ok": False, "error": "'tags' must be a list of strings"}), 400

    if (not isinstance(code, str) or not code.strip()) and address:
        from smartaudit.services.source_fetcher import SourceFetchError, fetch_verified_source
        try:
            fetched = fetch_verified_source(
                address,
                network=data.get("network") or "ethereum",
                api_key=current_app.config.get("ETHERSCAN_API_KEY"),
            )
        except SourceFetchError as e:
            return jsonify({"ok": False, "error": str(e)}), 400
        code = fetched["source"]
        language = fetched["language"]
        source = address.lower()

    if not isinstance(code, str) or not code.strip():
        return jsonify({"ok": False, "error": "Missing 'contractCode' or 'contractAddress'"}), 400

    # Deferred import of the task
    try:
        from smartaudit.tasks.audit_tasks import analyze_session
    except Exception:
        return jsonify({"ok": False, "error": "Task 'audit.analyze' not available"}), 501

    orch = _orchestrator()
    try:
        session = orch.create_session(
            code,
            contract_language=language,
            contract_source=source,
            analysis_type=(data.get("analysisType") or "security").strip().lower(),
            public_visibility=_as_bool(data.get("isPublic", True)),
            user_id=user_id,
            public_title=data.get("title"),
            public_description=data.get("description"),
            tags=tags,
        )
    except InsufficientCredits as e:
        return jsonify({
            "ok": False,
            "error": str(e),
            "required": e.required,
            "available": e.available,
        }), 402
    except PlanRestricted as e:
        return jsonify({"ok": False, "error": str(e), "planRequired": e.plan_required}), 403

    try:
        async_res = analyze_session.delay(session.id)
    except Exception as e:
        logger.error("Could not enqueue analysis for %s: %s", session.id, e)
        orch.fail_session(session.id, "Could not queue analysis")
        return jsonify({"ok": False, "error": "Analysis queue unavailable", "sessionId": session.id}), 503

    return jsonify({
        "ok": True,
        "success": True,
        "sessionId": session.id,
        "sessionKey": session.session_key,
        "status": session.status,
        "creditsUsed": session.credits_used,
        "taskId": getattr(async_res, "id", None),
    }), 202


@bp.get("/status/<session_id>")
def status(session_id: str):
    """
    Audit: session status ({status, report?, error?})
    ---
    tags:
      - Audit
    parameters:
      - in: path
        name: session_id
        required: true
        type: string
    responses:
      200:
        description: OK
      404:
        description: Not found
    """
    try:
        view = _orchestrator().status_view(session_id)
    except SessionNotFound:
        return _not_found(session_id)
    return jsonify({"ok": True, "success": True, "sessionId": session_id, **view}), 200


@bp.get("/results/<session_id>")
def results(session_id: str):
    """
    Audit: stored result and parsed findings
    ---
    tags:
      - Audit
    parameters:
      - in: path
        name: session_id
        required: true
        type: string
    responses:
      200:
        description: OK
      404:
        description: Not found
      409:
        description: Session not completed yet
    """
    try:
        session, result, vulns = _orchestrator().result_view(session_id)
    except SessionNotFound:
        return _not_found(session_id)

    if session.status != COMPLETED or result is None:
        return jsonify({
            "ok": False,
            "error": "Result not available",
            "status": session.status,
        }), 409

    return jsonify({
        "ok": True,
        "session": session.to_dict(),
        "result": result.to_dict(),
        "vulnerabilities": [v.to_dict() for v in vulns],
        "parsed": bool(vulns),
    }), 200


@bp.get("/history/<user_id>")
def history(user_id: str):
    """
    Audit: a user's sessions, newest first
    ---
    tags:
      - Audit
    parameters:
      - in: path
        name: user_id
        required: true
        type: string
      - in: query
        name: limit
        required: false
        type: integer
        default: 20
    responses:
      200:
        description: OK
    """
    max_limit = current_app.config.get("HISTORY_LIMIT", 50)
    try:
        limit = int(request.args.get("limit", 20))
    except ValueError:
        limit = 20
    limit = min(max(1, limit), max_limit)

    items = []
    for s in _orchestrator().history(user_id, limit=limit):
        item = s.to_dict()
        if s.result is not None:
            item["vulnerabilityCount"] = s.result.vulnerability_count
            item["securityScore"] = s.result.security_score
        items.append(item)
    return jsonify({"ok": True, "items": items}), 200


@bp.post("/sessions/<session_id>/cancel")
def cancel(session_id: str):
    """
    Audit: cancel a session (the external analysis job is not interrupted)
    ---
    tags:
      - Audit
    parameters:
      - in: path
        name: session_id
        required: true
        type: string
    responses:
      200:
        description: OK (cancelled false when already terminal)
      404:
        description: Not found
    """
    orch = _orchestrator()
    try:
        cancelled = orch.cancel_session(session_id)
        current = orch.status_view(session_id)["status"]
    except SessionNotFound:
        return _not_found(session_id)
    return jsonify({"ok": True, "cancelled": cancelled, "status": current}), 200


@bp.post("/recover")
def recover():
    """
    Audit: fail sessions stuck in analyzing
    ---
    tags:
      - Audit
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        required: false
        schema:
          type: object
          properties:
            minutes:
              type: integer
              description: Age threshold (defaults to STUCK_SESSION_MINUTES).
            contractSource:
              type: string
    responses:
      200:
        description: OK
    """
    data = request.get_json(silent=True) or {}
    try:
        minutes = int(data.get("minutes") or current_app.config["STUCK_SESSION_MINUTES"])
    except (TypeError, ValueError):
        return jsonify({"ok": False, "error": "'minutes' must be an integer"}), 400

    recovered = _orchestrator().recover_stuck_sessions(
        timedelta(minutes=minutes), source=data.get("contractSource")
    )
    return jsonify({"ok": True, "recovered": recovered,
                    "message": f"Recovered {recovered} stuck sessions"}), 200
