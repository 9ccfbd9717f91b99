# smartaudit/routes/credit_routes.py
from flask import Blueprint, current_app, jsonify, request

from smartaudit.core import cost, tiers

bp = Blueprint("credits", __name__)


@bp.post("/estimate")
def estimate():
    """
    Credits: price an audit before submitting it
    ---
    tags:
      - Credits
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        required: true
        schema:
          type: object
          required:
            - contractCode
          properties:
            contractCode:
              type: string
              example: "pragma solidity ^0.8.0; contract A { mapping(address => uint) b; }"
            language:
              type: string
              default: "solidity"
            userId:
              type: string
              description: When given, the answer also carries the user's balance.
    responses:
      200:
        description: OK
      400:
        description: Missing contractCode
    """
    data = request.get_json(silent=True) or {}
    code = data.get("contractCode")
    if not isinstance(code, str):
        return jsonify({"ok": False, "error": "Missing 'contractCode'"}), 400

    language = (data.get("language") or data.get("contractLanguage") or "solidity").strip().lower()
    est = cost.estimate(code, language)
    out = {"ok": True, **est.to_dict()}

    user_id = (data.get("userId") or "").strip()
    if user_id:
        ledger = current_app.extensions["credit_ledger"]
        current = ledger.balance(user_id)
        out.update({
            "current": current,
            "hasEnough": current >= est.total_cost,
            "tier": ledger.plan_tier(user_id),
        })
    return jsonify(out), 200


@bp.get("/balance/<user_id>")
def balance(user_id: str):
    """
    Credits: balance and plan tier
    ---
    tags:
      - Credits
    parameters:
      - in: path
        name: user_id
        required: true
        type: string
    responses:
      200:
        description: OK
    """
    ledger = current_app.extensions["credit_ledger"]
    tier = ledger.plan_tier(user_id)
    return jsonify({
        "ok": True,
        "userId": user_id,
        "balance": ledger.balance(user_id),
        "totalEarned": ledger.total_earned(user_id),
        "tier": tier,
        "canCreatePrivateAudits": tiers.can_create_private_audits(tier),
    }), 200
