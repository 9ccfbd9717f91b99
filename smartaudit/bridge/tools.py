# smartaudit/bridge/tools.py
"""
Tool surface for AI assistants (MCP-style).

Each tool takes a dict of arguments and returns markdown text. ``call_tool``
wraps the answer as ``{"content": [{"type": "text", "text": ...}]}`` and
turns any failure into the same shape with ``"isError": True``, so one bad
call never breaks the assistant session.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from smartaudit.client.view import AuditViewModel, COMPLETED, render

from .templates import SECURE_TEMPLATES, VULNERABILITY_EXPLANATIONS

logger = logging.getLogger(__name__)

BLOCKCHAINS = ["ethereum", "polygon", "bsc", "arbitrum", "optimism"]
DEFAULT_USER_ID = "mcp-client"

TOOLS: List[Dict[str, Any]] = [
    {
        "name": "audit_smart_contract",
        "description": "Audit a smart contract for security vulnerabilities, gas optimizations, and best practices",
        "inputSchema": {
            "type": "object",
            "properties": {
                "contractCode": {"type": "string", "description": "The smart contract code to audit"},
                "contractAddress": {"type": "string", "description": "Optional contract address if deployed"},
                "blockchain": {
                    "type": "string",
                    "description": "Blockchain network",
                    "enum": BLOCKCHAINS,
                    "default": "ethereum",
                },
                "language": {"type": "string", "description": "Contract language (detected when omitted)"},
            },
            "required": ["contractCode"],
        },
    },
    {
        "name": "get_audit_history",
        "description": "Get audit history for a user",
        "inputSchema": {
            "type": "object",
            "properties": {
                "userId": {"type": "string", "description": "User ID", "default": DEFAULT_USER_ID},
                "limit": {"type": "number", "default": 20, "minimum": 1, "maximum": 100},
            },
        },
    },
    {
        "name": "explain_vulnerability",
        "description": "Get a detailed explanation of a smart contract vulnerability class",
        "inputSchema": {
            "type": "object",
            "properties": {
                "vulnerability": {
                    "type": "string",
                    "enum": list(VULNERABILITY_EXPLANATIONS),
                },
            },
            "required": ["vulnerability"],
        },
    },
    {
        "name": "generate_secure_code",
        "description": "Generate secure smart contract code patterns for common use cases",
        "inputSchema": {
            "type": "object",
            "properties": {
                "pattern": {"type": "string", "enum": list(SECURE_TEMPLATES)},
                "features": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Additional features to include",
                    "default": [],
                },
            },
            "required": ["pattern"],
        },
    },
    {
        "name": "detect_contract_language",
        "description": "Detect the programming language of smart contract code",
        "inputSchema": {
            "type": "object",
            "properties": {"contractCode": {"type": "string"}},
            "required": ["contractCode"],
        },
    },
]


class ToolError(Exception):
    pass


# (language, markers), checked in order; markers match upper-cased code
_LANGUAGE_MARKERS = (
    ("solidity", ("PRAGMA SOLIDITY", "CONTRACT ", "FUNCTION ", "MODIFIER ")),
    ("rust", ("FN ", "STRUCT ", "IMPL ", "USE STD::")),
    ("move", ("MODULE ", "PUBLIC FUN ", "RESOURCE ")),
    ("cairo", ("%LANG STARKNET", "@CONTRACT_INTERFACE", "STORAGE_VAR")),
    ("vyper", ("@EXTERNAL", "@INTERNAL")),
)


def detect_contract_language(code: str) -> str:
    upper = (code or "").upper()
    for language, markers in _LANGUAGE_MARKERS:
        if any(m in upper for m in markers):
            return language
    if "DEF " in upper and "@" in upper:
        return "vyper"
    return "solidity"


def _require_str(args: Dict[str, Any], key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ToolError(f"'{key}' is required")
    return value


class AuditTools:
    """Binds the tools to one SmartAudit API wrapper and poller."""

    def __init__(self, api, poller, interval: float = 5.0, max_attempts: int = 60):
        self.api = api
        self.poller = poller
        self.interval = interval
        self.max_attempts = max_attempts

    async def audit_smart_contract(self, args: Dict[str, Any]) -> str:
        code = _require_str(args, "contractCode")
        address = args.get("contractAddress")
        blockchain = args.get("blockchain") or "ethereum"
        if blockchain not in BLOCKCHAINS:
            raise ToolError(f"Unsupported blockchain '{blockchain}'")
        language = args.get("language") or detect_contract_language(code)

        view = AuditViewModel(self.api, self.poller, interval=self.interval,
                              max_attempts=self.max_attempts)
        state = await view.run_audit(code, language, contract_address=address, network=blockchain)
        if state.phase != COMPLETED:
            raise ToolError(state.error or "Audit failed")

        return "\n".join([
            "# Smart Contract Audit Results",
            "",
            "## Contract Information",
            f"- **Address**: {address or 'Not deployed'}",
            f"- **Blockchain**: {blockchain}",
            f"- **Language**: {language.capitalize()}",
            f"- **Credits used**: {state.credits_used if state.credits_used is not None else 0}",
            "",
            render(state),
            "",
            "## Session ID",
            f"{state.session_id}",
            "",
            "Use the session ID to track this audit or share results with your team.",
        ])

    async def get_audit_history(self, args: Dict[str, Any]) -> str:
        user_id = args.get("userId") or DEFAULT_USER_ID
        items = await self.api.get_history(limit=args.get("limit") or 20, user_id=user_id)

        lines = ["# Audit History", "", f"Found {len(items)} previous audits:"]
        for i, audit in enumerate(items, 1):
            lines += [
                "",
                f"## {i}. Audit {audit.get('id')}",
                f"- **Contract**: {audit.get('contractSource') or 'Code-only audit'}",
                f"- **Language**: {audit.get('contractLanguage')}",
                f"- **Status**: {audit.get('status')}",
                f"- **Date**: {_date(audit.get('createdAt'))}",
            ]
            if audit.get("securityScore") is not None:
                lines.append(f"- **Security score**: {audit['securityScore']:g}/10")
        return "\n".join(lines)

    async def explain_vulnerability(self, args: Dict[str, Any]) -> str:
        name = _require_str(args, "vulnerability")
        try:
            return VULNERABILITY_EXPLANATIONS[name]
        except KeyError:
            raise ToolError(f"Unknown vulnerability '{name}'") from None

    async def generate_secure_code(self, args: Dict[str, Any]) -> str:
        pattern = _require_str(args, "pattern")
        features = args.get("features") or []
        if pattern not in SECURE_TEMPLATES:
            raise ToolError(f"Unknown pattern '{pattern}'")

        lines = [f"# Secure {pattern.replace('_', ' ').upper()} Code Template", ""]
        if features:
            lines += [f"**Features requested**: {', '.join(str(f) for f in features)}", ""]
        lines += [
            "```solidity",
            SECURE_TEMPLATES[pattern],
            "```",
            "",
            "**Deployment Checklist**:",
            "1. Test thoroughly on a testnet",
            "2. Get a professional security audit",
            "3. Verify all access controls",
            "4. Check for reentrancy in every external call",
        ]
        return "\n".join(lines)

    async def detect_contract_language(self, args: Dict[str, Any]) -> str:
        code = _require_str(args, "contractCode")
        language = detect_contract_language(code)
        return "\n".join([
            "# Language Detection",
            "",
            f"**Detected Language**: {language.capitalize()}",
            "",
            "Use this language with the `audit_smart_contract` tool.",
        ])

    async def call_tool(self, name: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        handler = getattr(self, name, None) if name in TOOL_NAMES else None
        try:
            if handler is None:
                raise ToolError(f"Unknown tool: {name}")
            text = await handler(args or {})
        except Exception as e:
            logger.warning("Tool %s failed: %s", name, e)
            return {"content": [{"type": "text", "text": f"Error: {e}"}], "isError": True}
        return {"content": [{"type": "text", "text": text}]}


TOOL_NAMES = frozenset(t["name"] for t in TOOLS)


def _date(value: Optional[str]) -> str:
    if not value:
        return "unknown"
    try:
        return datetime.fromisoformat(value.rstrip("Z")).date().isoformat()
    except ValueError:
        return value
