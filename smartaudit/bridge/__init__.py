# smartaudit/bridge/__init__.py
# Assistant-facing tools; thin callers of the client layer.
from .tools import TOOLS, AuditTools, detect_contract_language

__all__ = ["TOOLS", "AuditTools", "detect_contract_language"]
