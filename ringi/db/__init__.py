from .models import DecisionRecord
from .audit_db import DecisionAuditDB

__all__ = [
    "DecisionRecord",
    "DecisionAuditDB",
]
