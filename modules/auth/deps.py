"""
Auth Module - Dependencies
===========================
FastAPI dependencies for operator identification.
Session handling lives in the surrounding back office; this service only
needs the acting operator's name for audit records and created_by columns.
"""

from typing import Optional

from fastapi import Header


def get_current_actor(x_actor: Optional[str] = Header(default=None)) -> str:
    """Operator name from the X-Actor header, 'system' when absent."""
    if not x_actor or not x_actor.strip():
        return "system"
    return x_actor.strip()[:100]
