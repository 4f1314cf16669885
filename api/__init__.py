# ============================================================================
# API MODULE
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - FastAPI routes
# PURPOSE: HTTP diagnostics for coordination state
# CREATED: 19 OCT 2026
# ============================================================================
"""
API Module

FastAPI routes for the repair coordinator.
"""

from .routes import router, set_services

__all__ = [
    "router",
    "set_services",
]
