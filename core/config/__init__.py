# ============================================================================
# CONFIGURATION MODULE
# ============================================================================
# EPOCH: 2 - REPAIR COORDINATION
# STATUS: Core - Configuration and defaults
# PURPOSE: Centralized configuration management
# CREATED: 19 OCT 2026
# ============================================================================
"""
Configuration Module

Provides centralized configuration and defaults for the coordination layer.
"""

from core.config.defaults import (
    CassandraDefaults,
    CoordinationDefaults,
    Defaults,
    get_defaults,
    reset_defaults,
)

__all__ = [
    "CassandraDefaults",
    "CoordinationDefaults",
    "Defaults",
    "get_defaults",
    "reset_defaults",
]
