# ============================================================================
# SCOPE: APPLICATION LAYER (Scheduling)
# Description: Application layer exports.
# ============================================================================
"""Application Layer - Scheduling.

Contains use cases, stateful services, ports (interfaces) and DTOs for the
appointment lifecycle.
"""
