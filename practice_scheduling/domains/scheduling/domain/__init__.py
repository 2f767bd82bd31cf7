# ============================================================================
# SCOPE: DOMAIN LAYER (Scheduling)
# Description: Entities, value objects and pure policy functions.
# ============================================================================
