"""
Constants for the batch-tracker application.

This module defines system-wide constants including:
- Storage location
- Quantities
- Compliance limits
- Provenance and corrective-action settings
- Query defaults
"""

from decimal import Decimal
from typing import FrozenSet

# ============================================================================
# Storage
# ============================================================================

DATABASE_FILENAME = "batch_tracker.db"

# ============================================================================
# Quantities
# ============================================================================

# Consumed and available quantities are stored as Numeric(10, 3)
QUANTITY_STEP = Decimal("0.001")
MAX_QUANTITY = Decimal("9999999.999")

# ============================================================================
# Compliance
# ============================================================================

# Minimum core temperature (degrees C) when a product defines none
DEFAULT_REQUIRED_TEMPERATURE = 72.0

# HACCP critical control point for thermal processing
THERMAL_CCP_CODE = "CCP3"

THERMAL_REASON_CODE = "THERMAL_PROCESS_NON_COMPLIANCE"
THERMAL_REASON_TEXT = "thermal-process non-compliance"

CORRECTIVE_ACTION_MAX_ATTEMPTS = 5

# ============================================================================
# Provenance
# ============================================================================

# production -> curing -> reception
MAX_PROVENANCE_DEPTH = 2

UNREGISTERED_SUPPLIER = "unregistered"
UNRESOLVABLE_SOURCE = "unresolvable source"

# ============================================================================
# Queries / Authorization
# ============================================================================

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 1000

ELEVATED_ROLES: FrozenSet[str] = frozenset({"ADMIN"})

DEFAULT_UNIT = "kg"
MAX_NOTES_LENGTH = 2000
