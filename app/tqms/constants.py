"""
Central constants for the TQMS application.
"""
from __future__ import annotations

# Document types
DOC_TYPE_PROCEDURE = "Procedure"
DOC_TYPE_MANUAL = "Manual"
DOC_TYPE_CHECKLIST = "Checklist"
DOC_TYPE_POLICY = "Policy"
VALID_DOC_TYPES = (DOC_TYPE_PROCEDURE, DOC_TYPE_MANUAL, DOC_TYPE_CHECKLIST, DOC_TYPE_POLICY)

# Draft -> InReview -> Active -> Obsolete
STATUS_DRAFT = "Draft"
STATUS_IN_REVIEW = "InReview"
STATUS_ACTIVE = "Active"
STATUS_OBSOLETE = "Obsolete"
VALID_STATUSES = (STATUS_DRAFT, STATUS_IN_REVIEW, STATUS_ACTIVE, STATUS_OBSOLETE)

INITIAL_VERSION = "0.1"

# Margin impact and revision risk share the same three levels
LEVEL_HIGH = "High"
LEVEL_MEDIUM = "Medium"
LEVEL_LOW = "Low"
VALID_MARGIN_IMPACTS = (LEVEL_HIGH, LEVEL_MEDIUM, LEVEL_LOW)
RISK_RANK = {LEVEL_HIGH: 3, LEVEL_MEDIUM: 2, LEVEL_LOW: 1}

# Actor recorded on system-driven history entries
SYSTEM_ACTOR = "SYSTEM"
AUTO_SYSTEM_ACTOR = "AUTO-SYSTEM"

EXTRACTION_STATUS_COMPLETED = "completed"
