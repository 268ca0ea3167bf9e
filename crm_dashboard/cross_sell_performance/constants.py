# crm_dashboard/cross_sell_performance/constants.py
"""
Constants for Cross-Sell Performance Module

Centralized configuration for:
- Pipeline stage order and funnel groups
- Mandate / target type vocabularies
- Status-type filter definitions
- Tier classification
- Fiscal month labels
"""

import os as _os

# =====================================================================
# PIPELINE STAGES
# =====================================================================

STAGE_LISTED = "Listed"
STAGE_PRE_APPOINTMENT = "Pre-Appointment Prep Done"
STAGE_DISCOVERY_MEETING = "Discovery Meeting Done"
STAGE_REQUIREMENT_GATHERING = "Requirement Gathering Done"
STAGE_SOLUTION_PROPOSAL = "Solution Proposal Made"
STAGE_SOW_HANDSHAKE = "SOW Handshake Done"
STAGE_FINAL_PROPOSAL = "Final Proposal Done"
STAGE_COMMERCIAL_AGREED = "Commercial Agreed"
STAGE_CLOSED_WON = "Closed Won"
STAGE_DROPPED = "Dropped"

# Ordered stage list ending in the two terminal stages
PIPELINE_STAGES = [
    STAGE_LISTED,
    STAGE_PRE_APPOINTMENT,
    STAGE_DISCOVERY_MEETING,
    STAGE_REQUIREMENT_GATHERING,
    STAGE_SOLUTION_PROPOSAL,
    STAGE_SOW_HANDSHAKE,
    STAGE_FINAL_PROPOSAL,
    STAGE_COMMERCIAL_AGREED,
    STAGE_CLOSED_WON,
    STAGE_DROPPED,
]

TERMINAL_STAGES = [STAGE_CLOSED_WON, STAGE_DROPPED]

# Conversion table rows (Dropped is a column, never a row)
CONVERSION_STAGES = [s for s in PIPELINE_STAGES if s != STAGE_DROPPED]

# =====================================================================
# FUNNEL GROUPS
# =====================================================================

TOFU_STAGES = [
    STAGE_LISTED,
    STAGE_PRE_APPOINTMENT,
    STAGE_DISCOVERY_MEETING,
    STAGE_REQUIREMENT_GATHERING,
]
MOFU_STAGES = [
    STAGE_SOLUTION_PROPOSAL,
    STAGE_SOW_HANDSHAKE,
    STAGE_FINAL_PROPOSAL,
]
BOFU_STAGES = [STAGE_COMMERCIAL_AGREED]

# Insertion order is the display order
FUNNEL_GROUPS = {
    "tofu": TOFU_STAGES,
    "mofu": MOFU_STAGES,
    "bofu": BOFU_STAGES,
    "closed_won": [STAGE_CLOSED_WON],
    "dropped": [STAGE_DROPPED],
}

# Weekly activity metrics count transitions INTO these stages
MEETING_DONE_STAGE = STAGE_DISCOVERY_MEETING
PROPOSAL_MADE_STAGE = STAGE_SOLUTION_PROPOSAL

# =====================================================================
# MANDATES & TARGETS
# =====================================================================

MANDATE_NEW_ACQUISITION = "New Acquisition"
MANDATE_NEW_CROSS_SELL = "New Cross Sell"
MANDATE_EXISTING = "Existing"

MANDATE_TYPES = [MANDATE_NEW_ACQUISITION, MANDATE_NEW_CROSS_SELL, MANDATE_EXISTING]

TARGET_NEW_CROSS_SELL = "new_cross_sell"
TARGET_EXISTING = "existing"

TARGET_TYPES = [TARGET_NEW_CROSS_SELL, TARGET_EXISTING]

# =====================================================================
# STATUS-TYPE FILTERS
# =====================================================================

FILTER_EXISTING = "Existing"
FILTER_ALL_CROSS_SELL = "All Cross Sell"
FILTER_CROSS_SELL_AND_EXISTING = "All Cross Sell + Existing"
FILTER_NEW_ACQUISITIONS = "New Acquisitions"

# filter -> (include new_cross_sell targets, mandate types for existing-type targets)
STATUS_TYPE_TARGET_RULES = {
    FILTER_EXISTING: (False, {MANDATE_EXISTING}),
    FILTER_ALL_CROSS_SELL: (True, {MANDATE_NEW_CROSS_SELL}),
    FILTER_CROSS_SELL_AND_EXISTING: (True, {MANDATE_NEW_CROSS_SELL, MANDATE_EXISTING}),
    FILTER_NEW_ACQUISITIONS: (False, {MANDATE_NEW_ACQUISITION}),
}

# filter -> mandate types whose achieved values count
STATUS_TYPE_MANDATE_TYPES = {
    FILTER_EXISTING: {MANDATE_EXISTING},
    FILTER_ALL_CROSS_SELL: {MANDATE_NEW_CROSS_SELL},
    FILTER_CROSS_SELL_AND_EXISTING: {MANDATE_NEW_CROSS_SELL, MANDATE_EXISTING},
    FILTER_NEW_ACQUISITIONS: {MANDATE_NEW_ACQUISITION},
}

STATUS_TYPE_FILTERS = list(STATUS_TYPE_TARGET_RULES.keys())
DEFAULT_STATUS_TYPE = FILTER_CROSS_SELL_AND_EXISTING

# =====================================================================
# TIER CLASSIFICATION
# =====================================================================

TIER_1 = "Tier 1"
TIER_2 = "Tier 2"
TIERS = [TIER_1, TIER_2]

# Strictly greater than 1 crore -> Tier 1
TIER1_ACHIEVED_THRESHOLD = 10_000_000

# =====================================================================
# FISCAL CALENDAR
# =====================================================================

FY_START_MONTH = 4

# Calendar month numbers in fiscal order (Apr..Mar)
FISCAL_MONTH_ORDER = [4, 5, 6, 7, 8, 9, 10, 11, 12, 1, 2, 3]

QUARTER_MONTHS = {
    "Q1": [4, 5, 6],
    "Q2": [7, 8, 9],
    "Q3": [10, 11, 12],
    "Q4": [1, 2, 3],
}

MONTH_MAPPING = {
    1: "Jan", 2: "Feb", 3: "Mar", 4: "Apr",
    5: "May", 6: "Jun", 7: "Jul", 8: "Aug",
    9: "Sep", 10: "Oct", 11: "Nov", 12: "Dec"
}

# =====================================================================
# RECONCILIATION TABLE
# =====================================================================

ROW_TARGET = "Target"
ROW_ACTUAL = "Actual"
ROW_ACHIEVEMENT = "Achievement%"
ROW_BALANCE = "Balance"

RECONCILIATION_ROWS = [ROW_TARGET, ROW_ACTUAL, ROW_ACHIEVEMENT, ROW_BALANCE]

# =====================================================================
# CONVERSION RATE SENTINELS
# =====================================================================

CVR_NOT_APPLICABLE = "N/A"   # zero base, positive next stage
CVR_EMPTY = "-"              # both zero, or final stage

# =====================================================================
# DEBUG SETTINGS
# Use environment variable to enable: CS_DEBUG_TIMING=true
# =====================================================================

DEBUG_TIMING = _os.getenv('CS_DEBUG_TIMING', 'false').lower() == 'true'
