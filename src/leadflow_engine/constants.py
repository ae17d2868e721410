"""Conversation-engine constants shared across the SDK.

These values are referenced by the compiler, controller, and advice
targeter.  They mirror conventions encoded in the YAML flow documents under
``flows/``.

Several constants can be overridden via environment variables so that
deployments can tune thresholds without code changes.
"""

import os

# Synthetic state IDs appended by the flow compiler after the last
# data-collection state.
LEAD_CAPTURE_STATE_ID = "__lead_capture__"
COMPLETION_STATE_ID = "__completion__"

# Prefix for compiled data-collection state IDs ("q_<field id>").
STATE_ID_PREFIX = "q_"

# Default prompts for the synthetic terminal states.
LEAD_CAPTURE_PROMPT = (
    "Perfect! Let me get your contact info to send your personalized timeline."
)
COMPLETION_PROMPT = "Thank you! Your personalized timeline is being generated."

# Re-prompt budget per state before the stall fallback kicks in.
# Overridable via DEFAULT_MAX_ATTEMPTS env var.
DEFAULT_MAX_ATTEMPTS = int(os.getenv("DEFAULT_MAX_ATTEMPTS", "3"))

# Extractions below this confidence are discarded before they reach the
# answer map.  Overridable via EXTRACTION_CONFIDENCE_THRESHOLD env var.
EXTRACTION_CONFIDENCE_THRESHOLD = float(
    os.getenv("EXTRACTION_CONFIDENCE_THRESHOLD", "0.6")
)

# How many advice items are attached to a state.
# Overridable via ADVICE_LIMIT_PER_STATE env var.
ADVICE_LIMIT_PER_STATE = int(os.getenv("ADVICE_LIMIT_PER_STATE", "1"))

# Inactivity window after which an active session may be marked abandoned.
# Overridable via SESSION_IDLE_MINUTES env var.
SESSION_IDLE_MINUTES = int(os.getenv("SESSION_IDLE_MINUTES", "60"))

# Default weight of a rule leaf when the document omits it.
DEFAULT_RULE_WEIGHT = 1.0

# Tag keyword -> timeline phase IDs.  Only consulted for advice items that
# carry no authored rule group.  Keywords are matched as substrings of the
# lower-cased tags.
TAG_PHASE_KEYWORDS: dict[str, list[str]] = {
    "pre-approval": ["financial-prep"],
    "mortgage": ["financial-prep"],
    "financing": ["financial-prep"],
    "agent": ["find-agent"],
    "house hunting": ["house-hunting"],
    "search": ["house-hunting"],
    "offer": ["make-offer"],
    "negotiation": ["make-offer"],
    "inspection": ["under-contract", "inspection"],
    "appraisal": ["under-contract"],
    "closing": ["closing"],
    "move": ["move-in", "post-closing"],
}

# Reasons reported on a Stayed outcome.
STAY_AWAITING_DATA = "awaiting_data"
STAY_MAX_ATTEMPTS = "max_attempts_exceeded"
STAY_NO_TRANSITION = "no_transition"
