from django.conf import settings

DEFAULTS = {
    "DEFAULT_DURATION_MINUTES": 60,
    "RESUME_TOKEN_BYTES": 32,
    "LATE_CODE_LENGTH": 8,
    # Excludes I, O, 0 and 1
    "LATE_CODE_ALPHABET": "ABCDEFGHJKLMNPQRSTUVWXYZ23456789",
    "LATE_CODE_TTL_DAYS": 7,
    "LATE_CODE_GENERATION_ATTEMPTS": 10,
    "SIMULATION_PENALTY_RATIO": 0.25,
    "DEFAULT_SEMANTIC_THRESHOLD": 0.7,
    "DEFAULT_KEYWORD_WEIGHT": 10,
}


def get_setting(name):
    """Look up an attempt-engine setting, falling back to DEFAULTS."""
    overrides = getattr(settings, "ASSESSMENTS", None) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]
