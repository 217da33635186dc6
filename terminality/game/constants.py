"""
Terminality game constants
Trace costs, door tightening and the notices the terminal prints.
"""

# ============================================================
# Trace costs per action (used when a system sets no cost)
# ============================================================
BASE_TRACE_COSTS = {
    "scan": 3,
    "deep_scan": 10,
    "connect": 6,
    "disconnect": -12,
    "delete_file": 6,
    "delete_sensitive_file": 6,
    "read_file": 0,
    "open_trap_file": 8,
    "clean_logs": -8,
    "bruteforce": 15,
    "backdoor_install": 12,
    "idle": -2,
}

# Actions whose cost a system may set in its securityRules.
RULE_COSTED_ACTIONS = frozenset({
    "scan",
    "deep_scan",
    "bruteforce",
    "delete_sensitive_file",
    "open_trap_file",
})

# ============================================================
# Trace bands
# ============================================================
BAND_ORDER = {"calm": 0, "nervous": 1, "panic": 2}

TRACE_NERVOUS_NOTICE = "Trace rising. Keep actions subtle."
TRACE_PANIC_NOTICE = "Trace maxed out! Remote links unstable."

# ============================================================
# Doors
# ============================================================
# tighten_doors moves each door one step toward locked.
DOOR_TIGHTEN = {
    "backdoor": "guarded",
    "weak_spot": "guarded",
    "guarded": "locked",
}

# ============================================================
# Scanning
# ============================================================
SECURITY_GRADES = {
    "tutorial": "minimal",
    "easy": "low",
    "medium": "moderate",
    "hard": "high",
    "boss": "extreme",
}

# ============================================================
# Quest bonus objectives
# ============================================================
KEEP_TRACE_BELOW_DEFAULT = 50
AVOID_TRACE_SPIKE_DEFAULT = 75
