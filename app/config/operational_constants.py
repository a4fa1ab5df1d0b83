"""
Operational constants for the referral commission engine.

Technical constants for background jobs and the scheduler.
"""

# =============================================================================
# DRAMATIQ TASK TIME LIMITS (milliseconds)
# =============================================================================

# Full referral stats reconciliation (10 minutes)
DRAMATIQ_TIME_LIMIT_LONG = 600_000

# =============================================================================
# SCHEDULER
# =============================================================================

# Seconds a missed run may still start late
SCHEDULER_MISFIRE_GRACE_TIME = 60

# Seconds to wait for the health server to stop
HEALTH_SERVER_STOP_TIMEOUT = 5

# =============================================================================
# RESYNC RETRIES
# =============================================================================

# Attempts after the first failure of a resync message
RESYNC_MAX_RETRIES = 3

# Backoff between attempts (milliseconds)
RESYNC_MIN_BACKOFF_MS = 1_000
RESYNC_MAX_BACKOFF_MS = 60_000
