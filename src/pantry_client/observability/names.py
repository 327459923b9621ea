# src/pantry_client/observability/names.py

"""Standard metric names for pantry-client observability.

Use these constants instead of hardcoded strings for consistency
across the codebase.

Note: All duration metrics are in milliseconds by convention.
"""

# ============================================================================
# API Request Metrics
# ============================================================================

# Duration
PANTRY_REQUEST_DURATION = "pantry_request_duration"

# Counters (labelled by endpoint)
PANTRY_REQUESTS_TOTAL = "pantry_requests_total"
PANTRY_REQUEST_ERRORS_TOTAL = "pantry_request_errors_total"


# ============================================================================
# Streaming Metrics
# ============================================================================

# Duration (from first byte requested to terminal event)
PANTRY_STREAM_DURATION = "pantry_stream_duration"

# Counters (labelled by event kind)
PANTRY_STREAM_EVENTS_TOTAL = "pantry_stream_events_total"
PANTRY_STREAM_ERRORS_TOTAL = "pantry_stream_errors_total"


# ============================================================================
# Session Metrics
# ============================================================================

PANTRY_SESSIONS_CREATED = "pantry_sessions_created"
PANTRY_SESSIONS_CLOSED = "pantry_sessions_closed"
