"""Prometheus metrics definitions for a dashboard session."""

from prometheus_client import Counter, Gauge, Histogram

# =============================================================================
# Histogram Buckets
# =============================================================================

# Lifecycle commands: restart is seconds, create pulls images (minutes)
_BUCKETS_COMMAND = (
    0.05, 0.1, 0.25, 0.5, 1,
    2.5, 5, 10, 20, 40,
    80, 160,
)  # 12 buckets

# =============================================================================
# Command Metrics
# =============================================================================

COMMANDS_TOTAL = Counter(
    "fleetdash_commands_total",
    "Lifecycle commands dispatched",
    ["action", "result"],  # result: success, failure, rejected
)

COMMAND_DURATION = Histogram(
    "fleetdash_command_duration_seconds",
    "Lifecycle command round-trip duration",
    ["action"],
    buckets=_BUCKETS_COMMAND,
)

LOCKS_HELD = Gauge(
    "fleetdash_locks_held",
    "Mutation locks currently held (in-flight commands)",
)

# =============================================================================
# Snapshot Metrics
# =============================================================================

SNAPSHOTS_APPLIED_TOTAL = Counter(
    "fleetdash_snapshots_applied_total",
    "Fleet snapshots applied to the store",
)

SNAPSHOTS_MALFORMED_TOTAL = Counter(
    "fleetdash_snapshots_malformed_total",
    "Push payloads discarded because they could not be decoded",
)

SNAPSHOT_INSTANCES = Gauge(
    "fleetdash_snapshot_instances",
    "Instances in the current snapshot",
)

# =============================================================================
# Push Channel Metrics
# =============================================================================

# 0=disconnected, 1=connecting, 2=open, 3=closed, 4=errored
CHANNEL_STATE = Gauge(
    "fleetdash_channel_state",
    "Push channel state",
)

CHANNEL_RECONNECTS_TOTAL = Counter(
    "fleetdash_channel_reconnects_total",
    "Push channel reconnect attempts",
)

CHANNEL_ERRORS_TOTAL = Counter(
    "fleetdash_channel_errors_total",
    "Push channel transport errors",
    ["error_class"],
)
