"""Application configuration driven by environment variables.

All settings have sensible defaults for local development.
"""

import os

# ---------------------------------------------------------------------------
# gRPC server (dashboard clients connect to us on this address)
# ---------------------------------------------------------------------------

GRPC_SERVER_HOST: str = os.getenv("GRPC_SERVER_HOST", "0.0.0.0")
GRPC_SERVER_PORT: int = int(os.getenv("GRPC_SERVER_PORT", "50051"))

# Thread pool size for the gRPC server.  Each concurrent RPC occupies one
# thread, so this caps concurrent request handling.
GRPC_MAX_WORKERS: int = int(os.getenv("GRPC_MAX_WORKERS", "10"))

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

NUM_RECOMMENDATIONS: int = int(os.getenv("NUM_RECOMMENDATIONS", "6"))

# How often (seconds) to regenerate every user's recommendation set.
# 0 disables the background refresh.
RECOMMENDATION_REFRESH_INTERVAL_SECONDS: int = int(
    os.getenv("RECOMMENDATION_REFRESH_INTERVAL_SECONDS", "0")
)

# ---------------------------------------------------------------------------
# Tool catalogue cache
# ---------------------------------------------------------------------------

# Optional JSON file with catalogue records; the bundled sample set is used
# when unset.
TOOL_CATALOGUE_PATH: str | None = os.getenv("TOOL_CATALOGUE_PATH") or None

# How often (seconds) to refresh the cached catalogue from the store.
CATALOGUE_REFRESH_INTERVAL_SECONDS: int = int(
    os.getenv("CATALOGUE_REFRESH_INTERVAL_SECONDS", "300")
)

# ---------------------------------------------------------------------------
# Progression ledger
# ---------------------------------------------------------------------------

# Compare-and-set attempts for streak and level updates before giving up.
STATS_CAS_MAX_RETRIES: int = int(os.getenv("STATS_CAS_MAX_RETRIES", "5"))

# ---------------------------------------------------------------------------
# Advisory rationale (optional; disabled when no API key is set)
# ---------------------------------------------------------------------------

ADVISORY_API_URL: str = os.getenv(
    "ADVISORY_API_URL", "https://api.openai.com/v1/chat/completions"
)
ADVISORY_API_KEY: str = os.getenv("ADVISORY_API_KEY", "")
ADVISORY_MODEL: str = os.getenv("ADVISORY_MODEL", "gpt-4o-mini")
ADVISORY_TIMEOUT_SECONDS: float = float(os.getenv("ADVISORY_TIMEOUT_SECONDS", "10"))
