"""
Client Configuration and Constants
==================================

This module contains the global constants and defaults used throughout the
Synthex client. It serves as a single source of truth for:

- Remote API location and network timeouts
- Session validation rules
- Paging and search defaults
- Durable storage layout
- Fallback records shown when the service cannot be reached

Note:
    All constants use UPPER_SNAKE_CASE naming convention. Runtime overrides
    (API URL, storage directory) are applied by
    `synthex.utils.config_manager`, not by editing these values.

Author: Synthex Project
"""

from pathlib import Path

# ============================================================================
# REMOTE API
# ============================================================================

DEFAULT_API_URL = "http://localhost:3001/api"

# Maximum time to wait for network responses before timing out
NETWORK_TIMEOUT_SECONDS = 30

# Message used when the server rejects a request without an error body
DEFAULT_ERROR_MESSAGE = "Request failed"

# ============================================================================
# SESSION RULES
# ============================================================================

MIN_PASSWORD_LENGTH = 6

USER_PLANS = ("free", "pro", "enterprise")

# ============================================================================
# QUERIES, PAGING AND SEARCH
# ============================================================================

# Default page size for creation collections and the feed
DEFAULT_PAGE_LIMIT = 20

# Default number of results returned by a search
DEFAULT_SEARCH_LIMIT = 20

# Default number of entries shown per leaderboard
DEFAULT_LEADERBOARD_LIMIT = 10

# Keystrokes arriving within this window collapse into one search
DEBOUNCE_WINDOW_SECONDS = 0.3

# Resource kinds served by the paginated loader
RESOURCE_CREATIONS = "creations"
RESOURCE_AGENT_CREATIONS = "agent_creations"
RESOURCE_FEED = "feed"
PAGINATED_RESOURCE_KINDS = (RESOURCE_CREATIONS, RESOURCE_AGENT_CREATIONS, RESOURCE_FEED)

AGENT_STATUSES = ("creating", "evolving", "analyzing", "idle")
FEED_ITEM_TYPES = ("creation", "evolution", "milestone")
LEADERBOARD_TYPES = ("creations", "evolutions", "likes")

# ============================================================================
# DURABLE LOCAL STORAGE
# ============================================================================

DEFAULT_STORAGE_DIR = Path.home() / ".synthex"

# Every record file is named "<namespace>.<key>.json"
STORAGE_NAMESPACE = "synthex"

# Envelope schema written around every record. Bump when a record layout
# changes and teach LocalStore.read how to migrate the older one.
STORAGE_SCHEMA_VERSION = 1

SESSION_KEY = "session"
FAVORITES_KEY = "favorites"
SAVED_KEY = "saved"

# ============================================================================
# FALLBACK RECORDS
# ============================================================================
# Shown by the stats handle when the service cannot be reached, so dashboards
# never render an empty aggregate.

FALLBACK_STATS = {
    "totalAgents": 8,
    "totalCreations": 2836,
    "totalEvolutions": 10253,
    "activeAgents": 6,
    "totalUsers": 0,
    "totalLikes": 0,
}
