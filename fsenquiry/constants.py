"""Shared constants for the firearm status gateway.

Input limits, upstream defaults and rate-limit defaults live here so the
gateway, the client and the config loader agree on them.
"""

# ─── Input limits ────────────────────────────────────────────────────────────

# Maximum length of the reference number and the serial number.
# Enforced by the gateway (HTTP 400) and by the client before any call.
MAX_FIELD_LENGTH: int = 40

# Maximum allowed request body size for the enquiry endpoint.
# A valid body is two short strings; anything larger is rejected with 413
# before the JSON is parsed.
MAX_REQUEST_BODY_BYTES: int = 16_384  # 16 KB

# ─── Upstream ────────────────────────────────────────────────────────────────

DEFAULT_UPSTREAM_URL: str = "https://www.saps.gov.za/services/firearm_status_enquiry.php"

# Origin/Referer presented to the upstream so its bot checks see a same-site
# form submission.
DEFAULT_UPSTREAM_ORIGIN: str = "https://www.saps.gov.za"

# Total budget for one upstream call (connect + send + read), seconds.
DEFAULT_UPSTREAM_TIMEOUT_S: float = 15.0

# ─── Rate limiting ───────────────────────────────────────────────────────────

DEFAULT_RATE_LIMIT_REQUESTS: int = 10
DEFAULT_RATE_LIMIT_WINDOW_S: int = 60

# 0 disables the global daily cap.
DEFAULT_RATE_LIMIT_DAILY_MAX: int = 0

DEFAULT_CLIENT_IP_HEADER: str = "X-Forwarded-For"

# ─── Responses ───────────────────────────────────────────────────────────────

# Browser/CDN caching hint on successful enquiry responses (seconds).
SUCCESS_CACHE_MAX_AGE_S: int = 300

# ─── Client ──────────────────────────────────────────────────────────────────

# Lifetime of a cached successful lookup on the client side (seconds).
CLIENT_CACHE_TTL_S: int = 300

DEFAULT_CLIENT_STATE_DIR: str = "~/.fsenquiry"
