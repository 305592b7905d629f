"""
Shared constants for the snapshot pipeline.

Contains default configuration values and the fixed signature lists used
across multiple stages.
"""

# Default user agent string for desktop captures and HTTP requests
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

# User agent for the mobile viewport class
MOBILE_USER_AGENT = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 13_2_3 like Mac OS X) "
    "AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/13.0.3 Mobile/15E148 Safari/604.1"
)

# Default fetch and navigation timeout in milliseconds
DEFAULT_TIMEOUT = 30000

# Default worker pool widths per stage
DEFAULT_CRAWL_CONCURRENCY = 3
DEFAULT_CAPTURE_CONCURRENCY = 2
DEFAULT_ASSET_CONCURRENCY = 3

# Viewport sizes for the two capture classes
DEFAULT_DESKTOP_VIEWPORT = {"width": 1920, "height": 1080}
DEFAULT_MOBILE_VIEWPORT = {"width": 375, "height": 667}

VIEWPORT_CLASSES = ("desktop", "mobile")

# Auto-scroll step in pixels and interval in milliseconds
SCROLL_STEP = 400
CAPTURE_SCROLL_INTERVAL = 200
DISCOVERY_SCROLL_INTERVAL = 150

# Settle waits after scrolling, in milliseconds
CAPTURE_SETTLE_MS = 800
DISCOVERY_SETTLE_MS = 500

# Query parameters dropped during URL canonicalization
TRACKING_PARAMS = frozenset({
    "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
    "gclid", "fbclid", "mc_cid", "mc_eid", "igshid", "ref", "refsrc",
})

# Analytics script signatures, matched against script src and inline code
TRACKER_SIGNATURES = (
    r"google-analytics|googletagmanager|gtag|facebook\.net|clarity|hotjar|"
    r"wix-analytics|segment|mixpanel"
)

# Listing routes and content-post links on the origin platform
POST_PATH_MARKER = "/single-post/"
PAGINATION_PATTERN = r"/home/page/(\d+)"

# Breakpoint separating mobile and desktop content in merged documents
RESPONSIVE_BREAKPOINT = 768
