"""
Loisir Montreal integration configuration.

Constants describing the IC3 public search API. Per-deployment values
(base URL, link template, limits) come from the ``data_provider`` row.
"""

from __future__ import annotations

PROVIDER_TYPE = "loisir_montreal"

DEFAULT_SEARCH_PATH = "/public/search"
DEFAULT_LIMIT = 500

# Search request timeout (seconds).
REQUEST_TIMEOUT = 30.0

# Montreal's offset, appended to bare dates in the search body.
DATE_SUFFIX = "T00:00:00.000-04:00"

CURRENCY = "CAD"

SORT_COLUMN = "facility.name"

DEFAULT_HEADERS = {
    "User-Agent": "CourtBookingEngine/1.0",
    "Origin": "https://loisirs.montreal.ca",
    "Referer": "https://loisirs.montreal.ca/",
}
