"""Response error extraction for load test observability.

Parses LoyaltyStream API error responses into human-readable messages.
Every error, request validation included, has the shape
``{"success": false, "message": "..."}``. Anything else is stringified.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from requests import Response


def extract_error_detail(response: Response) -> str:
    """Extract a human-readable error message from an API error response.

    Returns a compact string suitable for Locust failure messages and log lines.
    Gracefully handles unparseable bodies and missing fields.
    """
    try:
        body = response.json()
    except ValueError:
        # Not JSON, return raw text, truncated
        text = getattr(response, "text", "") or ""
        return text[:300] or "(empty response body)"

    if isinstance(body, dict) and body.get("success") is False and "message" in body:
        return str(body["message"])[:300]

    # Unknown shape, stringify and truncate
    return str(body)[:300]
