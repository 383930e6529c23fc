"""
Public address (slug) allocation.

"My Cool API" -> "my-cool-api-3f9a1c"

The random suffix only makes collisions unlikely; uniqueness itself is
enforced by the store (see `DatasetStore.create`).
"""

from __future__ import annotations

import re
import secrets

FALLBACK_BASE = "dataset"
MAX_BASE_CHARS = 48
SUFFIX_BYTES = 3  # 6 hex chars

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize(display_name: str) -> str:
    base = _NON_ALNUM.sub("-", (display_name or "").strip().lower()).strip("-")
    base = base[:MAX_BASE_CHARS].rstrip("-")
    return base or FALLBACK_BASE


def allocate(display_name: str) -> str:
    return f"{normalize(display_name)}-{secrets.token_hex(SUFFIX_BYTES)}"


def serving_url(base_url: str, address: str) -> str:
    return f"{base_url.rstrip('/')}/{address}"


def example_usage_snippet(display_name: str, url: str) -> str:
    """
    Plain-text illustration of calling a dataset's serving URL.
    """
    return (
        f'# Fetch "{display_name}"\n'
        "import httpx\n"
        "\n"
        f'response = httpx.get("{url}")\n'
        "response.raise_for_status()\n"
        'print(response.json()["resultRecords"])\n'
    )
