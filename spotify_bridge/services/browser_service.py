"""
Goal: Open the provider's consent page in the user's default browser.
"""

from __future__ import annotations

import webbrowser

from loguru import logger


def open_url(url: str) -> bool:
    try:
        ok = bool(webbrowser.open(url, new=2))
    except webbrowser.Error as e:
        logger.warning("Could not launch a browser: {}", e)
        return False
    if not ok:
        logger.warning("No browser available; open this URL manually: {}", url)
    return ok
