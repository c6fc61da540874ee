"""
Hand a file or URL to the platform's default application.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys

logger = logging.getLogger(__name__)


def platform_open(target: str) -> None:
    """``open`` on macOS, ``os.startfile`` on Windows, ``xdg-open`` elsewhere."""
    logger.debug("Opening %s", target)
    if sys.platform == "darwin":
        subprocess.run(["open", target], check=True)
    elif sys.platform == "win32":
        os.startfile(target)  # type: ignore[attr-defined]
    else:
        subprocess.run(["xdg-open", target], check=True)
