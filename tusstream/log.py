"""Logger used by the tusstream package."""

from __future__ import annotations

import logging

logger = logging.getLogger("tusstream")
