"""
Run identifiers.

A run id looks like ``r-20240131-154501-k3x9``: creation date and time plus a
short random suffix, so ids sort chronologically and are safe as directory
names.
"""

import re
import secrets
from datetime import datetime

RUN_ID_PATTERN = re.compile(r"r-\d{8}-\d{6}-[a-z0-9]{4}")


def new_run_id() -> str:
    return f"{datetime.now():r-%Y%m%d-%H%M%S}-{secrets.token_hex(2)}"


def is_valid_run_id(run_id: str) -> bool:
    """True when ``run_id`` has the shape produced by ``new_run_id``."""
    return bool(RUN_ID_PATTERN.fullmatch(run_id))
