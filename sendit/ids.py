"""
Job identifiers.

A job id is ``j-<ms>-<hex>``: the admission time in epoch milliseconds,
zero-padded to 13 digits so ids sort by admission order, and 8 random hex
digits. Ids name directories under SENDIT_HOME, so anything read back from a
caller is checked against the pattern first.
"""

import re
import secrets
import time
from typing import Callable

JOB_ID_PATTERN = re.compile(r"j-(\d{13})-([0-9a-f]{8})")


def new_job_id(clock: Callable[[], float] = time.time) -> str:
    millis = int(clock() * 1000)
    return f"j-{millis:013d}-{secrets.token_hex(4)}"


def is_valid_job_id(job_id: str) -> bool:
    return bool(job_id) and JOB_ID_PATTERN.fullmatch(job_id) is not None

