"""
Exceptions raised by Gmail Label Counts
"""

from typing import Optional


class LabelCountsError(Exception):
    """Base class for all errors raised by this package"""


class CredentialsError(LabelCountsError):
    """OAuth client secret file is missing or unusable"""


class CacheReadError(LabelCountsError):
    """A cache file exists but cannot be parsed into a valid record"""

    def __init__(self, path, reason: str):
        super().__init__(f"Unreadable cache file {path}: {reason}")
        self.path = path
        self.reason = reason


class FetchError(LabelCountsError):
    """Fetching a thread from the Gmail API failed"""

    def __init__(self, thread_id: str, message: str, status: Optional[int] = None):
        super().__init__(f"Failed to fetch thread {thread_id}: {message}")
        self.thread_id = thread_id
        self.status = status


class RateLimitExhausted(FetchError):
    """Gmail kept answering 429 after every retry"""

    def __init__(self, thread_id: str, attempts: int):
        super().__init__(thread_id, f"rate limited after {attempts} attempts", status=429)
        self.attempts = attempts
