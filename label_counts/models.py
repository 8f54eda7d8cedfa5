"""
Shared data models for Gmail Label Counts
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import tenacity

from label_counts.errors import CacheReadError
from label_counts.stability import StabilityPredicate, non_empty


logger = logging.getLogger(__name__)

INBOX_LABEL = 'INBOX'
INBOX_QUERY = 'in:inbox'
UNREAD_QUERY = 'in:inbox is:unread'
UNTAGGED_QUERY = 'in:inbox -label:=it -label:=p -label:=q'


def is_id_list(value: Any) -> bool:
    """True when value is a list/tuple made only of id strings"""
    return isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ThreadCacheEntry:
    """Label ids last observed for a thread, as persisted in the cache directory"""
    label_ids: List[str]
    cached_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'labelIds': list(self.label_ids),
            'cachedAt': self.cached_at.isoformat()
        }

    @classmethod
    def from_dict(cls, data: Any, path=None) -> 'ThreadCacheEntry':
        """Validate a decoded JSON record, raising CacheReadError when malformed"""
        if not isinstance(data, dict):
            raise CacheReadError(path, "expected a JSON object")

        label_ids = data.get('labelIds')
        if not is_id_list(label_ids):
            raise CacheReadError(path, "labelIds is not a list of label ids")

        cached_at = data.get('cachedAt')
        if not isinstance(cached_at, str):
            raise CacheReadError(path, "cachedAt is missing")
        try:
            # Older cache files carry JavaScript-style 'Z' suffixes
            parsed = datetime.fromisoformat(cached_at.replace('Z', '+00:00'))
        except ValueError:
            raise CacheReadError(path, f"cachedAt is not a timestamp: {cached_at!r}")

        return cls(label_ids=list(label_ids), cached_at=parsed)


@dataclass
class ThreadResult:
    """Resolved label ids for one thread of the working set"""
    thread_id: str
    label_ids: List[str]
    from_cache: bool = False


@dataclass
class FetchFailure:
    """A thread that could not be fetched during this run"""
    thread_id: str
    error: str


class LabelDirectory:
    """Bidirectional label id <-> name lookup, built once per run"""

    def __init__(self, labels: Iterable[Tuple[str, str]] = ()):
        self._names_by_id: Dict[str, str] = {}
        self._ids_by_name: Dict[str, str] = {}
        for label_id, name in labels:
            self._names_by_id[label_id] = name
            self._ids_by_name[name] = label_id

    @classmethod
    def from_api(cls, labels: List[Dict]) -> 'LabelDirectory':
        """Build from a users.labels.list response, skipping incomplete labels"""
        return cls(
            (label['id'], label['name'])
            for label in labels
            if label.get('id') and label.get('name')
        )

    def name_for(self, label_id: str) -> Optional[str]:
        return self._names_by_id.get(label_id)

    def id_for(self, name: str) -> Optional[str]:
        return self._ids_by_name.get(name)

    def __contains__(self, label_id: object) -> bool:
        return label_id in self._names_by_id

    def __len__(self) -> int:
        return len(self._names_by_id)


@dataclass
class RetryPolicy:
    """Bounded retry budget for rate-limited requests, with linearly growing waits"""
    max_retries: int = 3
    base_delay: float = 1.0

    def retrying(self, retry, before_sleep=None, sleep=None) -> tenacity.AsyncRetrying:
        """AsyncRetrying allowing max_retries retries, waiting base_delay * k before retry k"""
        kwargs = {}
        if sleep is not None:
            kwargs['sleep'] = sleep
        return tenacity.AsyncRetrying(
            retry=retry,
            stop=tenacity.stop_after_attempt(self.max_retries + 1),
            wait=tenacity.wait_incrementing(start=self.base_delay, increment=self.base_delay),
            before_sleep=before_sleep,
            reraise=True,
            **kwargs
        )


def _env_int(environ: Mapping[str, str], name: str, default: int, minimum: int = 1) -> int:
    raw = environ.get(name)
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not an integer, using {default}")
        return default
    if value < minimum:
        logger.warning(f"Ignoring {name}={raw!r}: must be at least {minimum}, using {default}")
        return default
    return value


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw == '':
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Ignoring {name}={raw!r}: not a number, using {default}")
        return default
    if value < 0:
        logger.warning(f"Ignoring {name}={raw!r}: must not be negative, using {default}")
        return default
    return value


@dataclass
class ScanConfig:
    """Configuration shared by every component of a scan"""
    credentials_path: str = 'credentials.json'
    token_path: str = 'token.json'
    cache_dir: Path = Path('.cache')
    concurrency: int = 3
    page_size: int = 100
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    strict: bool = False
    stable_label_names: List[str] = field(default_factory=list)
    unread_query: str = UNREAD_QUERY
    untagged_query: str = UNTAGGED_QUERY
    is_stable: StabilityPredicate = non_empty

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'ScanConfig':
        """Build a config from environment variables (see .env.example)"""
        env = os.environ if environ is None else environ

        stable_names = [
            name.strip()
            for name in env.get('STABLE_LABELS', '').split(',')
            if name.strip()
        ]

        return cls(
            credentials_path=env.get('GMAIL_CREDENTIALS_PATH', 'credentials.json'),
            token_path=env.get('GMAIL_TOKEN_PATH', 'token.json'),
            cache_dir=Path(env.get('LABEL_CACHE_DIR', '.cache')),
            concurrency=_env_int(env, 'FETCH_CONCURRENCY', 3),
            page_size=_env_int(env, 'PAGE_SIZE', 100),
            retry_policy=RetryPolicy(
                max_retries=_env_int(env, 'FETCH_MAX_RETRIES', 3, minimum=0),
                base_delay=_env_float(env, 'FETCH_RETRY_DELAY', 1.0)
            ),
            strict=env.get('STRICT_FETCH', 'false').lower() == 'true',
            stable_label_names=stable_names,
            untagged_query=env.get('UNTAGGED_QUERY', UNTAGGED_QUERY)
        )


@dataclass
class LabelReport:
    """Result of one scan, ready to render"""
    rows: List[Tuple[str, int]]
    label_counts: Dict[str, int]
    unread_count: int = 0
    untagged_count: int = 0
    from_cache: int = 0
    from_api: int = 0
    evicted: int = 0
    failures: List[FetchFailure] = field(default_factory=list)
