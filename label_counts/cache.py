"""
Local JSON caches - inbox thread id list and per-thread label metadata
"""

import json
import logging
from pathlib import Path
from typing import List, Optional, Set

from label_counts.errors import CacheReadError
from label_counts.models import ThreadCacheEntry, is_id_list


logger = logging.getLogger(__name__)

THREAD_IDS_FILENAME = 'inbox-thread-ids.json'
THREAD_FILE_PREFIX = 'thread-'


def ensure_cache_dir(cache_dir: Path) -> bool:
    """Create the cache directory if needed, returns True when it was created"""
    cache_dir = Path(cache_dir)
    if cache_dir.is_dir():
        return False
    cache_dir.mkdir(parents=True, exist_ok=True)
    return True


class ThreadIdCache:
    """Snapshot of the inbox thread ids

    Once written the snapshot is never refreshed; delete the file to force a
    new enumeration.
    """

    def __init__(self, cache_dir: Path):
        self.path = Path(cache_dir) / THREAD_IDS_FILENAME

    def load(self) -> Optional[List[str]]:
        """Return the cached ids, or None if missing or unreadable"""
        if not self.path.exists():
            return None

        try:
            data = json.loads(self.path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load inbox thread id cache ({e}), refetching")
            return None

        if not is_id_list(data):
            logger.warning(f"Inbox thread id cache {self.path} is not a list of ids, refetching")
            return None

        return list(data)

    def save(self, thread_ids: List[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(list(thread_ids), indent=2), encoding='utf-8')
        logger.debug(f"Saved {len(thread_ids)} inbox thread ids to {self.path}")


class ThreadMetadataCache:
    """One JSON file per thread holding its last observed label ids"""

    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)

    def path_for(self, thread_id: str) -> Path:
        return self.cache_dir / f"{THREAD_FILE_PREFIX}{thread_id}.json"

    # === Reading ===

    def read(self, thread_id: str) -> Optional[ThreadCacheEntry]:
        """Return the entry, None when absent, raise CacheReadError when malformed"""
        path = self.path_for(thread_id)
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            raise CacheReadError(path, str(e)) from e

        return ThreadCacheEntry.from_dict(data, path)

    def get(self, thread_id: str) -> Optional[ThreadCacheEntry]:
        """Like read(), but malformed data is logged and treated as a miss"""
        try:
            return self.read(thread_id)
        except CacheReadError as e:
            logger.warning(f"Ignoring cached thread {thread_id}: {e.reason}")
            return None

    def cached_ids(self) -> Set[str]:
        """Thread ids that currently have a file in the cache directory"""
        if not self.cache_dir.is_dir():
            return set()

        prefix_len = len(THREAD_FILE_PREFIX)
        return {
            path.stem[prefix_len:]
            for path in self.cache_dir.glob(f"{THREAD_FILE_PREFIX}*.json")
        }

    # === Writing ===

    def put(self, thread_id: str, entry: ThreadCacheEntry) -> bool:
        """Persist entry, skipping (with a warning) anything without a valid label list"""
        if not is_id_list(entry.label_ids):
            logger.warning(f"Skipping cache save for {thread_id}: no valid labels")
            return False

        path = self.path_for(thread_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(entry.to_dict(), indent=2), encoding='utf-8')
        return True

    def evict(self, thread_id: str) -> bool:
        """Remove the entry of a thread that left the inbox, returns True if one existed"""
        path = self.path_for(thread_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"Evicted cached thread {thread_id}")
        return True
