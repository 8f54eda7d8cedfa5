"""
Label Aggregator - resolves inbox threads from cache or Gmail and counts labels
"""

import asyncio
import logging
from collections import Counter
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from label_counts.cache import ThreadIdCache, ThreadMetadataCache
from label_counts.fetcher import ThreadFetcher
from label_counts.models import (
    INBOX_LABEL,
    INBOX_QUERY,
    LabelDirectory,
    LabelReport,
    ScanConfig,
    ThreadCacheEntry,
    ThreadResult,
)


logger = logging.getLogger(__name__)


class LabelAggregator:
    """Counts label occurrences across the threads currently in the inbox"""

    def __init__(
        self,
        service,  # Gmail API service object
        config: ScanConfig,
        directory: LabelDirectory,
        progress_callback: Optional[Callable] = None,
        http_factory: Optional[Callable] = None
    ):
        self.service = service
        self.config = config
        self.directory = directory
        self.progress_callback = progress_callback

        self.id_cache = ThreadIdCache(config.cache_dir)
        self.thread_cache = ThreadMetadataCache(config.cache_dir)
        self.fetcher = ThreadFetcher(
            service,
            retry_policy=config.retry_policy,
            concurrency=config.concurrency,
            http_factory=http_factory
        )

    # === Working Set ===

    async def load_working_set(self) -> List[str]:
        """Inbox thread ids, from the id cache or by paging through the inbox"""
        thread_ids = self.id_cache.load()
        if thread_ids is not None:
            logger.info(f"Loaded {len(thread_ids)} inbox thread IDs from cache")
            await self._report_progress("working_set_loaded", {
                "count": len(thread_ids),
                "from_cache": True
            })
            return thread_ids

        thread_ids = []
        page_token = None
        while True:
            threads, page_token = await self._fetch_thread_page(INBOX_QUERY, page_token)
            thread_ids.extend(thread['id'] for thread in threads)

            await self._report_progress("thread_ids_fetched", {"count": len(thread_ids)})

            if not page_token:
                break

        self.id_cache.save(thread_ids)
        await self._report_progress("working_set_loaded", {
            "count": len(thread_ids),
            "from_cache": False
        })
        return thread_ids

    # === Main Entry Point ===

    async def run(self, working_set: Iterable[str]) -> LabelReport:
        """Resolve every thread of the working set and build the label report"""
        thread_ids = list(dict.fromkeys(working_set))
        members = set(thread_ids)

        trusted, to_fetch = self.partition(thread_ids)
        await self._report_progress("cache_scanned", {
            "scanned": len(thread_ids),
            "valid": len(trusted),
            "to_fetch": len(to_fetch)
        })

        evicted = self.evict_stale(members)

        fetched_count = 0

        async def store(result: ThreadResult) -> None:
            nonlocal fetched_count
            self.thread_cache.put(result.thread_id, ThreadCacheEntry(label_ids=result.label_ids))
            fetched_count += 1
            await self._report_progress("thread_fetched", {
                "thread_id": result.thread_id,
                "fetched": fetched_count,
                "total": len(to_fetch)
            })

        fetched, failures = await self.fetcher.fetch_many(
            to_fetch,
            on_result=store,
            strict=self.config.strict
        )

        results = [result for result in trusted + fetched if result.thread_id in members]
        label_counts = self.count_labels(results, members)
        rows = self.build_rows(label_counts)

        await self._report_progress("counting_queries", {})
        unread_count = await self.count_threads_matching(self.config.unread_query)
        untagged_count = await self.count_threads_matching(self.config.untagged_query)

        report = LabelReport(
            rows=rows,
            label_counts=label_counts,
            unread_count=unread_count,
            untagged_count=untagged_count,
            from_cache=sum(1 for result in results if result.from_cache),
            from_api=sum(1 for result in results if not result.from_cache),
            evicted=evicted,
            failures=failures
        )

        await self._report_progress("scan_completed", {
            "from_cache": report.from_cache,
            "from_api": report.from_api,
            "failures": len(failures)
        })
        return report

    # === Cache Phase ===

    def partition(self, thread_ids: List[str]) -> Tuple[List[ThreadResult], List[str]]:
        """Split threads into cache-trusted results and ids that need fetching"""
        trusted: List[ThreadResult] = []
        to_fetch: List[str] = []

        for thread_id in thread_ids:
            entry = self.thread_cache.get(thread_id)
            if entry is not None and self.config.is_stable(entry.label_ids):
                trusted.append(ThreadResult(
                    thread_id=thread_id,
                    label_ids=list(entry.label_ids),
                    from_cache=True
                ))
            else:
                to_fetch.append(thread_id)

        logger.info(f"Scanned {len(thread_ids)} threads from cache "
                    f"({len(trusted)} valid, {len(to_fetch)} to fetch)")
        return trusted, to_fetch

    def evict_stale(self, members: Set[str]) -> int:
        """Drop cached threads that are no longer in the inbox"""
        stale = self.thread_cache.cached_ids() - members
        evicted = sum(1 for thread_id in stale if self.thread_cache.evict(thread_id))
        if evicted:
            logger.info(f"Evicted {evicted} cached threads that left the inbox")
        return evicted

    # === Counting ===

    @staticmethod
    def count_labels(results: Iterable[ThreadResult], members: Set[str]) -> Dict[str, int]:
        """Count label ids over threads of the working set, ignoring INBOX"""
        counts: Counter = Counter()
        for result in results:
            if result.thread_id not in members:
                continue
            for label_id in result.label_ids:
                if label_id != INBOX_LABEL:
                    counts[label_id] += 1
        return dict(counts)

    def build_rows(self, label_counts: Dict[str, int]) -> List[Tuple[str, int]]:
        """(name, count) rows sorted case-insensitively by label name"""
        rows = []
        for label_id, count in label_counts.items():
            name = self.directory.name_for(label_id)
            if name is None:
                logger.warning(f"Missing label name for ID '{label_id}'")
                name = f"(missing name: {label_id})"
            rows.append((name, count))

        return sorted(rows, key=lambda row: row[0].lower())

    async def count_threads_matching(self, query: str) -> int:
        """Count every thread matching a search query by paging through the results"""
        count = 0
        page_token = None
        while True:
            threads, page_token = await self._fetch_thread_page(query, page_token)
            count += len(threads)
            if not page_token:
                break
        return count

    # === Thread Listing ===

    async def _fetch_thread_page(self, query: str, page_token: Optional[str]) -> Tuple[List[Dict], Optional[str]]:
        """Fetch a page of threads, returns (threads, next_page_token)"""
        results = await asyncio.to_thread(
            lambda: self.service.users().threads().list(
                userId='me',
                maxResults=self.config.page_size,
                pageToken=page_token,
                q=query
            ).execute()
        )

        threads = results.get('threads', [])
        next_page_token = results.get('nextPageToken')

        return threads, next_page_token

    # === Progress ===

    async def _report_progress(self, event: str, data: Dict) -> None:
        """Send progress update if callback is set"""
        if self.progress_callback:
            await self.progress_callback(event, data)
