"""
Thread Fetcher - retrieves thread label ids from Gmail with bounded
parallelism and a retry budget for rate limiting
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

import tenacity
from googleapiclient.errors import HttpError

from label_counts.errors import FetchError, RateLimitExhausted
from label_counts.models import FetchFailure, RetryPolicy, ThreadResult


logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS = 429

ResultCallback = Callable[[ThreadResult], Awaitable[None]]


class ThreadFetcher:
    """Fetches thread label ids from the Gmail API"""

    def __init__(
        self,
        service,  # Gmail API service object
        retry_policy: Optional[RetryPolicy] = None,
        concurrency: int = 3,
        http_factory: Optional[Callable] = None
    ):
        self.service = service
        self.retry_policy = retry_policy or RetryPolicy()
        self.concurrency = concurrency
        # httplib2.Http is not thread-safe, so each request may get its own transport
        self.http_factory = http_factory

    # === Single Thread ===

    async def fetch(self, thread_id: str) -> ThreadResult:
        """Fetch one thread, retrying only on 429 responses"""
        retrying = self.retry_policy.retrying(
            retry=tenacity.retry_if_exception(self.is_rate_limited),
            before_sleep=lambda retry_state: self._log_retry(thread_id, retry_state),
            sleep=asyncio.sleep
        )
        try:
            async for attempt in retrying:
                with attempt:
                    thread_data = await asyncio.to_thread(self._get_thread, thread_id)
        except HttpError as error:
            status = self.status_of(error)
            if status == RATE_LIMIT_STATUS:
                raise RateLimitExhausted(thread_id, self.retry_policy.max_retries + 1) from error
            raise FetchError(thread_id, str(error), status) from error

        label_ids = self.extract_label_ids(thread_id, thread_data)
        return ThreadResult(thread_id=thread_id, label_ids=label_ids, from_cache=False)

    def _log_retry(self, thread_id: str, retry_state: tenacity.RetryCallState) -> None:
        logger.warning(
            f"Rate limit hit for thread {thread_id}. "
            f"Retry {retry_state.attempt_number}/{self.retry_policy.max_retries} "
            f"in {retry_state.next_action.sleep:.1f}s..."
        )

    def _get_thread(self, thread_id: str) -> Dict:
        request = self.service.users().threads().get(
            userId='me',
            id=thread_id,
            format='minimal'
        )
        if self.http_factory:
            return request.execute(http=self.http_factory())
        return request.execute()

    # === Many Threads ===

    async def fetch_many(
        self,
        thread_ids: Iterable[str],
        on_result: Optional[ResultCallback] = None,
        strict: bool = False
    ) -> Tuple[List[ThreadResult], List[FetchFailure]]:
        """Fetch threads with at most `concurrency` requests in flight

        In strict mode the first FetchError cancels the remaining fetches and
        propagates. Otherwise failing threads are collected and returned.
        """
        semaphore = asyncio.Semaphore(self.concurrency)
        results: List[ThreadResult] = []
        failures: List[FetchFailure] = []

        async def fetch_one(thread_id: str) -> None:
            async with semaphore:
                try:
                    result = await self.fetch(thread_id)
                except FetchError as error:
                    if strict:
                        raise
                    logger.error(str(error))
                    failures.append(FetchFailure(thread_id=thread_id, error=str(error)))
                    return

            results.append(result)
            if on_result:
                await on_result(result)

        tasks = [asyncio.create_task(fetch_one(thread_id)) for thread_id in thread_ids]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        return results, failures

    # === Utilities ===

    @staticmethod
    def status_of(error: HttpError) -> Optional[int]:
        """HTTP status of an HttpError, if it has one"""
        status = getattr(error.resp, 'status', None)
        try:
            return int(status)
        except (TypeError, ValueError):
            return None

    @classmethod
    def is_rate_limited(cls, error: BaseException) -> bool:
        return isinstance(error, HttpError) and cls.status_of(error) == RATE_LIMIT_STATUS

    @staticmethod
    def extract_label_ids(thread_id: str, thread_data: Dict) -> List[str]:
        """Label ids of the thread's first message; missing labels are logged, not fatal"""
        messages = thread_data.get('messages') or []
        label_ids = messages[0].get('labelIds') if messages else None

        if not isinstance(label_ids, list) or not label_ids:
            logger.warning(f"Thread {thread_id} returned with missing or empty labels.")

        if not isinstance(label_ids, list):
            return []
        return list(label_ids)
