"""
Shared test fixtures for Gmail Label Counts tests
"""

import threading
import time
from typing import Dict, List, Optional

import pytest
from googleapiclient.errors import HttpError

from label_counts.models import LabelDirectory, RetryPolicy, ScanConfig


# === Mock Gmail API Service ===

class MockExecute:
    """Mock for the .execute() call that returns stored data"""
    def __init__(self, data=None, action=None):
        self._data = data
        self._action = action

    def execute(self, http=None):
        if self._action:
            return self._action()
        return self._data


class MockHttpResponse:
    """Mock HTTP response for HttpError"""
    def __init__(self, status: int, reason: str):
        self.status = status
        self.reason = reason


def make_http_error(status: int, reason: str) -> HttpError:
    return HttpError(resp=MockHttpResponse(status, reason), content=reason.encode('utf-8'))


class MockThreadsList:
    """Mock for threads().list() - pages through the ids registered for a query"""
    def __init__(self, mock: 'MockGmailService'):
        self._mock = mock

    def list(self, userId: str, maxResults: int = 100, pageToken: Optional[str] = None, q: str = None):
        self._mock.list_calls.append(q)
        thread_ids = self._mock.query_results(q)

        start_idx = int(pageToken) if pageToken else 0
        end_idx = min(start_idx + maxResults, len(thread_ids))

        # Only include id in list response (like real API)
        result = {'threads': [{'id': thread_id} for thread_id in thread_ids[start_idx:end_idx]]}

        if end_idx < len(thread_ids):
            result['nextPageToken'] = str(end_idx)

        return MockExecute(result)


class MockThreadsGet:
    """Mock for threads().get() with optional rate limiting and failures"""
    def __init__(self, mock: 'MockGmailService'):
        self._mock = mock

    def get(self, userId: str, id: str, format: str = None):
        return MockExecute(action=lambda: self._mock.get_thread(id))


class MockThreads:
    """Mock for users().threads()"""
    def __init__(self, mock: 'MockGmailService'):
        self._list = MockThreadsList(mock)
        self._get = MockThreadsGet(mock)

    def list(self, **kwargs):
        return self._list.list(**kwargs)

    def get(self, **kwargs):
        return self._get.get(**kwargs)


class MockLabels:
    """Mock for users().labels()"""
    def __init__(self, labels: List[Dict]):
        self._labels = labels

    def list(self, userId: str):
        return MockExecute({'labels': self._labels})


class MockUsers:
    """Mock for service.users()"""
    def __init__(self, mock: 'MockGmailService'):
        self._threads = MockThreads(mock)
        self._labels = MockLabels(mock.labels)

    def threads(self):
        return self._threads

    def labels(self):
        return self._labels


class MockGmailService:
    """Mock Gmail API service that simulates an inbox and its labels

    rate_limited maps a thread id to the number of 429 responses it returns
    before succeeding (None = always 429). fail_threads answer 404.
    """

    def __init__(
        self,
        threads: List[dict],
        labels: List[Dict] = None,
        queries: Dict[str, List[str]] = None,
        rate_limited: Dict[str, Optional[int]] = None,
        fail_threads=None,
        latency: float = 0.0
    ):
        self.threads_by_id = {thread['id']: thread for thread in threads}
        self.inbox_ids = [thread['id'] for thread in threads]
        self.labels = labels or []
        self.queries = queries or {}
        self.rate_limited = dict(rate_limited or {})
        self.fail_threads = set(fail_threads or ())
        self.latency = latency

        self.get_calls: List[str] = []
        self.list_calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def users(self):
        return MockUsers(self)

    def query_results(self, query: str) -> List[str]:
        if query in self.queries:
            return self.queries[query]
        if query == 'in:inbox':
            return self.inbox_ids
        return []

    def get_thread(self, thread_id: str) -> dict:
        with self._lock:
            self.get_calls.append(thread_id)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                time.sleep(self.latency)

            if thread_id in self.rate_limited:
                remaining = self.rate_limited[thread_id]
                if remaining is None or remaining > 0:
                    if remaining is not None:
                        self.rate_limited[thread_id] = remaining - 1
                    raise make_http_error(429, 'Too Many Requests')

            if thread_id in self.fail_threads:
                raise make_http_error(404, 'Not Found')

            return self.threads_by_id.get(thread_id, {'id': thread_id, 'messages': []})
        finally:
            with self._lock:
                self.in_flight -= 1

    def fetch_count(self, thread_id: str) -> int:
        return self.get_calls.count(thread_id)


# === Helpers to create API data ===

def make_thread(thread_id: str, labels: List[str] = None, message_count: int = 1) -> dict:
    """Helper to create a format='minimal' thread matching Gmail API structure"""
    labels = ['INBOX'] if labels is None else labels

    messages = []
    for i in range(message_count):
        messages.append({
            'id': f'{thread_id}_msg_{i}',
            'threadId': thread_id,
            'labelIds': labels
        })

    return {
        'id': thread_id,
        'historyId': '1000',
        'messages': messages
    }


def make_label(label_id: str, name: str, label_type: str = 'user') -> dict:
    return {'id': label_id, 'name': name, 'type': label_type}


# === Fixtures ===

@pytest.fixture
def sample_labels() -> List[Dict]:
    return [
        make_label('INBOX', 'INBOX', 'system'),
        make_label('UNREAD', 'UNREAD', 'system'),
        make_label('L_A', 'alpha'),
        make_label('L_B', 'Beta'),
        make_label('L_P', '=P'),
        make_label('L_Q', '=Q'),
    ]


@pytest.fixture
def directory(sample_labels) -> LabelDirectory:
    return LabelDirectory.from_api(sample_labels)


@pytest.fixture
def scan_config(tmp_path) -> ScanConfig:
    """ScanConfig writing its cache under tmp_path, with instant retries"""
    return ScanConfig(
        cache_dir=tmp_path / 'cache',
        retry_policy=RetryPolicy(max_retries=3, base_delay=0.0)
    )


@pytest.fixture
def sleep_calls(monkeypatch) -> List[float]:
    """Replace asyncio.sleep so retry back-off is recorded instead of waited"""
    import asyncio

    calls: List[float] = []

    async def fake_sleep(delay, result=None):
        calls.append(delay)
        return result

    monkeypatch.setattr(asyncio, 'sleep', fake_sleep)
    return calls
