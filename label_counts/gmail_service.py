"""
Gmail Service - Facade for Gmail operations
Handles authentication and delegates scanning to LabelAggregator
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, Optional

import google_auth_httplib2
import httplib2
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from label_counts.aggregator import LabelAggregator
from label_counts.errors import CredentialsError
from label_counts.models import LabelDirectory, LabelReport, ScanConfig
from label_counts.stability import StabilityPredicate, predicate_from_names


logger = logging.getLogger(__name__)

# If modifying these scopes, delete the file token.json.
SCOPES = ['https://www.googleapis.com/auth/gmail.readonly']


class GmailService:
    """Facade for Gmail operations - handles auth and delegates to LabelAggregator"""

    def __init__(self, config: ScanConfig):
        self.config = config
        self.credentials: Optional[Credentials] = None
        self.service = None

        # Progress callback
        self.progress_callback: Optional[Callable] = None

    def set_progress_callback(self, callback: Callable[[str, Dict], None]):
        """Set callback for progress updates"""
        self.progress_callback = callback

    # === Authentication ===

    def authenticate(self) -> None:
        """Load, refresh or create OAuth credentials and build the Gmail client"""
        creds = None
        token_path = Path(self.config.token_path)

        if token_path.exists():
            creds = Credentials.from_authorized_user_file(str(token_path), SCOPES)

        if not creds or not creds.valid:
            if creds and creds.expired and creds.refresh_token:
                logger.info("Refreshing expired credentials")
                creds.refresh(Request())
            else:
                creds = self._run_oauth_flow()

            # Save the credentials for the next run
            token_path.parent.mkdir(parents=True, exist_ok=True)
            token_path.write_text(creds.to_json())

        self.credentials = creds
        self.service = build('gmail', 'v1', credentials=creds)
        logger.info("Successfully authenticated with Gmail")

    def _run_oauth_flow(self) -> Credentials:
        credentials_path = Path(self.config.credentials_path)
        if not credentials_path.exists():
            raise CredentialsError(
                f"Gmail credentials file not found: {credentials_path}. "
                "Download credentials.json from Google Cloud Console."
            )

        flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), SCOPES)
        return flow.run_local_server(port=0)

    def new_http(self) -> google_auth_httplib2.AuthorizedHttp:
        """A fresh authorized transport, one per concurrent request"""
        return google_auth_httplib2.AuthorizedHttp(self.credentials, http=httplib2.Http())

    # === Labels ===

    def get_label_directory(self) -> LabelDirectory:
        """Fetch every label of the account as an id <-> name directory"""
        self._require_service()

        results = self.service.users().labels().list(userId='me').execute()
        directory = LabelDirectory.from_api(results.get('labels', []))
        logger.info(f"Loaded {len(directory)} labels")
        return directory

    def stability_predicate(self, directory: LabelDirectory) -> StabilityPredicate:
        """Terminal-label predicate when STABLE_LABELS is set, else the configured one"""
        if self.config.stable_label_names:
            return predicate_from_names(self.config.stable_label_names, directory)
        return self.config.is_stable

    # === Scan (delegates to LabelAggregator) ===

    async def scan(self) -> LabelReport:
        """Count labels across all inbox threads"""
        self._require_service()

        directory = self.get_label_directory()
        config = replace(self.config, is_stable=self.stability_predicate(directory))

        aggregator = LabelAggregator(
            self.service,
            config,
            directory,
            progress_callback=self.progress_callback,
            http_factory=self.new_http
        )
        working_set = await aggregator.load_working_set()
        return await aggregator.run(working_set)

    def _require_service(self) -> None:
        if not self.service:
            raise RuntimeError("Not authenticated. Call authenticate() first.")
