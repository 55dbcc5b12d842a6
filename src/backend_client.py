"""
REST client for the warehouse backend.

The backend owns persistence; the station only fetches a document, a few
lookup tables, and submits the reconciled result once. Every call goes
through _request(), which retries connection errors and 5xx answers with a
fixed delay and insists on a JSON body.

Every endpoint answers with the same envelope:

    {"ok": true, ...}                  on success
    {"ok": false, "error": "message"}  on a handled failure
"""

import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from exceptions import ConfigurationError, NetworkError, SubmissionError
from logger import get_logger
from models import DocumentHeader
from scan_matcher import ContainerContentIndex
from settings import ReconcilerSettings

logger = get_logger(__name__)


class BackendClient:
    """
    Attributes:
        base_url (str): Backend root, no trailing slash
        timeout (int): Per-request timeout in seconds
        max_retries (int): Attempts per call
        retry_delay (float): Seconds between attempts
        session (requests.Session): Shared HTTP session
    """

    def __init__(self, settings: ReconcilerSettings,
                 session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        if not settings.base_url:
            raise ConfigurationError("[Backend] BaseUrl is not set in config.ini")

        self.base_url = settings.base_url
        self.timeout = settings.timeout_seconds
        self.max_retries = max(settings.max_retries, 1)
        self.retry_delay = settings.retry_delay_seconds
        self.session = session or requests.Session()
        self.session.headers.update({'Accept': 'application/json'})
        self._sleep = sleep

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """
        Send a request with retries and return the decoded JSON body.

        Raises:
            NetworkError: When every attempt failed or the body is not JSON
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        last_error = None

        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except requests.exceptions.RequestException as e:
                last_error = f"{type(e).__name__}: {e}"
            else:
                if response.status_code < 500:
                    try:
                        return response.json()
                    except ValueError:
                        logger.error(f"Non-JSON response from {url}: {response.text[:200]}")
                        raise NetworkError(f"Invalid response from the server for {path} (not JSON)") from None
                last_error = f"server error {response.status_code}"

            if attempt < self.max_retries:
                logger.warning(f"{method} {path} attempt {attempt}/{self.max_retries} failed "
                               f"({last_error}), retrying in {self.retry_delay}s")
                self._sleep(self.retry_delay)

        logger.error(f"{method} {path} failed after {self.max_retries} attempts: {last_error}")
        raise NetworkError(f"{method} {path} failed after {self.max_retries} attempts: {last_error}")

    @staticmethod
    def _unwrap(data: Dict[str, Any], what: str) -> Dict[str, Any]:
        if not isinstance(data, dict) or not data.get('ok', False):
            error = data.get('error') if isinstance(data, dict) else None
            raise NetworkError(error or f"{what} failed")
        return data

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def fetch_document(self, folio: str) -> Tuple[DocumentHeader, List[Dict[str, Any]]]:
        """
        Fetch a document header and its detail rows.

        Returns:
            (DocumentHeader, rows); rows are meant for LineRegistry.from_rows()
        """
        data = self._unwrap(self._request('GET', f"documents/{folio}"), f"Loading document {folio}")
        raw = data.get('header') or {}
        document_id = raw.get('document_id')
        header = DocumentHeader(
            folio=str(raw.get('folio') or folio),
            document_id=int(document_id) if document_id not in (None, '') else None,
            origin=raw.get('origin', '') or '',
            destination=raw.get('destination', '') or '',
            operator=raw.get('operator', '') or '',
            warehouse=raw.get('warehouse', '') or '',
        )
        rows = data.get('rows') or []
        logger.info(f"Fetched document {header.folio} with {len(rows)} rows")
        return header, rows

    def fetch_container_index(self) -> ContainerContentIndex:
        """Inner-pack code -> (article, multiplier) table."""
        data = self._unwrap(self._request('GET', "container-content"), "Loading container contents")
        return ContainerContentIndex.from_rows(data.get('rows') or [])

    def check_availability(self, document_id: int) -> bool:
        """Ask whether every article of an order is available to ship."""
        data = self._unwrap(self._request('GET', f"documents/{document_id}/availability"),
                            "Availability check")
        return bool(data.get('available', False))

    def submit_finalization(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Submit the reconciled document.

        Raises:
            SubmissionError: On any failure; the payload is attached for retry
        """
        folio = payload.get('header', {}).get('folio', '?')
        try:
            data = self._request('POST', "documents/finalize", json=payload)
        except NetworkError as e:
            raise SubmissionError(str(e), attempts=self.max_retries, payload=payload) from e

        if not isinstance(data, dict) or not data.get('ok', False):
            error = data.get('error') if isinstance(data, dict) else None
            logger.error(f"Backend rejected finalization of {folio}: {error}")
            raise SubmissionError(error or "The backend rejected the document", attempts=1, payload=payload)

        logger.info(f"Document {folio} finalized on the backend")
        return data

    # ------------------------------------------------------------------
    # Catalog (manual-add fallback)
    # ------------------------------------------------------------------

    def lookup_article(self, code: str) -> Optional[Dict[str, Any]]:
        """Exact code lookup; None when the catalog has no such article."""
        data = self._request('GET', "articles", params={'code': code})
        if not data.get('ok', False) or not data.get('article'):
            return None
        return data['article']

    def search_articles(self, description: str) -> List[Dict[str, Any]]:
        data = self._request('GET', "articles/search", params={'description': description})
        if not data.get('ok', False):
            return []
        return data.get('articles') or []
