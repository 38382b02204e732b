"""Thin REST client for Google APIs (Calendar, Sheets, BigQuery)."""
import json
import logging
import os
import time
from typing import Any, Callable, Dict, Optional, Sequence

import google.auth.exceptions
import google.auth.transport.requests
import requests
from google.oauth2 import service_account

from processor.errors import ConfigurationError

logger = logging.getLogger(__name__)

METADATA_TOKEN_URL = (
    "http://metadata.google.internal/computeMetadata/v1/"
    "instance/service-accounts/default/token"
)

GOOGLE_SCOPES = (
    'https://www.googleapis.com/auth/calendar.readonly',
    'https://www.googleapis.com/auth/spreadsheets.readonly',
    'https://www.googleapis.com/auth/bigquery',
)


class GoogleApiError(Exception):
    """Raised when a Google API call returns a non-retryable error."""

    def __init__(self, status_code: Optional[int], message: str):
        super().__init__(message)
        self.status_code = status_code


def load_service_account_credentials(scopes: Sequence[str] = GOOGLE_SCOPES):
    """
    Build service account credentials from the environment.

    GOOGLE_SERVICE_ACCOUNT_JSON holds the key file contents;
    GOOGLE_SERVICE_ACCOUNT_FILE points at a key file on disk.

    Returns:
        google.oauth2.service_account.Credentials, or None if neither is set

    Raises:
        ConfigurationError: If the key JSON cannot be parsed
    """
    key_json = os.environ.get('GOOGLE_SERVICE_ACCOUNT_JSON')
    if key_json:
        try:
            info = json.loads(key_json)
        except ValueError as e:
            raise ConfigurationError(
                f"GOOGLE_SERVICE_ACCOUNT_JSON is not valid JSON: {e}",
                missing=['GOOGLE_SERVICE_ACCOUNT_JSON']
            ) from e
        logger.info("Using service account credentials from GOOGLE_SERVICE_ACCOUNT_JSON")
        return service_account.Credentials.from_service_account_info(info, scopes=list(scopes))

    key_file = os.environ.get('GOOGLE_SERVICE_ACCOUNT_FILE')
    if key_file:
        logger.info(f"Using service account credentials from {key_file}")
        return service_account.Credentials.from_service_account_file(key_file, scopes=list(scopes))

    return None


class AccessTokenProvider:
    """
    Supplies OAuth2 access tokens.

    Sources in order: GOOGLE_ACCESS_TOKEN, service account credentials
    (refreshed when expired), then the GCE metadata server.
    """

    REFRESH_MARGIN_SECONDS = 30

    def __init__(self, static_token: Optional[str] = None, credentials=None, timeout: float = 2.0):
        self.static_token = static_token if static_token is not None else os.environ.get('GOOGLE_ACCESS_TOKEN')
        self.credentials = credentials if credentials is not None else load_service_account_credentials()
        self.timeout = timeout
        self._token: Optional[str] = None
        self._expires_at = 0.0

    def __call__(self) -> str:
        if self.static_token:
            return self.static_token

        if self.credentials is not None:
            return self._service_account_token()

        now = time.time()
        if self._token and self._expires_at - now > self.REFRESH_MARGIN_SECONDS:
            return self._token

        try:
            response = requests.get(
                METADATA_TOKEN_URL,
                headers={'Metadata-Flavor': 'Google'},
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise GoogleApiError(None, f"Failed to obtain access token from metadata server: {e}") from e

        payload = response.json()
        self._token = payload['access_token']
        self._expires_at = now + int(payload.get('expires_in', 3600))
        return self._token

    def _service_account_token(self) -> str:
        if not self.credentials.valid:
            try:
                self.credentials.refresh(google.auth.transport.requests.Request())
            except google.auth.exceptions.GoogleAuthError as e:
                raise GoogleApiError(None, f"Failed to refresh service account credentials: {e}") from e
            logger.debug("Service account access token refreshed")
        return self.credentials.token


class GoogleApiClient:
    """JSON-over-HTTP client with bearer auth and retry logic."""

    RETRYABLE_STATUS = {429, 500, 502, 503, 504}

    def __init__(
        self,
        token_provider: Callable[[], str],
        timeout: int = 30,
        max_retries: int = 3,
        base_delay: float = 1.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the API client.

        Args:
            token_provider: Callable returning an OAuth2 access token
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts per request (default: 3)
            base_delay: First backoff delay in seconds, doubled per attempt
            session: Optional requests session to reuse
        """
        self.token_provider = token_provider
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.session = session or requests.Session()

    def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return self._request('GET', url, params=params)

    def post_json(self, url: str, body: Dict[str, Any]) -> Dict[str, Any]:
        return self._request('POST', url, json=body)

    def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        """
        Send a request with exponential backoff on transient failures.

        Raises:
            GoogleApiError: On a non-retryable status or when retries run out
        """
        for attempt in range(self.max_retries):
            last_attempt = attempt == self.max_retries - 1
            try:
                response = self.session.request(
                    method,
                    url,
                    headers={'Authorization': f"Bearer {self.token_provider()}"},
                    timeout=self.timeout,
                    **kwargs
                )
            except requests.RequestException as e:
                if last_attempt:
                    logger.error(f"All {self.max_retries} attempts failed for {method} {url}: {e}")
                    raise GoogleApiError(None, str(e)) from e
                self._backoff(attempt, e)
                continue

            if response.status_code in self.RETRYABLE_STATUS and not last_attempt:
                self._backoff(attempt, f"HTTP {response.status_code}")
                continue

            if response.status_code >= 400:
                raise GoogleApiError(response.status_code, _error_message(response))

            if not response.content:
                return {}
            return response.json()

        # Unreachable: the final attempt either returns or raises.
        raise GoogleApiError(None, f"{method} {url} failed")

    def _backoff(self, attempt: int, reason) -> None:
        delay = self.base_delay * (2 ** attempt)
        logger.warning(
            f"Request failed (attempt {attempt + 1}/{self.max_retries}): {reason}. "
            f"Retrying in {delay} seconds..."
        )
        time.sleep(delay)


def _error_message(response: requests.Response) -> str:
    try:
        error = response.json().get('error', {})
    except ValueError:
        return f"HTTP {response.status_code}: {response.text[:200]}"
    if isinstance(error, dict):
        return f"HTTP {response.status_code}: {error.get('message', '')}"
    return f"HTTP {response.status_code}: {error}"
