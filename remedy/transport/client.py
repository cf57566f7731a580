"""
HTTP client for the remote sync service.

Handles retry with exponential backoff and classifies every failure into
an explicit result value. Independent of local storage.
"""

import logging
import time
from typing import Callable, Optional

import requests

from ..models.sync_meta import format_timestamp
from .models import BatchResponse, ItemResponse, SyncBatch
from .results import Conflict, NetworkError, Ok, Rejected, Timeout, TransportResult

logger = logging.getLogger(__name__)


class SyncClient:
    """
    Client for the remote sync service.

    Handles:
    - Health checks, batch push and incremental pull
    - Direct per-entity pushes outside the bulk flow
    - Retry with exponential backoff for connection errors and 5xx
    - Fail-fast on timeouts and 4xx

    Usage:
        with SyncClient(base_url="http://localhost:5000") as client:
            if client.health_check().ok:
                outcome = client.push_batch(batch)
    """

    # API endpoints
    HEALTH_ENDPOINT = "/api/sync/health"
    BATCH_ENDPOINT = "/api/sync/batch"
    PULL_ENDPOINT = "/api/sync/pull"
    RESOURCES_ENDPOINT = "/api/resources"
    SLOTS_ENDPOINT = "/api/slots"

    def __init__(
        self,
        base_url: str,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize sync client.

        Args:
            base_url: Remote service URL (e.g., http://localhost:5000)
            max_retries: Maximum attempts per call, including the first
            retry_delay: Delay before the first retry in seconds; doubles after each
            timeout: Per-request timeout in seconds
            session: Pre-configured session (mainly for tests)
            sleep: Sleep function used between attempts
        """
        if max_retries < 1:
            raise ValueError(f"max_retries must be at least 1, got {max_retries}")

        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self._sleep = sleep

        self._session = session or requests.Session()
        self._session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

        logger.info(f"Sync client initialized for {self.base_url}")

    def __repr__(self) -> str:
        return f"SyncClient(base_url='{self.base_url}')"

    def _request(
        self,
        method: str,
        endpoint: str,
        description: str,
        params: Optional[dict] = None,
        payload: Optional[dict] = None,
    ) -> TransportResult:
        """
        Make a request with retry and classify the outcome.

        Args:
            method: HTTP method
            endpoint: API endpoint path
            description: Human-readable call name for logging
            params: Query parameters
            payload: JSON body

        Returns:
            Ok with the parsed JSON body (None if empty), or a failure result
        """
        url = f"{self.base_url}{endpoint}"
        delay = self.retry_delay
        last_error = "no attempt made"

        for attempt in range(1, self.max_retries + 1):
            try:
                response = self._session.request(
                    method=method,
                    url=url,
                    params=params,
                    json=payload,
                    timeout=self.timeout,
                )
            except requests.exceptions.Timeout as e:
                # Checked before ConnectionError: ConnectTimeout is both
                logger.error(f"{description} timed out: {e}")
                return Timeout(f"Request timeout: {e}")
            except requests.exceptions.ConnectionError as e:
                last_error = f"Connection failed: {e}"
            except requests.exceptions.RequestException as e:
                logger.error(f"{description} failed: {e}")
                return Rejected(f"Unexpected error: {e}")
            else:
                status = response.status_code

                if response.ok:
                    return self._parse_success(response, description)

                if status == 409:
                    logger.warning(f"{description} rejected with a version conflict")
                    return Conflict(info=self._json_or_empty(response))

                if 400 <= status < 500:
                    error_msg = f"Server error: {status} - {response.text}"
                    logger.error(f"{description} rejected: {error_msg}")
                    return Rejected(error_msg, status_code=status)

                last_error = f"Server error: {status}"

            if attempt < self.max_retries:
                logger.warning(
                    f"Retry {attempt}/{self.max_retries} for {description}: {last_error}. "
                    f"Waiting {delay}s..."
                )
                self._sleep(delay)
                delay *= 2

        error_msg = f"Network error after {self.max_retries} attempts: {last_error}"
        logger.error(f"{description} failed: {error_msg}")
        return NetworkError(error_msg, attempts=self.max_retries)

    @staticmethod
    def _parse_success(response: requests.Response, description: str) -> TransportResult:
        if not response.content:
            return Ok(data=None, status_code=response.status_code)
        try:
            return Ok(data=response.json(), status_code=response.status_code)
        except ValueError as e:
            logger.error(f"{description} returned an invalid body: {e}")
            return Rejected(f"Invalid response body: {e}", status_code=response.status_code)

    @staticmethod
    def _json_or_empty(response: requests.Response) -> dict:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def health_check(self) -> TransportResult:
        """
        Check whether the remote service is reachable.

        Returns:
            Ok if the service answered 2xx, a failure result otherwise
        """
        logger.debug("Checking remote health...")
        return self._request("GET", self.HEALTH_ENDPOINT, "health check")

    def push_batch(self, batch: SyncBatch) -> TransportResult:
        """
        Push a batch of pending records.

        Args:
            batch: Records to push

        Returns:
            Ok with a BatchResponse, or a failure result
        """
        logger.info(
            f"Pushing batch: {len(batch.resources)} resources, "
            f"{len(batch.time_slots)} time slots"
        )

        outcome = self._request(
            "POST",
            self.BATCH_ENDPOINT,
            "batch push",
            payload=batch.to_api_payload(),
        )
        if not outcome.ok:
            return outcome

        try:
            response = BatchResponse.from_api_response(outcome.data or {})
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed batch response: {e}")
            return Rejected(f"Malformed batch response: {e}", status_code=outcome.status_code)

        logger.info(
            f"Batch pushed: {response.success_count} succeeded, "
            f"{response.failure_count} failed"
        )
        return Ok(data=response, status_code=outcome.status_code)

    def pull(self, since=None) -> TransportResult:
        """
        Pull every remote record modified after `since`.

        Args:
            since: Checkpoint datetime, or None for everything

        Returns:
            Ok with a SyncBatch, or a failure result
        """
        params = {"since": format_timestamp(since)} if since else None
        logger.info(f"Pulling changes since {since or 'the beginning'}")

        outcome = self._request("GET", self.PULL_ENDPOINT, "pull", params=params)
        if not outcome.ok:
            return outcome

        try:
            batch = SyncBatch.from_api_response(outcome.data or {})
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.error(f"Malformed pull response: {e}")
            return Rejected(f"Malformed pull response: {e}", status_code=outcome.status_code)

        for skipped in batch.skipped:
            logger.warning(
                f"Skipping malformed {skipped.kind.value} {skipped.item_id}: {skipped.error}"
            )

        logger.info(
            f"Pulled {len(batch.resources)} resources, "
            f"{len(batch.time_slots)} time slots"
        )
        return Ok(data=batch, status_code=outcome.status_code)

    def _push_item(self, endpoint: str, record, description: str) -> TransportResult:
        outcome = self._request("POST", endpoint, description, payload=record.to_wire())
        if not outcome.ok:
            return outcome

        try:
            item = ItemResponse.from_api_response(outcome.data or {})
        except (TypeError, ValueError) as e:
            return Rejected(f"Malformed response: {e}", status_code=outcome.status_code)
        return Ok(data=item, status_code=outcome.status_code)

    def push_resource(self, resource) -> TransportResult:
        """Create or update one resource through the direct endpoint."""
        return self._push_item(self.RESOURCES_ENDPOINT, resource, f"push resource {resource.sync.local_id}")

    def push_time_slot(self, time_slot) -> TransportResult:
        """Create or update one time slot through the direct endpoint."""
        return self._push_item(self.SLOTS_ENDPOINT, time_slot, f"push time slot {time_slot.sync.local_id}")

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()
        logger.debug("Sync client session closed")

    def __enter__(self) -> "SyncClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
