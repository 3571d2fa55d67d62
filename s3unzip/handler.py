"""AWS Lambda entry point for the CloudFormation custom resource.

CloudFormation sends ``Create``, ``Update`` and ``Delete`` requests and
waits for a JSON document to be PUT to a pre-signed ``ResponseURL``. This
module maps those requests onto the :class:`~s3unzip.sync.Reconciler` and
always reports back, so a stack never hangs waiting for the resource.
"""

from __future__ import annotations

import json
import logging
import random
import threading
import time
from typing import Any

import httpx

from .api import StorageClient
from .config import DEFAULT_RESPONSE_TIMEOUT, config
from .models import PackageRequest, ReconcileResult, ResourceResponse
from .sync import Reconciler

logger = logging.getLogger(__name__)

SUCCESS = "SUCCESS"
FAILED = "FAILED"

# CloudFormation limits the response document to 4096 bytes
MAX_REASON_LENGTH = 1024


class ResponseSender:
    """Sends custom-resource responses to CloudFormation."""

    def __init__(
        self,
        timeout: float | None = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        client: httpx.Client | None = None,
    ):
        """Initialize response sender.

        Args:
            timeout: Request timeout in seconds (uses config if not provided)
            max_retries: Maximum number of retry attempts (default: 3)
            retry_delay: Initial delay between retries in seconds (default: 1.0)
            client: Optional httpx client
        """
        self.timeout = timeout if timeout is not None else config.response_timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._client = client

    def _get_client(self) -> httpx.Client:
        if self._client is None or self._client.is_closed:
            self._client = httpx.Client(timeout=httpx.Timeout(self.timeout))
        return self._client

    def _should_retry(self, exception: Exception, attempt: int) -> bool:
        if attempt >= self.max_retries:
            return False
        if isinstance(exception, httpx.RequestError):
            return True
        if isinstance(exception, httpx.HTTPStatusError):
            return 500 <= exception.response.status_code < 600
        return False

    def _calculate_retry_delay(self, attempt: int) -> float:
        # Exponential backoff with +/- 25% jitter
        base_delay = self.retry_delay * (2**attempt)
        jitter = base_delay * 0.25 * (2 * random.random() - 1)
        return base_delay + jitter

    def send(self, url: str, body: dict[str, Any]) -> None:
        """PUT a response document to the pre-signed URL.

        Raises:
            httpx.HTTPError: If the response could not be delivered
        """
        payload = json.dumps(body)
        # the pre-signed URL is signed without a content type
        headers = {"Content-Type": ""}

        attempt = 0
        while True:
            try:
                response = self._get_client().put(url, content=payload, headers=headers)
                response.raise_for_status()
                logger.debug(f"Sent {body['Status']} response to CloudFormation")
                return
            except httpx.HTTPError as e:
                if not self._should_retry(e, attempt):
                    raise
                delay = self._calculate_retry_delay(attempt)
                logger.warning(
                    f"Sending response failed ({e}), retrying in {delay:.1f}s"
                )
                time.sleep(delay)
                attempt += 1

    def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            self._client.close()
            self._client = None


def build_response(
    event: dict[str, Any],
    context: Any,
    status: str,
    response: ResourceResponse | None = None,
    reason: str | None = None,
) -> dict[str, Any]:
    """Build the response document for a custom-resource request."""
    physical_id = response.physical_resource_id if response else None
    if not physical_id:
        physical_id = (
            event.get("PhysicalResourceId")
            or getattr(context, "log_stream_name", None)
            or event.get("RequestId")
        )
    if reason is None:
        reason = "See CloudWatch log stream: " + str(
            getattr(context, "log_stream_name", "unknown")
        )
    return {
        "Status": status,
        "Reason": reason[:MAX_REASON_LENGTH],
        "PhysicalResourceId": physical_id,
        "StackId": event.get("StackId"),
        "RequestId": event.get("RequestId"),
        "LogicalResourceId": event.get("LogicalResourceId"),
        "NoEcho": False,
        "Data": dict(response.attributes) if response else {},
    }


def start_deadline_watch(
    context: Any, margin: float
) -> tuple[threading.Event, threading.Timer | None]:
    """Return an event that is set shortly before the Lambda times out."""
    cancel_event = threading.Event()
    get_remaining = getattr(context, "get_remaining_time_in_millis", None)
    if get_remaining is None:
        return cancel_event, None
    seconds_left = get_remaining() / 1000.0 - margin
    timer = threading.Timer(max(seconds_left, 0.0), cancel_event.set)
    timer.daemon = True
    timer.start()
    return cancel_event, timer


def dispatch(
    reconciler: Reconciler,
    event: dict[str, Any],
    cancel_event: threading.Event | None = None,
) -> ReconcileResult:
    """Run the reconciliation matching the request type."""
    request_type = event.get("RequestType")
    request = PackageRequest.from_properties(event.get("ResourceProperties"))

    if request_type == "Create":
        return reconciler.create(request, cancel_event)
    if request_type == "Update":
        old_request = PackageRequest.from_properties(event.get("OldResourceProperties"))
        return reconciler.update(old_request, request, cancel_event)
    if request_type == "Delete":
        return reconciler.delete(request, cancel_event)
    raise ValueError(f"Unsupported request type: {request_type}")


def handle_event(
    event: dict[str, Any],
    context: Any,
    reconciler: Reconciler | None = None,
    sender: ResponseSender | None = None,
) -> dict[str, Any]:
    """Process a custom-resource request and report the result.

    Returns:
        The response document sent to CloudFormation
    """
    timer = None
    logger.info(
        f"Received {event.get('RequestType')} request "
        f"for {event.get('LogicalResourceId')}"
    )
    try:
        sender = sender or ResponseSender()
        cancel_event, timer = start_deadline_watch(context, config.timeout_margin)
        if reconciler is None:
            reconciler = Reconciler(StorageClient())
        result = dispatch(reconciler, event, cancel_event)
        if result.ok:
            body = build_response(event, context, SUCCESS, result.response)
            logger.info(f"Reconciliation succeeded: {result.stats.to_dict()}")
        else:
            body = build_response(event, context, FAILED, reason=str(result.error))
    except Exception as e:
        logger.exception("Unhandled error while processing request")
        body = build_response(
            event, context, FAILED, reason=f"{type(e).__name__}: {e}"
        )
    finally:
        if timer is not None:
            timer.cancel()

    if sender is None:
        # the configured timeout could not be read
        sender = ResponseSender(timeout=DEFAULT_RESPONSE_TIMEOUT)
    response_url = event.get("ResponseURL")
    if response_url:
        try:
            sender.send(response_url, body)
        finally:
            sender.close()
    else:
        logger.warning("Request has no ResponseURL, response not sent")
    return body


def handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Lambda handler."""
    try:
        logging.getLogger().setLevel(config.log_level)
    except ValueError:
        logger.warning(f"Unknown log level {config.log_level!r}, keeping default")
    return handle_event(event, context)
