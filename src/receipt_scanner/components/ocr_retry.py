"""
Bounded retry around the recognition adapter.

Attempts run strictly one after another. Attempt n that fails waits
`base_delay * n` before attempt n + 1; the last failure is surfaced as
RecognitionFailedError carrying the attempt count and the last error.
"""

import sys
import time
from typing import Callable, Optional, Sequence

from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_incrementing

from receipt_scanner.exception import RecognitionFailedError
from receipt_scanner.logger import get_logger
from receipt_scanner.models import RecognitionResult

logger = get_logger(__name__)

Recognizer = Callable[[bytes, Sequence[str]], RecognitionResult]


def _log_failed_attempt(retry_state) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning("OCR attempt %d failed: %s", retry_state.attempt_number, exc)


def extract_text_with_retry(
    recognize: Recognizer,
    image_bytes: bytes,
    languages: Sequence[str] = ("eng",),
    max_retries: int = 3,
    base_delay_ms: int = 1000,
    sleep: Optional[Callable[[float], None]] = None,
) -> RecognitionResult:
    """
    Drives `recognize(image_bytes, languages)` until it succeeds or
    `max_retries` attempts have been made.

    Args:
        recognize: the recognition adapter call, usually `OCRHandler.recognize`.
        image_bytes: the enhanced derivative.
        languages: language profile list handed to the adapter.
        max_retries: total number of attempts (>= 1).
        base_delay_ms: linear backoff unit; attempt n waits base_delay_ms * n.
        sleep: injectable sleeper, defaults to time.sleep.

    Returns:
        The first successful RecognitionResult.

    Raises:
        RecognitionFailedError: every attempt raised.
    """
    max_retries = max(1, int(max_retries))
    base_delay = max(0, base_delay_ms) / 1000.0

    retrying = Retrying(
        stop=stop_after_attempt(max_retries),
        wait=wait_incrementing(start=base_delay, increment=base_delay),
        retry=retry_if_exception_type(Exception),
        after=_log_failed_attempt,
        sleep=sleep or time.sleep,
        reraise=False,
    )

    attempts = 0
    try:
        for attempt in retrying:
            with attempt:
                attempts = attempt.retry_state.attempt_number
                result = recognize(image_bytes, list(languages))
            if not attempt.retry_state.outcome.failed:
                if attempts > 1:
                    logger.info("OCR succeeded on attempt %d", attempts)
                return result
    except RetryError as exc:
        last_error = exc.last_attempt.exception()
        logger.error("OCR failed after %d attempt(s): %s", attempts, last_error)
        raise RecognitionFailedError(
            f"OCR processing failed after {attempts} attempt(s): {last_error}",
            sys,
            attempts=attempts,
            last_error=last_error,
        ) from last_error

    # Unreachable: tenacity either returns through the loop or raises RetryError.
    raise RecognitionFailedError("OCR retry loop exited without an outcome", sys, attempts=attempts)
