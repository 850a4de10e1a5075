from typing import Optional


def error_message_detail(error, error_detail) -> str:
    """Builds an error message pointing at the file and line that raised."""
    _, _, exc_tb = error_detail.exc_info() if error_detail else (None, None, None)
    if exc_tb is None:
        return str(error)

    while exc_tb.tb_next is not None:
        exc_tb = exc_tb.tb_next
    file_name = exc_tb.tb_frame.f_code.co_filename
    return "Error occurred in python script [{0}] line number [{1}] error message [{2}]".format(
        file_name, exc_tb.tb_lineno, str(error)
    )


class CustomException(Exception):
    """Base error for the package. Keeps the original error around as `cause`."""

    kind = "internal_error"

    def __init__(self, error, error_detail=None):
        self.cause = error if isinstance(error, BaseException) else None
        self.error_message = error_message_detail(error, error_detail)
        super().__init__(self.error_message)

    def __str__(self):
        return self.error_message


# ---------------------------------------------------------------------
# Validation errors (fatal, never retried)
# ---------------------------------------------------------------------

class InvalidFormatError(CustomException):
    kind = "invalid_format"


class TooLargeError(CustomException):
    kind = "too_large"


class CorruptedImageError(CustomException):
    kind = "corrupted"


# ---------------------------------------------------------------------
# Recognition errors
# ---------------------------------------------------------------------

class TransientRecognitionError(CustomException):
    """Engine warm-up failures, resource exhaustion, empty engine output."""

    kind = "recognition_transient"


class RecognitionConfigError(CustomException):
    """Unknown backend or unsupported language profile."""

    kind = "recognition_config"


class RecognitionFailedError(CustomException):
    kind = "recognition_failed"

    def __init__(self, error, error_detail=None, attempts: int = 0,
                 last_error: Optional[BaseException] = None):
        super().__init__(error, error_detail)
        self.attempts = attempts
        self.last_error = last_error


class StorageError(CustomException):
    kind = "storage_error"


__all__ = [
    "CustomException",
    "InvalidFormatError",
    "TooLargeError",
    "CorruptedImageError",
    "TransientRecognitionError",
    "RecognitionConfigError",
    "RecognitionFailedError",
    "StorageError",
    "error_message_detail",
]
