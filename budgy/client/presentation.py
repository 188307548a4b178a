from dataclasses import dataclass

from budgy.errors import ErrorKind, ReceiptError, RETRYABLE_KINDS

DEFAULT_SUGGESTION = "Please try again. If the problem persists, contact support."


@dataclass(frozen=True)
class ErrorPresentation:
    title: str
    message: str
    suggestion: str | None
    retryable: bool

    @property
    def actions(self) -> list[str]:
        return ["OK", "Retry"] if self.retryable else ["OK"]


MESSAGES: dict[ErrorKind, tuple[str, str, str | None]] = {
    ErrorKind.UNAUTHENTICATED: (
        "Sign In Required",
        "Authentication failed. Please sign in again.",
        "Please sign out and sign in again.",
    ),
    ErrorKind.QUOTA_EXCEEDED: (
        "Limit Reached",
        "Processing limit reached. Please try again later.",
        "Wait a few minutes before trying again, or upgrade your plan.",
    ),
    ErrorKind.INVALID_INPUT: (
        "Nothing to Process",
        "No receipt text was found to process.",
        "Try taking a new photo of the receipt.",
    ),
    ErrorKind.EXTRACTION_FAILURE: (
        "Couldn't Read Receipt",
        "Unable to read text from the receipt. Please ensure the receipt is clear and well-lit.",
        "Try taking a new photo with better lighting and focus.",
    ),
    ErrorKind.GENERATION_FAILURE: (
        "Processing Failed",
        "Unable to process receipt data. Please try again or enter the receipt manually.",
        "You can manually enter the receipt details instead.",
    ),
    ErrorKind.GENERATION_PARSE_FAILURE: (
        "Processing Failed",
        "Unable to extract receipt information. Please try again or enter the details manually.",
        "You can manually enter the receipt details instead.",
    ),
    ErrorKind.STORE_FAILURE: (
        "Sync Problem",
        "Your receipts couldn't be saved or loaded right now.",
        None,
    ),
    ErrorKind.NETWORK_UNAVAILABLE: (
        "No Connection",
        "No internet connection. Please check your network and try again.",
        "Check your WiFi or cellular connection and try again.",
    ),
    ErrorKind.SERVICE_UNAVAILABLE: (
        "Service Unavailable",
        "The receipt service is temporarily unavailable.",
        None,
    ),
}


def present(error: ReceiptError | ErrorKind) -> ErrorPresentation:
    kind = error.kind if isinstance(error, ReceiptError) else error
    title, message, suggestion = MESSAGES[kind]
    return ErrorPresentation(
        title=title,
        message=message,
        suggestion=suggestion or DEFAULT_SUGGESTION,
        retryable=kind in RETRYABLE_KINDS,
    )
