class DeliveryError(Exception):
    """Base class for delivery engine failures."""


class LoadFailure(DeliveryError):
    """Raised when a section's detail or structure cannot be fetched."""

    def __init__(self, section_id: str, reason: str = "") -> None:
        self.section_id = section_id
        self.reason = reason
        message = f"Failed to load section {section_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class QuestionUnavailable(DeliveryError):
    """Raised by loaders when a single question payload cannot be resolved."""

    def __init__(self, question_id: str, reason: str = "") -> None:
        self.question_id = question_id
        self.reason = reason
        super().__init__(f"Question {question_id} unavailable: {reason or 'not found'}")


class InvalidTransition(DeliveryError):
    """Raised when an operation is not allowed in the current phase."""


class InvalidEvent(DeliveryError):
    """Raised when an answer event does not fit the question format."""
