# pseudonymization/logic/validators.py

"""Request text validation applied before any core work begins."""

import logging
from typing import Any

from pseudonymization.core.exceptions import InputValidationError

logger = logging.getLogger(__name__)


def validate_text(text: Any, max_length: int) -> str:
    """Checks that request text is a non-empty string within the length cap.

    Args:
        text: Value received from the caller
        max_length: Maximum number of characters accepted

    Returns:
        The text, unchanged

    Raises:
        InputValidationError: If the text is missing, not a string, blank,
            or longer than ``max_length``.
    """
    if text is None or (isinstance(text, str) and not text.strip()):
        logger.warning("Empty text provided")
        raise InputValidationError("Text is required and must be a string")

    if not isinstance(text, str):
        logger.warning(f"Invalid input type received: {type(text).__name__}")
        raise InputValidationError("Text is required and must be a string")

    if len(text) > max_length:
        logger.warning(
            "Text exceeds length limit",
            extra={"text_length": len(text), "max_length": max_length},
        )
        raise InputValidationError(
            f"Text too long. Maximum {max_length:,} characters allowed."
        )

    return text
