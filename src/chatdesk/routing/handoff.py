"""Free-text detection of visitor requests for a human operator."""

import logging
import re
from collections.abc import Iterable

logger = logging.getLogger(__name__)


def compile_handoff_pattern(phrases: Iterable[str]) -> re.Pattern[str] | None:
    """Compile phrases into one case-insensitive, word-bounded pattern.

    Whitespace inside a phrase matches any run of whitespace.

    Returns:
        The compiled pattern, or None if no non-blank phrase was given.
    """
    alternatives = []
    for phrase in phrases:
        words = phrase.split()
        if words:
            alternatives.append(r"\s+".join(re.escape(w) for w in words))
    if not alternatives:
        return None
    return re.compile(r"\b(?:" + "|".join(alternatives) + r")\b", re.IGNORECASE)


def detect_handoff_request(message: str, pattern: re.Pattern[str] | None) -> str | None:
    """Find a handoff phrase in a visitor message.

    Examples:
        "I would like to talk to a human agent" -> "talk to a human"
        "Can I speak to a REAL person?" -> "REAL person"
        "What are your opening hours?" -> None

    Args:
        message: The visitor message.
        pattern: Pattern from ``compile_handoff_pattern``.

    Returns:
        The matched text, or None if the message is not a handoff request.
    """
    if not message or pattern is None:
        return None

    match = pattern.search(message)
    if match:
        logger.debug("Detected handoff phrase: %s", match.group(0))
        return match.group(0)

    return None
