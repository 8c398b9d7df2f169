"""Checks a reply draft must pass before it is stored or sent."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

MIN_REPLY_LENGTH = 10
MAX_REPLY_LENGTH = 50_000
PLACEHOLDERS = ("[INSERT", "[YOUR", "[NAME]", "[PLACEHOLDER", "{{", "}}")


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: Optional[str] = None


def validate_reply(content: str) -> ValidationResult:
    """Reject empty, too short/long, or template-leftover drafts."""
    if not content or not content.strip():
        return ValidationResult(False, "Reply content cannot be empty")
    if len(content) < MIN_REPLY_LENGTH:
        return ValidationResult(False, f"Reply too short (minimum {MIN_REPLY_LENGTH} characters)")
    if len(content) > MAX_REPLY_LENGTH:
        return ValidationResult(False, f"Reply too long (maximum {MAX_REPLY_LENGTH:,} characters)")
    for placeholder in PLACEHOLDERS:
        if placeholder in content:
            return ValidationResult(False, f"Reply contains placeholder text: {placeholder}")
    return ValidationResult(True)
