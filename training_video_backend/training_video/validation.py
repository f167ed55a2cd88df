from typing import List
from pydantic import BaseModel, Field
from .errors import ErrorKind, VideoGenerationError

MIN_SCRIPT_LENGTH = 10
MAX_SCRIPT_LENGTH = 5000


class ValidationResult(BaseModel):
    is_valid: bool
    errors: List[str] = Field(default_factory=list)


def validate_script(script: str) -> ValidationResult:
    """Check a script against the emptiness and length limits.

    All rules run; the error list holds every violation. The minimum length
    is checked on the stripped text, the maximum on the raw text.
    """
    errors = []
    script = script or ""
    stripped = script.strip()

    if not stripped:
        errors.append("script must not be empty")

    if len(script) > MAX_SCRIPT_LENGTH:
        errors.append(f"script must not exceed {MAX_SCRIPT_LENGTH} characters (got {len(script)})")

    # An empty script already reported above
    if stripped and len(stripped) < MIN_SCRIPT_LENGTH:
        errors.append(f"script must be at least {MIN_SCRIPT_LENGTH} characters")

    return ValidationResult(is_valid=not errors, errors=errors)


def validate_script_or_raise(script: str) -> None:
    result = validate_script(script)
    if not result.is_valid:
        raise VideoGenerationError(" ".join(result.errors), ErrorKind.VALIDATION_ERROR, retryable=False)
