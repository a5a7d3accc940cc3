"""Client-side request validation.

``validate_request`` is pure: it inspects a request and returns every
violation it finds, in a fixed order, without raising and without I/O.
Whether a negative result becomes an exception is the façade's decision.
"""

from __future__ import annotations

from dataclasses import dataclass
import math
from typing import TYPE_CHECKING

from tramontane.models import Role, content_is_empty

if TYPE_CHECKING:
    from tramontane.models import ChatRequest, Message

_VALID_ROLES: frozenset[str] = frozenset(r.value for r in Role)

# (field, lower bound, upper bound); None means unbounded on that side.
_FLOAT_BOUNDS: tuple[tuple[str, float, float | None], ...] = (
    ("temperature", 0.0, 2.0),
    ("top_p", 0.0, 1.0),
    ("frequency_penalty", 0.0, 2.0),
    ("presence_penalty", 0.0, 2.0),
)

_INT_MINIMUMS: tuple[tuple[str, int], ...] = (
    ("max_tokens", 1),
    ("n", 1),
)


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Outcome of request validation: valid, or invalid with violations."""

    violations: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.violations

    def __bool__(self) -> bool:
        return self.is_valid

    @classmethod
    def valid(cls) -> ValidationResult:
        return cls()

    @classmethod
    def invalid(cls, *violations: str) -> ValidationResult:
        if not violations:
            raise ValueError("an invalid result needs at least one violation")
        return cls(tuple(violations))


def _message_violations(index: int, message: Message) -> list[str]:
    prefix = f"messages[{index}]"
    role = message.role
    if not isinstance(role, str) or not role.strip():
        return [f"{prefix}: role is required"]

    normalized = role.strip().lower()
    if normalized not in _VALID_ROLES:
        valid = ", ".join(r.value for r in Role)
        return [f"{prefix}: invalid role {role!r}; valid roles are: {valid}"]

    if normalized == Role.TOOL:
        if not message.tool_call_id or not message.tool_call_id.strip():
            return [f"{prefix}: tool messages require a tool_call_id"]
        return []

    if content_is_empty(message.content):
        return [f"{prefix}: content is required"]
    return []


def validate_request(request: ChatRequest | None) -> ValidationResult:
    """Collect every violation in *request*.

    Checks, in order: model, message list, each message (role, tool correlation
    id, content), then bounded numeric fields. Optional fields left as None are
    never reported.
    """
    if request is None:
        return ValidationResult.invalid("request is required")

    violations: list[str] = []

    if not isinstance(request.model, str) or not request.model.strip():
        violations.append("model is required")

    if not request.messages:
        violations.append("messages: at least one message is required")
    else:
        for i, message in enumerate(request.messages):
            violations.extend(_message_violations(i, message))

    for name, low, high in _FLOAT_BOUNDS:
        value = getattr(request, name)
        if value is None:
            continue
        if (
            not math.isfinite(value)
            or value < low
            or (high is not None and value > high)
        ):
            violations.append(
                f"{name} must be between {low} and {high}, got {value}"
            )

    for name, minimum in _INT_MINIMUMS:
        value = getattr(request, name)
        if value is not None and value < minimum:
            violations.append(f"{name} must be >= {minimum}, got {value}")

    return ValidationResult(tuple(violations))
