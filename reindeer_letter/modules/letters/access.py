"""Access control gate for letter operations.

Each operation declares the identity predicate it needs:
- sender-only: draft edit / send / delete (enforced in the query guard)
- recipient-only: view / open
- none: anonymous create, when ALLOW_ANONYMOUS_LETTERS is on
"""

from dataclasses import dataclass
from typing import Optional

from reindeer_letter.core.errors import ForbiddenError, UnauthorizedError
from reindeer_letter.models.letter import Letter


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, as supplied by the identity layer."""

    id: int
    email: str


def require_principal(principal: Optional[Principal], message: str = "Authentication required.") -> Principal:
    """
    Ensure a principal is present.

    Raises:
        UnauthorizedError: If no principal is present
    """
    if principal is None:
        raise UnauthorizedError(message)
    return principal


def require_user_id(user_id: Optional[int], message: str = "Authentication required.") -> int:
    """Id-level variant of require_principal, used inside the engine."""
    if user_id is None:
        raise UnauthorizedError(message)
    return user_id


def ensure_recipient(letter: Letter, viewer_id: int) -> None:
    """
    Only the recipient may read a letter's content.

    Raises:
        ForbiddenError: If the viewer is not the recipient
    """
    if letter.receiver_id is None or letter.receiver_id != viewer_id:
        raise ForbiddenError("Only the recipient can read this letter.")


def ensure_deliverable(letter: Letter) -> None:
    """
    Undelivered letters are invisible, even to their recipient.

    Raises:
        ForbiddenError: If the letter has not been delivered yet
    """
    if not letter.is_delivered:
        raise ForbiddenError("This letter is not yet deliverable.")


def allow_anonymous_sender(principal: Optional[Principal], allow_anonymous: bool) -> Optional[int]:
    """
    Resolve the sender id for letter creation.

    Returns:
        The principal's id, or None for an anonymous sender

    Raises:
        UnauthorizedError: If anonymous sending is disabled and no principal is present
    """
    if principal is not None:
        return principal.id
    if not allow_anonymous:
        raise UnauthorizedError("Log in to send a letter.")
    return None
