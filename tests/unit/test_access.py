"""Access gate predicates."""

import pytest

from reindeer_letter.core.errors import ForbiddenError, UnauthorizedError
from reindeer_letter.models.letter import Letter
from reindeer_letter.modules.letters.access import (
    Principal,
    allow_anonymous_sender,
    ensure_deliverable,
    ensure_recipient,
    require_principal,
    require_user_id,
)


def make_letter(**overrides):
    fields = {"receiver_id": 2, "sender_id": 1, "is_draft": False, "is_delivered": True, "is_open": False}
    fields.update(overrides)
    return Letter(**fields)


class TestIdentity:

    def test_require_principal(self):
        principal = Principal(id=1, email="alice@example.com")
        assert require_principal(principal) is principal

        with pytest.raises(UnauthorizedError):
            require_principal(None)

    def test_require_user_id_uses_custom_message(self):
        with pytest.raises(UnauthorizedError, match="Log in"):
            require_user_id(None, "Log in to save drafts.")

        assert require_user_id(7) == 7


class TestRecipientGate:

    def test_recipient_allowed(self):
        ensure_recipient(make_letter(), viewer_id=2)

    def test_sender_forbidden(self):
        with pytest.raises(ForbiddenError):
            ensure_recipient(make_letter(), viewer_id=1)

    def test_letter_without_recipient_forbidden(self):
        with pytest.raises(ForbiddenError):
            ensure_recipient(make_letter(receiver_id=None), viewer_id=2)

    def test_undelivered_forbidden(self):
        with pytest.raises(ForbiddenError):
            ensure_deliverable(make_letter(is_delivered=False))

        ensure_deliverable(make_letter())


class TestAnonymousSender:

    def test_logged_in_sender_recorded(self):
        principal = Principal(id=3, email="carol@example.com")
        assert allow_anonymous_sender(principal, allow_anonymous=False) == 3

    def test_anonymous_allowed(self):
        assert allow_anonymous_sender(None, allow_anonymous=True) is None

    def test_anonymous_disabled(self):
        with pytest.raises(UnauthorizedError):
            allow_anonymous_sender(None, allow_anonymous=False)
