"""
Letter lifecycle engine tests.

Covers every state transition plus the visibility rules:
- Creation delivers immediately or schedules by date
- Only the recipient can read, and only once delivered
- Drafts are private to their sender and become letters in place
- Listings never leak drafts or undelivered letters to the recipient
"""

import pytest

from reindeer_letter.core.errors import (
    ForbiddenError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from reindeer_letter.models.letter import LetterState
from reindeer_letter.modules.letters.lifecycle import DraftOutcome, LetterContent


def content(title="Merry Christmas", **overrides):
    fields = {
        "title": title,
        "description": "See you soon.",
        "sender_nickname": "Rudolph",
    }
    fields.update(overrides)
    return LetterContent(**fields)


class TestCreateLetter:
    """Creating sent letters."""

    @pytest.mark.asyncio
    async def test_no_date_delivers_immediately(self, lifecycle, make_user):
        alice = await make_user("alice")
        bob = await make_user("bob")

        letter = await lifecycle.create_letter(content(), recipient_id=bob.id, sender_id=alice.id)

        assert letter.state is LetterState.DELIVERED_UNREAD
        assert letter.is_draft is False
        assert letter.is_open is False
        assert letter.sender_id == alice.id
        assert letter.receiver_id == bob.id

    @pytest.mark.asyncio
    async def test_today_delivers_immediately(self, lifecycle, make_user):
        bob = await make_user("bob")

        letter = await lifecycle.create_letter(content(), recipient_id=bob.id, scheduled_at="2024-12-20")

        assert letter.is_delivered is True

    @pytest.mark.asyncio
    async def test_past_date_delivers_immediately(self, lifecycle, make_user):
        bob = await make_user("bob")

        letter = await lifecycle.create_letter(content(), recipient_id=bob.id, scheduled_at="2023-01-01")

        assert letter.state is LetterState.DELIVERED_UNREAD

    @pytest.mark.asyncio
    async def test_future_date_is_scheduled(self, lifecycle, make_user):
        bob = await make_user("bob")

        letter = await lifecycle.create_letter(content(), recipient_id=bob.id, scheduled_at="2024-12-25")

        assert letter.state is LetterState.SCHEDULED
        assert str(letter.scheduled_at) == "2024-12-25"

    @pytest.mark.asyncio
    async def test_time_of_day_is_discarded(self, lifecycle, make_user):
        """An aware datetime is reduced to its UTC date."""
        bob = await make_user("bob")

        # 2024-12-21 08:00 in UTC+9 is 2024-12-20 23:00 UTC, i.e. today
        letter = await lifecycle.create_letter(
            content(), recipient_id=bob.id, scheduled_at="2024-12-21T08:00:00+09:00"
        )

        assert str(letter.scheduled_at) == "2024-12-20"
        assert letter.is_delivered is True

    @pytest.mark.asyncio
    async def test_anonymous_sender_gets_default_nickname(self, lifecycle, make_user):
        bob = await make_user("bob")

        letter = await lifecycle.create_letter(content(sender_nickname=None), recipient_id=bob.id)

        assert letter.sender_id is None
        assert letter.sender_nickname == "Anonymous"

    @pytest.mark.asyncio
    async def test_missing_recipient_rejected(self, lifecycle):
        with pytest.raises(ValidationError):
            await lifecycle.create_letter(content(), recipient_id=None)

    @pytest.mark.asyncio
    async def test_unknown_recipient_rejected(self, lifecycle):
        with pytest.raises(NotFoundError):
            await lifecycle.create_letter(content(), recipient_id=9999)

    @pytest.mark.asyncio
    async def test_blank_title_rejected(self, lifecycle, make_user):
        bob = await make_user("bob")

        with pytest.raises(ValidationError):
            await lifecycle.create_letter(content(title="   "), recipient_id=bob.id)

    @pytest.mark.asyncio
    async def test_unparseable_date_rejected(self, lifecycle, make_user):
        bob = await make_user("bob")

        with pytest.raises(ValidationError):
            await lifecycle.create_letter(content(), recipient_id=bob.id, scheduled_at="next tuesday")

    @pytest.mark.asyncio
    async def test_unknown_category_rejected(self, lifecycle, make_user):
        bob = await make_user("bob")

        with pytest.raises(ValidationError):
            await lifecycle.create_letter(content(category="VIDEO"), recipient_id=bob.id)


class TestViewLetter:
    """Reading letters: recipient only, delivered only, opens once."""

    @pytest.mark.asyncio
    async def test_recipient_view_opens_letter(self, lifecycle, make_user):
        alice = await make_user("alice")
        bob = await make_user("bob")
        letter = await lifecycle.create_letter(content(), recipient_id=bob.id, sender_id=alice.id)

        viewed = await lifecycle.view_letter(letter.id, bob.id)

        assert viewed.is_open is True
        assert viewed.state is LetterState.DELIVERED_READ
        assert viewed.description == "See you soon."

    @pytest.mark.asyncio
    async def test_second_view_is_a_noop(self, lifecycle, make_user):
        bob = await make_user("bob")
        letter = await lifecycle.create_letter(content(), recipient_id=bob.id)

        first = await lifecycle.view_letter(letter.id, bob.id)
        second = await lifecycle.view_letter(letter.id, bob.id)

        assert first.id == second.id
        assert second.state is LetterState.DELIVERED_READ

    @pytest.mark.asyncio
    async def test_sender_cannot_read(self, lifecycle, make_user):
        alice = await make_user("alice")
        bob = await make_user("bob")
        letter = await lifecycle.create_letter(content(), recipient_id=bob.id, sender_id=alice.id)

        with pytest.raises(ForbiddenError):
            await lifecycle.view_letter(letter.id, alice.id)

    @pytest.mark.asyncio
    async def test_third_party_cannot_read(self, lifecycle, make_user):
        bob = await make_user("bob")
        mallory = await make_user("mallory")
        letter = await lifecycle.create_letter(content(), recipient_id=bob.id)

        with pytest.raises(ForbiddenError):
            await lifecycle.view_letter(letter.id, mallory.id)

        # Refused views never open the letter
        refreshed = await lifecycle.repository.find_letter_by_id(letter.id)
        assert refreshed.is_open is False

    @pytest.mark.asyncio
    async def test_sender_cannot_read_scheduled_letter(self, lifecycle, make_user):
        alice = await make_user("alice")
        bob = await make_user("bob")
        letter = await lifecycle.create_letter(
            content(), recipient_id=bob.id, sender_id=alice.id, scheduled_at="2024-12-25"
        )

        with pytest.raises(ForbiddenError):
            await lifecycle.view_letter(letter.id, alice.id)

        refreshed = await lifecycle.repository.find_letter_by_id(letter.id)
        assert refreshed.is_open is False
        assert refreshed.state is LetterState.SCHEDULED

    @pytest.mark.asyncio
    async def test_scheduled_letter_hidden_from_recipient(self, lifecycle, make_user):
        bob = await make_user("bob")
        letter = await lifecycle.create_letter(content(), recipient_id=bob.id, scheduled_at="2024-12-25")

        with pytest.raises(ForbiddenError):
            await lifecycle.view_letter(letter.id, bob.id)

    @pytest.mark.asyncio
    async def test_missing_letter(self, lifecycle, make_user):
        bob = await make_user("bob")

        with pytest.raises(NotFoundError):
            await lifecycle.view_letter(12345, bob.id)

    @pytest.mark.asyncio
    async def test_draft_is_not_a_letter(self, lifecycle, make_user):
        alice = await make_user("alice")
        result = await lifecycle.save_draft({"title": "Hi"}, alice.id)

        with pytest.raises(NotFoundError):
            await lifecycle.view_letter(result.letter.id, alice.id)

    @pytest.mark.asyncio
    async def test_anonymous_viewer_rejected(self, lifecycle, make_user):
        bob = await make_user("bob")
        letter = await lifecycle.create_letter(content(), recipient_id=bob.id)

        with pytest.raises(UnauthorizedError):
            await lifecycle.view_letter(letter.id, None)


class TestListings:
    """Inbox and self-addressed listings."""

    @pytest.mark.asyncio
    async def test_inbox_excludes_drafts_and_scheduled(self, lifecycle, make_user, clock):
        alice = await make_user("alice")
        bob = await make_user("bob")

        delivered = await lifecycle.create_letter(content("Now"), recipient_id=bob.id, sender_id=alice.id)
        await lifecycle.create_letter(content("Later"), recipient_id=bob.id, scheduled_at="2024-12-25")
        await lifecycle.save_draft({"title": "Unsent", "receiver_id": bob.id}, alice.id)

        page = await lifecycle.list_received(bob.id)

        assert [letter.id for letter in page.items] == [delivered.id]
        assert page.total == 1

    @pytest.mark.asyncio
    async def test_inbox_newest_first_with_meta(self, lifecycle, make_user, clock):
        bob = await make_user("bob")
        ids = []
        for title in ("one", "two", "three"):
            letter = await lifecycle.create_letter(content(title), recipient_id=bob.id)
            ids.append(letter.id)
            clock.advance(minutes=1)

        page = await lifecycle.list_received(bob.id, page=1, limit=2)

        assert [letter.id for letter in page.items] == [ids[2], ids[1]]
        assert page.meta() == {"total": 3, "page": 1, "limit": 2, "total_pages": 2}

        second = await lifecycle.list_received(bob.id, page=2, limit=2)
        assert [letter.id for letter in second.items] == [ids[0]]

    @pytest.mark.asyncio
    async def test_second_page_holds_items_eleven_to_twenty(self, lifecycle, make_user, clock):
        bob = await make_user("bob")
        ids = []
        for n in range(25):
            letter = await lifecycle.create_letter(content(f"letter {n}"), recipient_id=bob.id)
            ids.append(letter.id)
            clock.advance(seconds=1)
        newest_first = list(reversed(ids))

        page = await lifecycle.list_received(bob.id, page=2, limit=10)

        assert [letter.id for letter in page.items] == newest_first[10:20]
        assert page.total_pages == 3

    @pytest.mark.asyncio
    async def test_inbox_category_filter(self, lifecycle, make_user):
        bob = await make_user("bob")
        await lifecycle.create_letter(content("text"), recipient_id=bob.id)
        voice = await lifecycle.create_letter(
            content("voice", category="VOICE", audio_url="https://cdn.example.com/a.m4a"),
            recipient_id=bob.id,
        )

        page = await lifecycle.list_received(bob.id, category="VOICE")

        assert [letter.id for letter in page.items] == [voice.id]

    @pytest.mark.asyncio
    async def test_page_past_the_end_is_empty(self, lifecycle, make_user):
        bob = await make_user("bob")
        await lifecycle.create_letter(content(), recipient_id=bob.id)

        page = await lifecycle.list_received(bob.id, page=5, limit=10)

        assert page.items == []
        assert page.total == 1

    @pytest.mark.asyncio
    async def test_invalid_paging_rejected(self, lifecycle, make_user):
        bob = await make_user("bob")

        with pytest.raises(ValidationError):
            await lifecycle.list_received(bob.id, page=0)
        with pytest.raises(ValidationError):
            await lifecycle.list_received(bob.id, limit=101)

    @pytest.mark.asyncio
    async def test_self_addressed_includes_scheduled(self, lifecycle, make_user):
        alice = await make_user("alice")
        bob = await make_user("bob")

        future_me = await lifecycle.create_letter(
            content("Dear future me"), recipient_id=alice.id, sender_id=alice.id, scheduled_at="2025-12-20"
        )
        await lifecycle.create_letter(content("To bob"), recipient_id=bob.id, sender_id=alice.id)
        await lifecycle.save_draft({"title": "Draft to me"}, alice.id)

        page = await lifecycle.list_self_addressed(alice.id)

        assert [letter.id for letter in page.items] == [future_me.id]


class TestDrafts:
    """Draft create, update, read, list, send and delete."""

    @pytest.mark.asyncio
    async def test_empty_draft_gets_placeholders(self, lifecycle, make_user):
        alice = await make_user("alice")

        result = await lifecycle.save_draft({}, alice.id)

        assert result.outcome is DraftOutcome.CREATED
        assert result.created is True
        draft = result.letter
        assert draft.state is LetterState.DRAFT
        assert draft.title == "Untitled draft"
        assert draft.is_delivered is False
        assert draft.receiver_id == alice.id

    @pytest.mark.asyncio
    async def test_update_merges_non_empty_fields(self, lifecycle, make_user):
        alice = await make_user("alice")
        created = await lifecycle.save_draft({"title": "First", "description": "Body"}, alice.id)

        result = await lifecycle.save_draft(
            {"title": "Second", "description": ""}, alice.id, draft_id=created.letter.id
        )

        assert result.outcome is DraftOutcome.UPDATED
        assert result.letter.id == created.letter.id
        assert result.letter.title == "Second"
        # Empty values keep the stored content
        assert result.letter.description == "Body"
        assert result.letter.draft_data == {"title": "Second", "description": ""}

    @pytest.mark.asyncio
    async def test_cannot_touch_someone_elses_draft(self, lifecycle, make_user):
        alice = await make_user("alice")
        mallory = await make_user("mallory")
        draft = (await lifecycle.save_draft({"title": "Secret"}, alice.id)).letter

        with pytest.raises(NotFoundError):
            await lifecycle.get_draft(draft.id, mallory.id)
        with pytest.raises(NotFoundError):
            await lifecycle.save_draft({"title": "Hijack"}, mallory.id, draft_id=draft.id)
        with pytest.raises(NotFoundError):
            await lifecycle.delete_draft(draft.id, mallory.id)
        with pytest.raises(NotFoundError):
            await lifecycle.send_draft(draft.id, content(), mallory.id, recipient_id=mallory.id)

    @pytest.mark.asyncio
    async def test_foreign_draft_without_recipient_is_not_found(self, lifecycle, make_user):
        alice = await make_user("alice")
        mallory = await make_user("mallory")
        draft = (await lifecycle.save_draft({"title": "Secret"}, alice.id)).letter

        with pytest.raises(NotFoundError):
            await lifecycle.send_draft(draft.id, content(), mallory.id, recipient_id=None)

    @pytest.mark.asyncio
    async def test_own_draft_without_recipient_is_invalid(self, lifecycle, make_user):
        alice = await make_user("alice")
        draft = (await lifecycle.save_draft({"title": "WIP"}, alice.id)).letter

        with pytest.raises(ValidationError):
            await lifecycle.send_draft(draft.id, content(), alice.id, recipient_id=None)

    @pytest.mark.asyncio
    async def test_drafts_require_login(self, lifecycle):
        with pytest.raises(UnauthorizedError):
            await lifecycle.save_draft({"title": "Hi"}, None)

    @pytest.mark.asyncio
    async def test_draft_with_unknown_recipient(self, lifecycle, make_user):
        alice = await make_user("alice")

        with pytest.raises(NotFoundError):
            await lifecycle.save_draft({"receiver_id": 4242}, alice.id)

    @pytest.mark.asyncio
    async def test_list_drafts_most_recently_edited_first(self, lifecycle, make_user, clock):
        alice = await make_user("alice")
        bob = await make_user("bob")
        older = (await lifecycle.save_draft({"title": "older"}, alice.id)).letter
        clock.advance(minutes=1)
        newer = (await lifecycle.save_draft({"title": "newer"}, alice.id)).letter
        await lifecycle.save_draft({"title": "bob's"}, bob.id)

        clock.advance(minutes=1)
        await lifecycle.save_draft({"title": "older, edited"}, alice.id, draft_id=older.id)

        page = await lifecycle.list_drafts(alice.id)

        assert [draft.id for draft in page.items] == [older.id, newer.id]
        assert page.total == 2

    @pytest.mark.asyncio
    async def test_send_draft_keeps_id_and_delivers(self, lifecycle, make_user, clock):
        alice = await make_user("alice")
        bob = await make_user("bob")
        draft = (await lifecycle.save_draft({"title": "WIP"}, alice.id)).letter
        clock.advance(hours=2)

        letter = await lifecycle.send_draft(draft.id, content("Final"), alice.id, recipient_id=bob.id)

        assert letter.id == draft.id
        assert letter.state is LetterState.DELIVERED_UNREAD
        assert letter.title == "Final"
        assert letter.receiver_id == bob.id
        assert letter.draft_data is None
        assert letter.created_at == clock().replace(tzinfo=None)

        inbox = await lifecycle.list_received(bob.id)
        assert [item.id for item in inbox.items] == [draft.id]

    @pytest.mark.asyncio
    async def test_send_draft_with_future_date_schedules(self, lifecycle, make_user):
        alice = await make_user("alice")
        bob = await make_user("bob")
        draft = (await lifecycle.save_draft({"title": "WIP"}, alice.id)).letter

        letter = await lifecycle.send_draft(
            draft.id, content(), alice.id, recipient_id=bob.id, scheduled_at="2024-12-24"
        )

        assert letter.state is LetterState.SCHEDULED

    @pytest.mark.asyncio
    async def test_draft_can_only_be_sent_once(self, lifecycle, make_user):
        alice = await make_user("alice")
        bob = await make_user("bob")
        draft = (await lifecycle.save_draft({"title": "WIP"}, alice.id)).letter
        await lifecycle.send_draft(draft.id, content(), alice.id, recipient_id=bob.id)

        with pytest.raises(NotFoundError):
            await lifecycle.send_draft(draft.id, content(), alice.id, recipient_id=bob.id)
        with pytest.raises(NotFoundError):
            await lifecycle.delete_draft(draft.id, alice.id)

    @pytest.mark.asyncio
    async def test_send_draft_requires_recipient(self, lifecycle, make_user):
        alice = await make_user("alice")
        draft = (await lifecycle.save_draft({"title": "WIP"}, alice.id)).letter

        with pytest.raises(ValidationError):
            await lifecycle.send_draft(draft.id, content(), alice.id, recipient_id=None)

        # Still a draft after the failed send
        assert (await lifecycle.get_draft(draft.id, alice.id)).is_draft is True

    @pytest.mark.asyncio
    async def test_delete_draft(self, lifecycle, make_user):
        alice = await make_user("alice")
        draft = (await lifecycle.save_draft({"title": "WIP"}, alice.id)).letter

        await lifecycle.delete_draft(draft.id, alice.id)

        with pytest.raises(NotFoundError):
            await lifecycle.get_draft(draft.id, alice.id)
        with pytest.raises(NotFoundError):
            await lifecycle.delete_draft(draft.id, alice.id)


class TestPromoteDue:
    """System transition used by the sweeper."""

    @pytest.mark.asyncio
    async def test_promotes_only_when_due(self, lifecycle, make_user, clock):
        bob = await make_user("bob")
        letter = await lifecycle.create_letter(content(), recipient_id=bob.id, scheduled_at="2024-12-21")

        assert await lifecycle.promote_due(letter.id) is None

        clock.advance(days=1)
        promoted = await lifecycle.promote_due(letter.id)

        assert promoted is not None
        assert promoted.state is LetterState.DELIVERED_UNREAD

    @pytest.mark.asyncio
    async def test_second_promotion_matches_nothing(self, lifecycle, make_user, clock):
        bob = await make_user("bob")
        letter = await lifecycle.create_letter(content(), recipient_id=bob.id, scheduled_at="2024-12-21")
        clock.advance(days=1)

        assert await lifecycle.promote_due(letter.id) is not None
        assert await lifecycle.promote_due(letter.id) is None

    @pytest.mark.asyncio
    async def test_drafts_are_never_promoted(self, lifecycle, make_user, clock):
        alice = await make_user("alice")
        draft = (await lifecycle.save_draft({"title": "WIP", "scheduled_at": "2024-12-20"}, alice.id)).letter

        assert await lifecycle.promote_due(draft.id) is None
