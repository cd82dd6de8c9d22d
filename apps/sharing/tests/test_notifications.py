import pytest
from datetime import datetime, timezone as dt_timezone
from uuid import UUID

from apps.accounts.models import User
from apps.sharing.models import PostStatus, ClaimStatus
from apps.sharing.services import (
    create_post,
    create_claim,
    accept_claim,
    complete_claim,
    delete_claim,
    sweep,
    ChangeEvent,
    entity_changed,
    PostExpiredError,
    DuplicateClaimError,
)
from apps.sharing.services.notifications import DELETED_STATUS


def _summary(events):
    return [(e.entity, e.id, e.status) for e in events]


@pytest.mark.django_db
class TestChangeEvents:
    """Events go out only for committed changes, one per touched row."""

    def test_create_post_emits_post_event(self, owner, captured_events, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            post = create_post(owner_id=owner.id)

        assert _summary(captured_events) == [('post', post.id, PostStatus.AVAILABLE)]

    def test_create_claim_emits_claim_and_post(self, post, requester, captured_events, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            claim = create_claim(post_id=post.id, requester_id=requester.id)

        assert _summary(captured_events) == [
            ('claim', claim.id, ClaimStatus.PENDING),
            ('post', post.id, PostStatus.REQUESTED),
        ]

    def test_accept_emits_event_per_touched_row(
        self, pending_claim, second_pending_claim, owner, captured_events, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            accept_claim(claim_id=pending_claim.id, acting_owner_id=owner.id)

        assert sorted(_summary(captured_events)) == sorted([
            ('post', pending_claim.post_id, PostStatus.RESERVED),
            ('claim', second_pending_claim.id, ClaimStatus.DECLINED),
            ('claim', pending_claim.id, ClaimStatus.ACCEPTED),
        ])

    def test_failed_command_emits_nothing(self, pending_claim, requester, captured_events, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            with pytest.raises(DuplicateClaimError):
                create_claim(post_id=pending_claim.post_id, requester_id=requester.id)

        assert callbacks == []
        assert captured_events == []

    def test_expired_command_emits_only_sweep_events(
        self, overdue_claim, owner, captured_events, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            with pytest.raises(PostExpiredError):
                accept_claim(claim_id=overdue_claim.id, acting_owner_id=owner.id)

        assert _summary(captured_events) == [
            ('post', overdue_claim.post_id, PostStatus.EXPIRED),
            ('claim', overdue_claim.id, ClaimStatus.CANCELLED),
        ]

    def test_sweep_emits_events(self, overdue_claim, captured_events, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            sweep()
        with django_capture_on_commit_callbacks(execute=True):
            sweep()

        assert len(captured_events) == 2

    def test_delete_emits_deleted_status(self, declined_claim, other_requester, captured_events, django_capture_on_commit_callbacks):
        claim_id = declined_claim.id
        with django_capture_on_commit_callbacks(execute=True):
            delete_claim(claim_id=claim_id, acting_user_id=other_requester.id)

        assert _summary(captured_events) == [('claim', claim_id, DELETED_STATUS)]

    def test_updated_at_is_monotonic_per_entity(
        self, post, requester, owner, captured_events, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            claim = create_claim(post_id=post.id, requester_id=requester.id)
        with django_capture_on_commit_callbacks(execute=True):
            accept_claim(claim_id=claim.id, acting_owner_id=owner.id)
        with django_capture_on_commit_callbacks(execute=True):
            complete_claim(claim_id=claim.id, acting_party_id=requester.id)

        for entity_id in (post.id, claim.id):
            stamps = [e.updated_at for e in captured_events if e.id == entity_id]
            assert len(stamps) == 3
            assert stamps == sorted(stamps)
            assert len(set(stamps)) == 3

    def test_idempotent_complete_emits_nothing(
        self, accepted_claim, owner, requester, captured_events, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            complete_claim(claim_id=accepted_claim.id, acting_party_id=owner.id)
        captured_events.clear()

        with django_capture_on_commit_callbacks(execute=True):
            complete_claim(claim_id=accepted_claim.id, acting_party_id=requester.id)

        assert captured_events == []


@pytest.mark.django_db
class TestDispatch:
    """Tests for delivery to receivers."""

    def test_failing_receiver_does_not_block_others(self, post, requester, captured_events, django_capture_on_commit_callbacks):
        def broken(sender, event, **kwargs):
            raise RuntimeError("push gateway down")

        entity_changed.connect(broken, weak=False)
        try:
            with django_capture_on_commit_callbacks(execute=True):
                create_claim(post_id=post.id, requester_id=requester.id)
        finally:
            entity_changed.disconnect(broken)

        assert len(captured_events) == 2

    def test_event_snapshot_ignores_later_edits(self, owner, captured_events, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            post = create_post(owner_id=owner.id)
            post.status = PostStatus.COLLECTED

        assert captured_events[0].status == PostStatus.AVAILABLE


class TestChangeEventValue:
    """Tests for the event value object."""

    def test_as_dict(self):
        event = ChangeEvent(
            entity='claim',
            id=UUID('12345678-1234-5678-1234-567812345678'),
            status='accepted',
            updated_at=datetime(2024, 5, 1, 12, 0, tzinfo=dt_timezone.utc),
        )

        assert event.as_dict() == {
            'entity': 'claim',
            'id': '12345678-1234-5678-1234-567812345678',
            'status': 'accepted',
            'updated_at': '2024-05-01T12:00:00+00:00',
        }
        assert event.key == ('claim', event.id, event.updated_at)

    def test_unknown_model_rejected(self):
        with pytest.raises(TypeError):
            ChangeEvent.for_instance(User(email='x@example.com'))
