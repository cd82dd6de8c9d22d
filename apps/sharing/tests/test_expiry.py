import pytest
from datetime import timedelta
from io import StringIO
from django.core.management import call_command
from django.utils import timezone

from apps.sharing.models import FoodPost, Claim, PostStatus, ClaimStatus
from apps.sharing.services import sweep, sweep_post, get_post, list_available_posts
from apps.sharing.services.expiry import SweepResult


def _overdue(owner, status=PostStatus.AVAILABLE, minutes=5):
    return FoodPost.objects.create(
        owner=owner,
        status=status,
        best_before=timezone.now() - timedelta(minutes=minutes),
    )


@pytest.mark.django_db
class TestSweep:
    """Tests for the batch expiry sweep."""

    def test_sweep_expires_post_and_cancels_active_claims(self, owner, requester, other_requester, outsider):
        post = _overdue(owner, status=PostStatus.REQUESTED)
        pending = Claim.objects.create(post=post, requester=requester)
        declined = Claim.objects.create(post=post, requester=other_requester, status=ClaimStatus.DECLINED)
        also_pending = Claim.objects.create(post=post, requester=outsider)

        result = sweep()

        post.refresh_from_db()
        pending.refresh_from_db()
        declined.refresh_from_db()
        also_pending.refresh_from_db()
        assert post.status == PostStatus.EXPIRED
        assert pending.status == ClaimStatus.CANCELLED
        assert also_pending.status == ClaimStatus.CANCELLED
        assert declined.status == ClaimStatus.DECLINED
        assert result.expired_posts == [post.id]
        assert set(result.cancelled_claims) == {pending.id, also_pending.id}

    def test_sweep_cancels_accepted_claim_on_reserved_post(self, owner, requester):
        post = _overdue(owner, status=PostStatus.RESERVED)
        accepted = Claim.objects.create(post=post, requester=requester, status=ClaimStatus.ACCEPTED)

        sweep()

        accepted.refresh_from_db()
        assert accepted.status == ClaimStatus.CANCELLED
        assert not Claim.objects.filter(
            post=post,
            status__in=[ClaimStatus.PENDING, ClaimStatus.ACCEPTED],
        ).exists()

    def test_sweep_is_idempotent(self, overdue_claim):
        now = timezone.now()
        first = sweep(now=now)
        second = sweep(now=now)

        assert first.expired_posts == [overdue_claim.post_id]
        assert second.expired_posts == []
        assert second.cancelled_claims == []
        assert not second

    def test_sweep_leaves_fresh_and_undated_posts(self, post, perishable_post):
        result = sweep()

        post.refresh_from_db()
        perishable_post.refresh_from_db()
        assert post.status == PostStatus.AVAILABLE
        assert perishable_post.status == PostStatus.AVAILABLE
        assert result.expired_posts == []

    def test_sweep_never_expires_collected_post(self, owner):
        post = _overdue(owner, status=PostStatus.COLLECTED)

        sweep()

        post.refresh_from_db()
        assert post.status == PostStatus.COLLECTED

    def test_sweep_with_future_now(self, perishable_post):
        result = sweep(now=timezone.now() + timedelta(days=2))

        perishable_post.refresh_from_db()
        assert perishable_post.status == PostStatus.EXPIRED
        assert result.expired_posts == [perishable_post.id]

    def test_sweep_in_small_batches(self, owner):
        posts = [_overdue(owner, minutes=minutes) for minutes in (1, 2, 3)]

        result = sweep(batch_size=1)

        assert set(result.expired_posts) == {p.id for p in posts}
        assert FoodPost.objects.filter(status=PostStatus.EXPIRED).count() == 3

    def test_sweep_post_not_due(self, perishable_post):
        result = sweep_post(perishable_post)

        assert not result
        assert perishable_post.status == PostStatus.AVAILABLE

    def test_sweep_result_as_dict(self, overdue_claim):
        data = sweep().as_dict()

        assert data == {
            'expired_posts': [str(overdue_claim.post_id)],
            'cancelled_claims': [str(overdue_claim.id)],
        }

    def test_sweep_result_merge(self):
        result = SweepResult()
        result.merge(SweepResult(expired_posts=['a'], cancelled_claims=['b', 'c']))

        assert result.expired_posts == ['a']
        assert result.cancelled_claims == ['b', 'c']


@pytest.mark.django_db
class TestLazySweepOnRead:
    """Reads never show a stale status."""

    def test_get_post_expires_overdue_post(self, overdue_claim):
        post = get_post(post_id=overdue_claim.post_id)

        assert post.status == PostStatus.EXPIRED

    def test_available_list_skips_overdue(self, post, overdue_post):
        ids = [p.id for p in list_available_posts()]

        assert post.id in ids
        assert overdue_post.id not in ids


@pytest.mark.django_db
class TestSweepCommand:
    """Tests for the sweep_expired_posts management command."""

    def test_command_expires_posts(self, overdue_claim):
        out = StringIO()
        call_command('sweep_expired_posts', stdout=out)

        assert 'Expired 1 post(s), cancelled 1 claim(s).' in out.getvalue()
        assert FoodPost.objects.get(id=overdue_claim.post_id).status == PostStatus.EXPIRED

    def test_command_dry_run_changes_nothing(self, overdue_claim):
        out = StringIO()
        call_command('sweep_expired_posts', '--dry-run', stdout=out)

        assert 'Found 1 overdue post(s)' in out.getvalue()
        assert FoodPost.objects.get(id=overdue_claim.post_id).status == PostStatus.REQUESTED

    def test_command_nothing_to_do(self, post):
        out = StringIO()
        call_command('sweep_expired_posts', '--dry-run', stdout=out)

        assert 'No overdue posts' in out.getvalue()
