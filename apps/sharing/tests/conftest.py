import pytest
from datetime import timedelta
from django.utils import timezone
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken
from apps.accounts.models import User
from apps.sharing.models import FoodPost, Claim, PostStatus, ClaimStatus


@pytest.fixture
def api_client():
    """Return an unauthenticated API client."""
    return APIClient()


def _auth_client(user):
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def owner(db):
    """Create and return the user sharing food."""
    return User.objects.create_user(
        email='owner@example.com',
        password='TestPass123!',
        display_name='Food Owner',
    )


@pytest.fixture
def requester(db):
    """Create and return a user who claims food."""
    return User.objects.create_user(
        email='requester@example.com',
        password='TestPass123!',
        display_name='Hungry Neighbour',
    )


@pytest.fixture
def other_requester(db):
    """Create and return a second claimant."""
    return User.objects.create_user(
        email='other@example.com',
        password='TestPass123!',
        display_name='Other Neighbour',
    )


@pytest.fixture
def outsider(db):
    """Create and return a user unrelated to any post."""
    return User.objects.create_user(
        email='outsider@example.com',
        password='TestPass123!',
        display_name='Outsider',
    )


@pytest.fixture
def staff_user(db):
    return User.objects.create_user(
        email='staff@example.com',
        password='TestPass123!',
        is_staff=True,
    )


@pytest.fixture
def owner_client(owner):
    """Return API client authenticated as the post owner."""
    return _auth_client(owner)


@pytest.fixture
def requester_client(requester):
    """Return API client authenticated as the requester."""
    return _auth_client(requester)


@pytest.fixture
def other_requester_client(other_requester):
    return _auth_client(other_requester)


@pytest.fixture
def outsider_client(outsider):
    return _auth_client(outsider)


@pytest.fixture
def staff_client(staff_user):
    return _auth_client(staff_user)


@pytest.fixture
def post(db, owner):
    """Available post without a best-before deadline."""
    return FoodPost.objects.create(owner=owner)


@pytest.fixture
def perishable_post(db, owner):
    """Available post that expires tomorrow."""
    return FoodPost.objects.create(
        owner=owner,
        best_before=timezone.now() + timedelta(days=1),
    )


@pytest.fixture
def overdue_post(db, owner):
    """Requested post whose deadline passed a second ago but was not swept yet."""
    return FoodPost.objects.create(
        owner=owner,
        status=PostStatus.REQUESTED,
        best_before=timezone.now() - timedelta(seconds=1),
    )


@pytest.fixture
def overdue_claim(db, overdue_post, requester):
    """Pending claim on the overdue post."""
    return Claim.objects.create(
        post=overdue_post,
        requester=requester,
        status=ClaimStatus.PENDING,
    )


@pytest.fixture
def pending_claim(db, post, requester):
    """Pending claim by requester; the post is requested."""
    post.status = PostStatus.REQUESTED
    post.save(update_fields=['status'])
    return Claim.objects.create(post=post, requester=requester)


@pytest.fixture
def second_pending_claim(db, pending_claim, other_requester):
    """Second pending claim on the same post, by another user."""
    return Claim.objects.create(post=pending_claim.post, requester=other_requester)


@pytest.fixture
def accepted_claim(db, post, requester):
    """Accepted claim; the post is reserved."""
    post.status = PostStatus.RESERVED
    post.save(update_fields=['status'])
    return Claim.objects.create(
        post=post,
        requester=requester,
        status=ClaimStatus.ACCEPTED,
    )


@pytest.fixture
def declined_claim(db, post, other_requester):
    return Claim.objects.create(
        post=post,
        requester=other_requester,
        status=ClaimStatus.DECLINED,
    )


@pytest.fixture
def captured_events(db):
    """Collect every change event delivered during the test."""
    from apps.sharing.services.notifications import entity_changed

    events = []

    def receiver(sender, event, **kwargs):
        events.append(event)

    entity_changed.connect(receiver, weak=False)
    yield events
    entity_changed.disconnect(receiver)
