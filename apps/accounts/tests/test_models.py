import pytest
from apps.accounts.models import User


@pytest.mark.django_db
class TestUserManager:
    """Tests for User.objects.create_user / create_superuser."""

    def test_create_user(self):
        user = User.objects.create_user(email='Someone@Example.COM', password='TestPass123!')

        assert user.email == 'Someone@example.com'
        assert user.check_password('TestPass123!')
        assert user.is_active
        assert not user.is_staff

    def test_create_user_requires_email(self):
        with pytest.raises(ValueError):
            User.objects.create_user(email='', password='TestPass123!')

    def test_create_superuser(self):
        admin = User.objects.create_superuser(email='admin@example.com', password='TestPass123!')

        assert admin.is_staff
        assert admin.is_superuser

    def test_create_superuser_must_be_staff(self):
        with pytest.raises(ValueError):
            User.objects.create_superuser(
                email='admin@example.com',
                password='TestPass123!',
                is_staff=False,
            )


class TestDisplayName:

    def test_display_name_used(self):
        assert User(email='a@example.com', display_name='Alice').get_display_name() == 'Alice'

    def test_falls_back_to_email_prefix(self):
        assert User(email='bob@example.com').get_display_name() == 'bob'
