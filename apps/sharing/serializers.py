from django.utils import timezone
from rest_framework import serializers

from apps.accounts.models import User
from .models import Claim, FoodPost


# =============================================================================
# Input Serializers
# =============================================================================

class FoodPostCreateSerializer(serializers.Serializer):
    """
    Validate input for offering a new food post.

    Fields:
        best_before (datetime): Optional deadline, must be in the future
    """

    best_before = serializers.DateTimeField(required=False, allow_null=True)

    def validate_best_before(self, value):
        if value is not None and value <= timezone.now():
            raise serializers.ValidationError('Best before must be in the future')
        return value


class FoodPostFilterSerializer(serializers.Serializer):
    """
    Validate query parameters for listing posts.

    Query Parameters:
        mine (bool): Only the current user's own posts, in every status
    """

    mine = serializers.BooleanField(required=False, default=False)


class ClaimFilterSerializer(serializers.Serializer):
    """
    Validate query parameters for listing claims.

    Query Parameters:
        direction (str): ``incoming`` for claims on my posts,
            ``outgoing`` for claims I placed (default)
    """

    direction = serializers.ChoiceField(
        choices=['incoming', 'outgoing'],
        required=False,
        default='outgoing',
    )


# =============================================================================
# Output Serializers
# =============================================================================

class UserMinimalSerializer(serializers.ModelSerializer):
    """Minimal user info for nested serialization."""

    display_name = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'display_name']
        read_only_fields = fields

    def get_display_name(self, obj):
        return obj.get_display_name()


class FoodPostSerializer(serializers.ModelSerializer):
    """Food post as seen by any signed-in user. Status is engine-owned."""

    owner = UserMinimalSerializer(read_only=True)

    class Meta:
        model = FoodPost
        fields = ['id', 'owner', 'status', 'best_before', 'created_at', 'updated_at']
        read_only_fields = fields


class ClaimSerializer(serializers.ModelSerializer):
    """Claim with the bits of its post a party needs to coordinate pickup."""

    requester = UserMinimalSerializer(read_only=True)
    post_status = serializers.CharField(source='post.status', read_only=True)
    post_owner = serializers.UUIDField(source='post.owner_id', read_only=True)

    class Meta:
        model = Claim
        fields = [
            'id',
            'post',
            'post_status',
            'post_owner',
            'requester',
            'status',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class SweepResultSerializer(serializers.Serializer):
    expired_posts = serializers.ListField(child=serializers.UUIDField())
    cancelled_claims = serializers.ListField(child=serializers.UUIDField())
