# ==========================================
# apps/sharing/admin.py
# ==========================================

from django.contrib import admin
from apps.sharing.models import FoodPost, Claim
from apps.sharing.services import sweep


class ClaimInline(admin.TabularInline):
    """Read-only view of the claims on a post."""
    model = Claim
    extra = 0
    fields = ['requester', 'status', 'created_at', 'updated_at']
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(FoodPost)
class FoodPostAdmin(admin.ModelAdmin):
    """
    Admin interface for food posts.

    Status is read-only here: it is owned by the lifecycle services, and
    editing it by hand would break the post/claim invariants.
    """

    list_display = ['id', 'owner', 'status', 'best_before', 'created_at', 'updated_at']
    list_filter = ['status', 'created_at']
    search_fields = ['owner__email', 'owner__display_name']
    readonly_fields = ['id', 'owner', 'status', 'created_at', 'updated_at']
    date_hierarchy = 'created_at'
    inlines = [ClaimInline]
    actions = ['expire_overdue_posts']

    def has_add_permission(self, request):
        return False

    @admin.action(description='Run expiry sweep now')
    def expire_overdue_posts(self, request, queryset):
        """Expire every overdue post (not only the selected ones)."""
        result = sweep()
        self.message_user(
            request,
            f'Expired {len(result.expired_posts)} post(s), '
            f'cancelled {len(result.cancelled_claims)} claim(s).'
        )


@admin.register(Claim)
class ClaimAdmin(admin.ModelAdmin):
    """Admin interface for claims (read-only)."""

    list_display = ['id', 'post', 'requester', 'status', 'created_at', 'updated_at']
    list_filter = ['status', 'created_at']
    search_fields = ['requester__email', 'post__id']
    readonly_fields = ['id', 'post', 'requester', 'status', 'created_at', 'updated_at']
    list_select_related = ['post', 'requester']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
