from django.urls import path, include
from rest_framework.routers import DefaultRouter
from . import views

app_name = 'sharing'

router = DefaultRouter()
router.register(r'posts', views.FoodPostViewSet, basename='post')
router.register(r'claims', views.ClaimViewSet, basename='claim')

urlpatterns = [
    # Post routes
    # GET    /api/sharing/posts/               - Claimable posts (?mine=true for own)
    # POST   /api/sharing/posts/               - Offer a post
    # GET    /api/sharing/posts/{id}/          - Post details
    # POST   /api/sharing/posts/{id}/claim/    - Request the food
    # GET    /api/sharing/posts/{id}/claims/   - Claims on the post (owner)

    # Claim routes
    # GET    /api/sharing/claims/              - Outgoing (?direction=incoming for incoming)
    # GET    /api/sharing/claims/{id}/         - Claim details
    # DELETE /api/sharing/claims/{id}/         - Remove a declined/cancelled claim
    # POST   /api/sharing/claims/{id}/accept/  - Owner accepts
    # POST   /api/sharing/claims/{id}/decline/ - Owner declines
    # POST   /api/sharing/claims/{id}/complete/ - Either party marks collected
    # POST   /api/sharing/claims/{id}/cancel/  - Requester withdraws

    path('sweep/', views.run_sweep, name='sweep'),
    path('', include(router.urls)),
]
