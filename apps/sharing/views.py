from rest_framework import viewsets, status
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.permissions import IsAuthenticated, IsAdminUser
from rest_framework.response import Response
from rest_framework.pagination import PageNumberPagination
from drf_spectacular.utils import extend_schema

from .serializers import (
    FoodPostSerializer,
    FoodPostCreateSerializer,
    FoodPostFilterSerializer,
    ClaimSerializer,
    ClaimFilterSerializer,
    SweepResultSerializer,
)
from apps.sharing.services import (
    create_post,
    create_claim,
    accept_claim,
    decline_claim,
    complete_claim,
    cancel_claim,
    delete_claim,
    sweep,
    get_post,
    list_available_posts,
    get_owner_posts,
    get_post_claims,
    get_incoming_claims,
    get_outgoing_claims,
    get_claim,
    # Exceptions
    SharingServiceError,
    InvalidInputError,
    NotFoundError,
    ForbiddenError,
    PostExpiredError,
    ConflictError,
)


ERROR_STATUS_CODES = [
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (PostExpiredError, status.HTTP_410_GONE),
    (ConflictError, status.HTTP_409_CONFLICT),
]


def error_response(exc: SharingServiceError) -> Response:
    """Translate a service error into an HTTP response carrying its code."""
    http_status = status.HTTP_400_BAD_REQUEST
    for exc_class, code in ERROR_STATUS_CODES:
        if isinstance(exc, exc_class):
            http_status = code
            break
    return Response({'error': str(exc), 'code': exc.code}, status=http_status)


UUID_PATTERN = r'[0-9a-fA-F-]{36}'


class SharingPagination(PageNumberPagination):
    """Custom pagination for posts and claims."""
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


class FoodPostViewSet(viewsets.GenericViewSet):
    """
    ViewSet for food posts.

    Status is never written through this API; it changes only as a result
    of claim commands and expiry.

    list: Claimable posts (``?mine=true`` for the user's own posts)
    create: Offer a new post
    retrieve: Get a specific post
    claim: Place a claim on the post
    claims: All claims on the post (owner only)
    """

    serializer_class = FoodPostSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = SharingPagination
    lookup_value_regex = UUID_PATTERN

    @extend_schema(parameters=[FoodPostFilterSerializer])
    def list(self, request):
        filters = FoodPostFilterSerializer(data=request.query_params)
        filters.is_valid(raise_exception=True)

        if filters.validated_data['mine']:
            posts = get_owner_posts(owner_id=request.user.id)
        else:
            posts = list_available_posts()

        page = self.paginate_queryset(posts)
        serializer = FoodPostSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    @extend_schema(request=FoodPostCreateSerializer, responses={201: FoodPostSerializer})
    def create(self, request):
        serializer = FoodPostCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            post = create_post(
                owner_id=request.user.id,
                best_before=serializer.validated_data.get('best_before'),
            )
        except SharingServiceError as e:
            return error_response(e)

        return Response(FoodPostSerializer(post).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        try:
            post = get_post(post_id=pk)
        except SharingServiceError as e:
            return error_response(e)
        return Response(FoodPostSerializer(post).data)

    @extend_schema(request=None, responses={201: ClaimSerializer})
    @action(detail=True, methods=['post'])
    def claim(self, request, pk=None):
        """Request this food."""
        try:
            claim = create_claim(post_id=pk, requester_id=request.user.id)
        except SharingServiceError as e:
            return error_response(e)
        return Response(ClaimSerializer(claim).data, status=status.HTTP_201_CREATED)

    @extend_schema(responses={200: ClaimSerializer(many=True)})
    @action(detail=True, methods=['get'])
    def claims(self, request, pk=None):
        """All claims on this post (owner only)."""
        try:
            claims = get_post_claims(post_id=pk, owner_id=request.user.id)
        except SharingServiceError as e:
            return error_response(e)
        return Response(ClaimSerializer(claims, many=True).data)


class ClaimViewSet(viewsets.GenericViewSet):
    """
    ViewSet for claims.

    All business logic is handled by the lifecycle services.
    Views are thin HTTP handlers only.

    list: Claims placed by the user, or on the user's posts (``?direction=incoming``)
    retrieve: Get a specific claim (either party)
    destroy: Remove a declined or cancelled claim (either party)
    accept / decline: Owner decision on a pending claim
    complete: Either party marks the food as collected
    cancel: Requester withdraws a pending claim
    """

    serializer_class = ClaimSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = SharingPagination
    lookup_value_regex = UUID_PATTERN

    @extend_schema(parameters=[ClaimFilterSerializer])
    def list(self, request):
        filters = ClaimFilterSerializer(data=request.query_params)
        filters.is_valid(raise_exception=True)

        if filters.validated_data['direction'] == 'incoming':
            claims = get_incoming_claims(owner_id=request.user.id)
        else:
            claims = get_outgoing_claims(requester_id=request.user.id)

        page = self.paginate_queryset(claims)
        serializer = ClaimSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request, pk=None):
        try:
            claim = get_claim(claim_id=pk, user_id=request.user.id)
        except SharingServiceError as e:
            return error_response(e)
        return Response(ClaimSerializer(claim).data)

    def destroy(self, request, pk=None):
        try:
            delete_claim(claim_id=pk, acting_user_id=request.user.id)
        except SharingServiceError as e:
            return error_response(e)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(request=None, responses={200: ClaimSerializer})
    @action(detail=True, methods=['post'])
    def accept(self, request, pk=None):
        """Accept a pending claim and reserve the food for its requester."""
        try:
            claim = accept_claim(claim_id=pk, acting_owner_id=request.user.id)
        except SharingServiceError as e:
            return error_response(e)
        return Response(ClaimSerializer(claim).data)

    @extend_schema(request=None, responses={200: ClaimSerializer})
    @action(detail=True, methods=['post'])
    def decline(self, request, pk=None):
        try:
            claim = decline_claim(claim_id=pk, acting_owner_id=request.user.id)
        except SharingServiceError as e:
            return error_response(e)
        return Response(ClaimSerializer(claim).data)

    @extend_schema(request=None, responses={200: ClaimSerializer})
    @action(detail=True, methods=['post'])
    def complete(self, request, pk=None):
        """Mark the food as collected. Repeating the call is harmless."""
        try:
            claim = complete_claim(claim_id=pk, acting_party_id=request.user.id)
        except SharingServiceError as e:
            return error_response(e)
        return Response(ClaimSerializer(claim).data)

    @extend_schema(request=None, responses={200: ClaimSerializer})
    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        try:
            claim = cancel_claim(claim_id=pk, acting_requester_id=request.user.id)
        except SharingServiceError as e:
            return error_response(e)
        return Response(ClaimSerializer(claim).data)


@extend_schema(
    request=None,
    responses={200: SweepResultSerializer},
    description="Expire every overdue post now and cancel its active claims (staff only).",
    tags=['sharing'],
)
@api_view(['POST'])
@permission_classes([IsAdminUser])
def run_sweep(request):
    result = sweep()
    return Response(result.as_dict())
