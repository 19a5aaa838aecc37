import logging

from django.db.models import Q
from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, permissions, status, filters, views
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from . import serializers as my_serializers
from .models import PaymentDispute
from .permissions import IsDisputeParticipant, IsDisputeParticipantOrMediator, IsMediator, is_mediator
from .services import DisputeService

logger = logging.getLogger(__name__)

dispute_id_param = openapi.Parameter(
    'id',
    openapi.IN_PATH,
    description="Dispute ID",
    type=openapi.TYPE_INTEGER,
)


def dispute_queryset():
    return PaymentDispute.objects.select_related(
        'escrow', 'escrow__project', 'submitted_by', 'respondent', 'mediator', 'resolved_by',
    )


class ListCreateDisputeAPIView(generics.ListCreateAPIView):
    """
    List disputes.
    - Staff and mediators see all disputes.
    - Clients/Contractors see only disputes on escrows they take part in.

    POST opens a dispute and freezes the escrow until it is resolved.
    """
    serializer_class = my_serializers.PaymentDisputeSerializer
    permission_classes = [permissions.IsAuthenticated]
    filter_backends = [filters.OrderingFilter, DjangoFilterBackend]
    filterset_fields = ['status', 'escrow']
    ordering_fields = ['created_at', 'updated_at']
    ordering = ['-created_at']

    @swagger_auto_schema(
        operation_summary="List disputes with optional filtering",
        manual_parameters=[
            openapi.Parameter(
                'status',
                openapi.IN_QUERY,
                description="Filter disputes by status",
                type=openapi.TYPE_STRING
            ),
            openapi.Parameter(
                'ordering',
                openapi.IN_QUERY,
                description="Order results by one of: created_at, updated_at",
                type=openapi.TYPE_STRING
            ),
        ],
        responses={200: my_serializers.PaymentDisputeSerializer(many=True)}
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    def get_queryset(self):
        queryset = dispute_queryset()
        if getattr(self, 'swagger_fake_view', False):
            return queryset.none()
        user = self.request.user
        if user.is_staff or is_mediator(user):
            return queryset
        return queryset.filter(
            Q(escrow__project__client=user) | Q(escrow__project__contractor=user)
        )

    @swagger_auto_schema(
        operation_summary="Open a payment dispute on an escrow",
        request_body=my_serializers.DisputeCreateSerializer,
        responses={
            201: my_serializers.PaymentDisputeSerializer(),
            400: "Validation error",
            403: "Forbidden",
        }
    )
    def post(self, request, *args, **kwargs):
        serializer = my_serializers.DisputeCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        escrow = serializer.validated_data['escrow']

        if not escrow.is_participant(request.user):
            return Response(
                {'error': 'Only the project client or contractor can open a dispute.'},
                status=status.HTTP_403_FORBIDDEN,
            )

        try:
            result = DisputeService().create_payment_dispute(submitted_by=request.user, **serializer.validated_data)
        except Exception:
            logger.exception("Error creating payment dispute")
            return Response({'error': 'Failed to create payment dispute'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        if result['status'] != 'success':
            return Response({'error': result['message']}, status=status.HTTP_400_BAD_REQUEST)
        return Response(
            my_serializers.PaymentDisputeSerializer(result['dispute']).data,
            status=status.HTTP_201_CREATED,
        )


class RetrieveDisputeAPIView(generics.RetrieveAPIView):
    """
    Retrieve a single dispute's details.
    Accessible only by participants or mediators.
    """
    serializer_class = my_serializers.PaymentDisputeSerializer
    permission_classes = [permissions.IsAuthenticated, IsDisputeParticipantOrMediator]
    lookup_field = 'id'

    def get_queryset(self):
        return dispute_queryset()

    @swagger_auto_schema(
        operation_summary="Retrieve a dispute",
        responses={200: my_serializers.PaymentDisputeSerializer(), 403: "Forbidden", 404: "Not found"}
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)


class RequestMediationAPIView(views.APIView):
    permission_classes = [permissions.IsAuthenticated, IsDisputeParticipant]

    @swagger_auto_schema(
        operation_summary="Request mediation for an open dispute",
        manual_parameters=[dispute_id_param],
        responses={200: my_serializers.PaymentDisputeSerializer(), 400: "Not open", 403: "Forbidden", 404: "Not found"}
    )
    def post(self, request, id):
        dispute = get_object_or_404(dispute_queryset(), id=id)
        self.check_object_permissions(request, dispute)

        try:
            result = DisputeService().request_mediation(dispute=dispute, requested_by=request.user)
        except Exception:
            logger.exception("Error requesting mediation for dispute %s", id)
            return Response({'error': 'Failed to request mediation'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        if result['status'] != 'success':
            return Response({'error': result['message']}, status=status.HTTP_400_BAD_REQUEST)
        return Response(my_serializers.PaymentDisputeSerializer(result['dispute']).data, status=status.HTTP_200_OK)


class ResolveDisputeAPIView(views.APIView):
    """
    Allows a mediator (or staff) to record the outcome of a dispute.
    """
    permission_classes = [permissions.IsAuthenticated, IsMediator]

    @swagger_auto_schema(
        operation_summary="Resolve a dispute as mediator",
        manual_parameters=[dispute_id_param],
        request_body=my_serializers.DisputeResolveSerializer,
        responses={200: my_serializers.PaymentDisputeSerializer(), 400: "Validation error", 403: "Forbidden"}
    )
    def post(self, request, id):
        dispute = get_object_or_404(dispute_queryset(), id=id)
        serializer = my_serializers.DisputeResolveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = DisputeService().resolve_dispute(
                dispute=dispute,
                resolved_by=request.user,
                **serializer.validated_data,
            )
        except Exception:
            logger.exception("Error resolving dispute %s", id)
            return Response({'error': 'Failed to resolve dispute'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        if result['status'] != 'success':
            return Response({'error': result['message']}, status=status.HTTP_400_BAD_REQUEST)
        return Response(my_serializers.PaymentDisputeSerializer(result['dispute']).data, status=status.HTTP_200_OK)
