import logging

from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import generics, permissions, status, views
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from escrow.permissions import IsEscrowClientOrStaff
from escrow.serializers import EscrowPaymentSerializer
from .models import PaymentMilestone, TaskPayment
from .reports import CashFlowService, REPORT_BUILDERS
from .serializers import (
    CashFlowProjectionCreateSerializer,
    CashFlowProjectionSerializer,
    MilestoneCreateSerializer,
    PaymentMilestoneSerializer,
    ReportQuerySerializer,
    TaskPaymentCreateSerializer,
    TaskPaymentSerializer,
    TaskVerificationSerializer,
)
from .services import MilestoneService, TaskPaymentService

logger = logging.getLogger(__name__)


def participant_filter(user, prefix='escrow__'):
    return Q(**{f'{prefix}project__client': user}) | Q(**{f'{prefix}project__contractor': user})


def ensure_escrow_client(view, request, escrow):
    if not (request.user.is_staff or escrow.client_id == request.user.id):
        view.permission_denied(request, message="Only the project client can perform this action.")


class MilestoneListCreateAPIView(generics.ListCreateAPIView):
    """
    GET: milestones on escrows the member takes part in (``?escrow=<id>`` to narrow).
    POST: the escrow's client adds a payment milestone.
    """
    serializer_class = PaymentMilestoneSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ['escrow', 'status']

    def get_queryset(self):
        queryset = PaymentMilestone.objects.select_related('escrow', 'contractor', 'verified_by')
        if getattr(self, 'swagger_fake_view', False) or self.request.user.is_staff:
            return queryset
        return queryset.filter(participant_filter(self.request.user))

    @swagger_auto_schema(
        operation_summary="Create a payment milestone",
        request_body=MilestoneCreateSerializer,
        responses={201: PaymentMilestoneSerializer(), 400: "Validation error", 403: "Forbidden"}
    )
    def post(self, request, *args, **kwargs):
        serializer = MilestoneCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ensure_escrow_client(self, request, serializer.validated_data['escrow'])

        try:
            result = MilestoneService().create_payment_milestone(**serializer.validated_data)
        except Exception:
            logger.exception("Error creating payment milestone")
            return Response({'error': 'Failed to create payment milestone'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        if result['status'] != 'success':
            return Response({'error': result['message']}, status=status.HTTP_400_BAD_REQUEST)
        return Response(PaymentMilestoneSerializer(result['milestone']).data, status=status.HTTP_201_CREATED)


class MilestoneCompleteAPIView(views.APIView):
    permission_classes = [permissions.IsAuthenticated, IsEscrowClientOrStaff]

    @swagger_auto_schema(
        operation_summary="Verify a milestone and release its payment",
        manual_parameters=[
            openapi.Parameter('pk', openapi.IN_PATH, description="Milestone ID", type=openapi.TYPE_INTEGER)
        ],
        responses={200: PaymentMilestoneSerializer(), 400: "Not payable", 403: "Forbidden", 404: "Not found"}
    )
    def post(self, request, pk):
        milestone = get_object_or_404(PaymentMilestone.objects.select_related('escrow__project'), pk=pk)
        self.check_object_permissions(request, milestone)

        try:
            result = MilestoneService().complete_milestone(milestone=milestone, verified_by=request.user)
        except Exception:
            logger.exception("Error completing milestone %s", pk)
            return Response({'error': 'Failed to complete milestone'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        if result['status'] != 'success':
            return Response({'error': result['message']}, status=status.HTTP_400_BAD_REQUEST)

        return Response({
            'milestone': PaymentMilestoneSerializer(result['milestone']).data,
            'payment': EscrowPaymentSerializer(result['payment']).data,
            'retention_withheld': str(result['retention_withheld']),
        }, status=status.HTTP_200_OK)


class TaskPaymentListCreateAPIView(generics.ListCreateAPIView):
    serializer_class = TaskPaymentSerializer
    permission_classes = [permissions.IsAuthenticated]
    filterset_fields = ['escrow', 'status']

    def get_queryset(self):
        queryset = TaskPayment.objects.select_related('escrow', 'contractor', 'approved_by')
        if getattr(self, 'swagger_fake_view', False) or self.request.user.is_staff:
            return queryset
        return queryset.filter(participant_filter(self.request.user))

    @swagger_auto_schema(
        operation_summary="Create a task payment",
        request_body=TaskPaymentCreateSerializer,
        responses={201: TaskPaymentSerializer(), 400: "Validation error", 403: "Forbidden"}
    )
    def post(self, request, *args, **kwargs):
        serializer = TaskPaymentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ensure_escrow_client(self, request, serializer.validated_data['escrow'])

        try:
            result = TaskPaymentService().create_task_payment(**serializer.validated_data)
        except Exception:
            logger.exception("Error creating task payment")
            return Response({'error': 'Failed to create task payment'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        if result['status'] != 'success':
            return Response({'error': result['message']}, status=status.HTTP_400_BAD_REQUEST)
        return Response(TaskPaymentSerializer(result['task']).data, status=status.HTTP_201_CREATED)


class TaskVerifyAPIView(views.APIView):
    permission_classes = [permissions.IsAuthenticated, IsEscrowClientOrStaff]

    @swagger_auto_schema(
        operation_summary="Record the verification of a completed task",
        request_body=TaskVerificationSerializer,
        responses={200: TaskPaymentSerializer(), 400: "Validation error", 403: "Forbidden", 404: "Not found"}
    )
    def post(self, request, pk):
        task = get_object_or_404(TaskPayment.objects.select_related('escrow__project'), pk=pk)
        self.check_object_permissions(request, task)
        serializer = TaskVerificationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = TaskPaymentService().verify_task_completion(task=task, **serializer.validated_data)
        except Exception:
            logger.exception("Error verifying task payment %s", pk)
            return Response({'error': 'Failed to verify task completion'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        if result['status'] != 'success':
            return Response({'error': result['message']}, status=status.HTTP_400_BAD_REQUEST)

        payment = result['payment']
        return Response({
            'message': result['message'],
            'task': TaskPaymentSerializer(result['task']).data,
            'payment': EscrowPaymentSerializer(payment).data if payment else None,
        }, status=status.HTTP_200_OK)


class TaskApproveAPIView(views.APIView):
    permission_classes = [permissions.IsAuthenticated, IsEscrowClientOrStaff]

    @swagger_auto_schema(
        operation_summary="Approve a verified task and release its payment",
        responses={200: TaskPaymentSerializer(), 400: "Not payable", 403: "Forbidden", 404: "Not found"}
    )
    def post(self, request, pk):
        task = get_object_or_404(TaskPayment.objects.select_related('escrow__project'), pk=pk)
        self.check_object_permissions(request, task)

        try:
            result = TaskPaymentService().approve_task_payment(task=task, approved_by=request.user)
        except Exception:
            logger.exception("Error approving task payment %s", pk)
            return Response({'error': 'Failed to approve task payment'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        if result['status'] != 'success':
            return Response({'error': result['message']}, status=status.HTTP_400_BAD_REQUEST)

        return Response({
            'task': TaskPaymentSerializer(result['task']).data,
            'payment': EscrowPaymentSerializer(result['payment']).data,
        }, status=status.HTTP_200_OK)


class CashFlowProjectionCreateAPIView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Record a cash-flow projection for an escrow",
        request_body=CashFlowProjectionCreateSerializer,
        responses={201: CashFlowProjectionSerializer(), 400: "Validation error", 403: "Forbidden"}
    )
    def post(self, request):
        serializer = CashFlowProjectionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        escrow = serializer.validated_data['escrow']
        if not (request.user.is_staff or escrow.is_participant(request.user)):
            self.permission_denied(request, message="Not authorised to access this escrow.")

        try:
            projection = CashFlowService().create_cash_flow_projection(member=request.user, **serializer.validated_data)
        except Exception:
            logger.exception("Error creating cash flow projection")
            return Response({'error': 'Failed to create cash flow projection'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        return Response(CashFlowProjectionSerializer(projection).data, status=status.HTTP_201_CREATED)


class CashFlowDashboardAPIView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(operation_summary="Cash-flow dashboard for the current member")
    def get(self, request):
        try:
            dashboard = CashFlowService().get_cash_flow_dashboard(request.user)
        except Exception:
            logger.exception("Error building cash flow dashboard")
            return Response({'error': 'Failed to get cash flow dashboard'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response(dashboard, status=status.HTTP_200_OK)


class PaymentReportAPIView(views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(
        operation_summary="Payment reports for the current member",
        query_serializer=ReportQuerySerializer,
        responses={200: "Report data", 400: "Invalid report type"}
    )
    def get(self, request):
        query = ReportQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        report_type = query.validated_data['type']

        builder = REPORT_BUILDERS.get(report_type)
        if builder is None:
            return Response({'error': 'Invalid report type'}, status=status.HTTP_400_BAD_REQUEST)

        try:
            report = builder(
                request.user,
                start_date=query.validated_data.get('start_date'),
                end_date=query.validated_data.get('end_date'),
            )
        except Exception:
            logger.exception("Error generating %s report", report_type)
            return Response({'error': 'Failed to generate report'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        return Response({'type': report_type, **report}, status=status.HTTP_200_OK)
