import logging

from django.db.models import Q
from django.shortcuts import get_object_or_404
from rest_framework import generics, permissions, status, views
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema
from drf_yasg import openapi

from payments.models import EscrowPayment
from .models import ProjectEscrow
from .permissions import IsEscrowClientOrStaff, IsEscrowParticipantOrStaff
from .serializers import (
	ChangeOrderCreateSerializer,
	ChangeOrderSerializer,
	EscrowCreateSerializer,
	EscrowFundSerializer,
	EscrowPaymentSerializer,
	ProjectEscrowSerializer,
)
from .services import EscrowService

logger = logging.getLogger(__name__)

escrow_id_param = openapi.Parameter(
	'pk',
	openapi.IN_PATH,
	description="Project escrow ID",
	type=openapi.TYPE_INTEGER,
)


def escrow_queryset():
	return ProjectEscrow.objects.select_related(
		"project",
		"project__client",
		"project__contractor",
	)


class EscrowListCreateView(generics.ListCreateAPIView):
	"""
	GET: escrows where the member is client or contractor.
	POST: open an escrow for a project the requester owns.
	"""

	serializer_class = ProjectEscrowSerializer
	permission_classes = [permissions.IsAuthenticated]
	filterset_fields = ["status", "is_locked"]

	@swagger_auto_schema(
		operation_summary="List project escrows for a member",
		manual_parameters=[
			openapi.Parameter(
				'member_id',
				openapi.IN_QUERY,
				description="Member whose escrows to list (defaults to the requester; staff only for others)",
				type=openapi.TYPE_INTEGER,
			)
		],
		responses={200: ProjectEscrowSerializer(many=True)}
	)
	def get(self, request, *args, **kwargs):
		return super().get(request, *args, **kwargs)

	def get_queryset(self):
		if getattr(self, "swagger_fake_view", False):
			return ProjectEscrow.objects.none()
		user = self.request.user
		member_id = self.request.query_params.get("member_id")

		if member_id in (None, ""):
			member_id = user.id
		elif not member_id.isdigit():
			raise ValidationError({"member_id": "A valid member id is required."})
		elif int(member_id) != user.id and not user.is_staff:
			self.permission_denied(self.request, message="Not authorised to view another member's escrows.")

		return escrow_queryset().filter(
			Q(project__client_id=member_id) | Q(project__contractor_id=member_id)
		)

	@swagger_auto_schema(
		operation_summary="Create a project escrow",
		request_body=EscrowCreateSerializer,
		responses={
			201: ProjectEscrowSerializer(),
			400: "Validation error",
			403: "Forbidden",
		}
	)
	def post(self, request, *args, **kwargs):
		serializer = EscrowCreateSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)
		data = serializer.validated_data
		project = data["project"]

		if project.client_id != request.user.id and not request.user.is_staff:
			return Response(
				{"error": "Only the project client can open an escrow."},
				status=status.HTTP_403_FORBIDDEN,
			)

		try:
			result = EscrowService().create_project_escrow(**data)
		except Exception:
			logger.exception("Error creating project escrow")
			return Response({"error": "Failed to create escrow"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

		if result["status"] != "success":
			return Response({"error": result["message"]}, status=status.HTTP_400_BAD_REQUEST)
		return Response(ProjectEscrowSerializer(result["escrow"]).data, status=status.HTTP_201_CREATED)


class EscrowDetailView(generics.RetrieveAPIView):
	serializer_class = ProjectEscrowSerializer
	permission_classes = [permissions.IsAuthenticated, IsEscrowParticipantOrStaff]

	def get_queryset(self):
		return escrow_queryset()

	@swagger_auto_schema(
		operation_summary="Retrieve a project escrow",
		responses={200: ProjectEscrowSerializer(), 403: "Forbidden", 404: "Not found"}
	)
	def get(self, request, *args, **kwargs):
		return super().get(request, *args, **kwargs)


class EscrowActionView(views.APIView):
	"""Base for POST actions taken by the escrow's client (or staff)."""

	permission_classes = [permissions.IsAuthenticated, IsEscrowClientOrStaff]

	def get_escrow(self, pk):
		escrow = get_object_or_404(escrow_queryset(), pk=pk)
		self.check_object_permissions(self.request, escrow)
		return escrow


class EscrowFundView(EscrowActionView):

	@swagger_auto_schema(
		operation_summary="Deposit funds into an escrow",
		manual_parameters=[escrow_id_param],
		request_body=EscrowFundSerializer,
		responses={
			200: ProjectEscrowSerializer(),
			400: "Validation error",
			403: "Forbidden",
			404: "Not found",
		}
	)
	def post(self, request, pk):
		escrow = self.get_escrow(pk)
		serializer = EscrowFundSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)
		data = dict(serializer.validated_data)

		extra = {}
		if data.get("payment_method_id"):
			extra["payment_method_id"] = data["payment_method_id"]
		if data.get("reference"):
			extra["reference"] = data["reference"]

		try:
			result = EscrowService().fund_escrow(
				escrow=escrow,
				amount=data["amount"],
				payment_method=data["payment_method"],
				**extra,
			)
		except Exception:
			logger.exception("Error funding escrow %s", pk)
			return Response({"error": "Failed to fund escrow"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

		if result["status"] != "success":
			body = {"error": result["message"]}
			if result.get("client_secret"):
				body["client_secret"] = result["client_secret"]
			return Response(body, status=status.HTTP_400_BAD_REQUEST)

		return Response({
			"escrow": ProjectEscrowSerializer(result["escrow"]).data,
			"payment": EscrowPaymentSerializer(result["payment"]).data,
		}, status=status.HTTP_200_OK)


class EscrowChangeOrderView(EscrowActionView):

	def get_permissions(self):
		if self.request.method == "GET":
			return [permissions.IsAuthenticated(), IsEscrowParticipantOrStaff()]
		return super().get_permissions()

	@swagger_auto_schema(
		operation_summary="List change orders applied to an escrow",
		manual_parameters=[escrow_id_param],
		responses={200: ChangeOrderSerializer(many=True), 403: "Forbidden", 404: "Not found"}
	)
	def get(self, request, pk):
		escrow = self.get_escrow(pk)
		change_orders = escrow.change_orders.select_related("approved_by")
		return Response(ChangeOrderSerializer(change_orders, many=True).data)

	@swagger_auto_schema(
		operation_summary="Apply an approved change order",
		manual_parameters=[escrow_id_param],
		request_body=ChangeOrderCreateSerializer,
		responses={
			201: ChangeOrderSerializer(),
			400: "Validation error",
			403: "Forbidden",
			404: "Not found",
		}
	)
	def post(self, request, pk):
		escrow = self.get_escrow(pk)
		serializer = ChangeOrderCreateSerializer(data=request.data)
		serializer.is_valid(raise_exception=True)

		try:
			result = EscrowService().process_change_order(
				escrow=escrow,
				approved_by=request.user,
				**serializer.validated_data,
			)
		except Exception:
			logger.exception("Error processing change order on escrow %s", pk)
			return Response({"error": "Failed to process change order"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

		if result["status"] != "success":
			return Response({"error": result["message"]}, status=status.HTTP_400_BAD_REQUEST)

		return Response({
			"change_order": ChangeOrderSerializer(result["change_order"]).data,
			"escrow": ProjectEscrowSerializer(result["escrow"]).data,
		}, status=status.HTTP_201_CREATED)


class EscrowCompleteView(EscrowActionView):

	@swagger_auto_schema(
		operation_summary="Mark the project under an escrow as completed",
		manual_parameters=[escrow_id_param],
		responses={200: ProjectEscrowSerializer(), 400: "Not completable", 403: "Forbidden", 404: "Not found"}
	)
	def post(self, request, pk):
		escrow = self.get_escrow(pk)
		try:
			result = EscrowService().mark_completed(escrow=escrow)
		except Exception:
			logger.exception("Error completing escrow %s", pk)
			return Response({"error": "Failed to complete escrow"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

		if result["status"] != "success":
			return Response({"error": result["message"]}, status=status.HTTP_400_BAD_REQUEST)
		return Response(ProjectEscrowSerializer(result["escrow"]).data, status=status.HTTP_200_OK)


class EscrowReleaseRetentionView(EscrowActionView):

	@swagger_auto_schema(
		operation_summary="Release retention to the contractor, refund the remaining balance and close the escrow",
		manual_parameters=[escrow_id_param],
		responses={200: ProjectEscrowSerializer(), 400: "Not releasable", 403: "Forbidden", 404: "Not found"}
	)
	def post(self, request, pk):
		escrow = self.get_escrow(pk)
		try:
			result = EscrowService().release_retention(escrow=escrow, released_by=request.user)
		except Exception:
			logger.exception("Error releasing retention on escrow %s", pk)
			return Response({"error": "Failed to release retention"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

		if result["status"] != "success":
			return Response({"error": result["message"]}, status=status.HTTP_400_BAD_REQUEST)

		payment, refund = result["payment"], result["refund"]
		return Response({
			"escrow": ProjectEscrowSerializer(result["escrow"]).data,
			"retention_released": str(result["retention_released"]),
			"payment": EscrowPaymentSerializer(payment).data if payment else None,
			"balance_refunded": str(result["balance_refunded"]),
			"refund": EscrowPaymentSerializer(refund).data if refund else None,
		}, status=status.HTTP_200_OK)


class EscrowPaymentListView(generics.ListAPIView):
	"""Ledger of deposits and payouts for one escrow."""

	serializer_class = EscrowPaymentSerializer
	permission_classes = [permissions.IsAuthenticated, IsEscrowParticipantOrStaff]
	filterset_fields = ["payment_type", "payment_status"]

	@swagger_auto_schema(
		operation_summary="List the payment ledger of an escrow",
		manual_parameters=[escrow_id_param],
		responses={200: EscrowPaymentSerializer(many=True), 403: "Forbidden", 404: "Not found"}
	)
	def get(self, request, *args, **kwargs):
		return super().get(request, *args, **kwargs)

	def get_queryset(self):
		if getattr(self, "swagger_fake_view", False):
			return EscrowPayment.objects.none()
		escrow = get_object_or_404(escrow_queryset(), pk=self.kwargs["pk"])
		self.check_object_permissions(self.request, escrow)
		return EscrowPayment.objects.filter(escrow=escrow).select_related("recipient")
