from decimal import Decimal

from rest_framework import serializers

from accounts.serializers import MemberSummarySerializer
from payments.models import EscrowPayment
from projects.models import Project
from .models import ProjectEscrow, ChangeOrder


class EscrowPaymentSerializer(serializers.ModelSerializer):
    recipient = MemberSummarySerializer(read_only=True)

    class Meta:
        model = EscrowPayment
        fields = (
            "id",
            "escrow",
            "recipient",
            "amount",
            "payment_type",
            "payment_method",
            "provider",
            "transaction_id",
            "payment_status",
            "payment_date",
        )
        read_only_fields = fields


class ProjectEscrowSerializer(serializers.ModelSerializer):
    project_id = serializers.IntegerField(source="project.id", read_only=True)
    project_title = serializers.CharField(source="project.title", read_only=True)
    client = MemberSummarySerializer(source="project.client", read_only=True)
    contractor = MemberSummarySerializer(source="project.contractor", read_only=True)

    class Meta:
        model = ProjectEscrow
        fields = (
            "id",
            "project_id",
            "project_title",
            "client",
            "contractor",
            "total_project_value",
            "escrow_balance",
            "total_deposited",
            "total_paid",
            "retention_percentage",
            "retention_amount",
            "retention_held",
            "payment_schedule",
            "expected_completion_date",
            "actual_completion_date",
            "processor_account_id",
            "processor_provider",
            "is_locked",
            "status",
            "last_payment_date",
            "last_payment_amount",
            "hubspot_object_id",
            "hubspot_sync_status",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class EscrowCreateSerializer(serializers.Serializer):
    project_id = serializers.PrimaryKeyRelatedField(queryset=Project.objects.all(), source="project")
    total_project_value = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    payment_schedule = serializers.JSONField(required=False)
    retention_percentage = serializers.DecimalField(
        max_digits=5,
        decimal_places=2,
        min_value=Decimal("0"),
        max_value=Decimal("100"),
        required=False,
    )
    expected_completion_date = serializers.DateField(required=False, allow_null=True)

    def validate_payment_schedule(self, value):
        if not isinstance(value, list):
            raise serializers.ValidationError("Payment schedule must be a list.")
        return value


class EscrowFundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0.01"))
    payment_method = serializers.ChoiceField(choices=EscrowPayment.METHOD_CHOICES)
    payment_method_id = serializers.CharField(required=False, allow_blank=True)
    reference = serializers.CharField(required=False, allow_blank=True, max_length=255)

    def validate(self, attrs):
        if attrs["payment_method"] == "STRIPE" and not attrs.get("payment_method_id"):
            raise serializers.ValidationError({"payment_method_id": "A Stripe payment method is required."})
        return attrs


class ChangeOrderSerializer(serializers.ModelSerializer):
    approved_by = MemberSummarySerializer(read_only=True)

    class Meta:
        model = ChangeOrder
        fields = (
            "id",
            "escrow",
            "change_order_number",
            "description",
            "amount_change",
            "schedule_impact",
            "reason",
            "approved_by",
            "previous_project_value",
            "new_project_value",
            "created_at",
        )
        read_only_fields = fields


class ChangeOrderCreateSerializer(serializers.Serializer):
    change_order_number = serializers.CharField(max_length=50)
    description = serializers.CharField()
    amount_change = serializers.DecimalField(max_digits=12, decimal_places=2)
    schedule_impact = serializers.IntegerField(required=False, default=0)
    reason = serializers.CharField(required=False, allow_blank=True, default="")
