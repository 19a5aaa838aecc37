from decimal import Decimal

from rest_framework import serializers

from accounts.serializers import MemberSummarySerializer
from escrow.models import ProjectEscrow
from .models import PaymentMilestone, TaskPayment, CashFlowProjection


class PaymentMilestoneSerializer(serializers.ModelSerializer):
    contractor = MemberSummarySerializer(read_only=True)
    verified_by = MemberSummarySerializer(read_only=True)

    class Meta:
        model = PaymentMilestone
        fields = [
            'id', 'escrow', 'contractor', 'milestone_name', 'payment_amount', 'payment_percentage',
            'deliverables', 'verification_criteria', 'due_date', 'status', 'completed_date',
            'verified_by', 'verification_date', 'payment_released', 'payment_date',
            'payment_transaction_id', 'hubspot_sync_status', 'created_at',
        ]
        read_only_fields = fields


class MilestoneCreateSerializer(serializers.Serializer):
    """
    Either ``payment_amount`` or ``payment_percentage`` must be provided;
    the other is derived from the escrow's project value.
    """
    escrow_id = serializers.PrimaryKeyRelatedField(queryset=ProjectEscrow.objects.all(), source='escrow')
    milestone_name = serializers.CharField(max_length=255)
    payment_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'), required=False)
    payment_percentage = serializers.DecimalField(
        max_digits=5, decimal_places=2, min_value=Decimal('0.01'), max_value=Decimal('100'), required=False,
    )
    deliverables = serializers.ListField(child=serializers.CharField(), required=False)
    verification_criteria = serializers.JSONField(required=False)
    due_date = serializers.DateField(required=False, allow_null=True)

    def validate(self, attrs):
        if attrs.get('payment_amount') is None and attrs.get('payment_percentage') is None:
            raise serializers.ValidationError("Either payment_amount or payment_percentage is required.")
        return attrs


class TaskPaymentSerializer(serializers.ModelSerializer):
    contractor = MemberSummarySerializer(read_only=True)
    approved_by = MemberSummarySerializer(read_only=True)

    class Meta:
        model = TaskPayment
        fields = [
            'id', 'escrow', 'contractor', 'task_id', 'task_name', 'payment_amount',
            'completion_requirements', 'verification_criteria', 'approval_required', 'photos_required',
            'status', 'quality_score', 'photos_submitted', 'verification_notes', 'compliance_check',
            'verified_at', 'approved_by', 'approved_date', 'paid_date', 'payment_transaction_id',
            'hubspot_sync_status', 'created_at',
        ]
        read_only_fields = fields


class TaskPaymentCreateSerializer(serializers.Serializer):
    escrow_id = serializers.PrimaryKeyRelatedField(queryset=ProjectEscrow.objects.all(), source='escrow')
    task_id = serializers.CharField(max_length=100)
    task_name = serializers.CharField(max_length=255)
    payment_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    completion_requirements = serializers.JSONField(required=False)
    verification_criteria = serializers.JSONField(required=False)
    approval_required = serializers.BooleanField(required=False, default=False)
    photos_required = serializers.BooleanField(required=False, default=False)


class TaskVerificationSerializer(serializers.Serializer):
    quality_score = serializers.IntegerField(min_value=0, max_value=100)
    photos_submitted = serializers.ListField(child=serializers.CharField(), required=False)
    verification_notes = serializers.CharField(required=False, allow_blank=True, default='')
    compliance_check = serializers.BooleanField(required=False, default=False)


class CashFlowProjectionSerializer(serializers.ModelSerializer):
    class Meta:
        model = CashFlowProjection
        fields = [
            'id', 'escrow', 'member', 'projection_date', 'projected_inflow', 'projected_outflow',
            'net_cash_flow', 'confidence_score', 'risk_factors', 'recommendations',
            'actual_inflow', 'actual_outflow', 'created_at',
        ]
        read_only_fields = fields


class CashFlowProjectionCreateSerializer(serializers.Serializer):
    escrow_id = serializers.PrimaryKeyRelatedField(queryset=ProjectEscrow.objects.all(), source='escrow')
    projection_date = serializers.DateField()
    projected_inflow = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))
    projected_outflow = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0'))
    risk_factors = serializers.ListField(child=serializers.CharField(), required=False)
    recommendations = serializers.ListField(child=serializers.CharField(), required=False)


class ReportQuerySerializer(serializers.Serializer):
    type = serializers.CharField(required=False, default='summary')
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)

    def validate(self, attrs):
        start, end = attrs.get('start_date'), attrs.get('end_date')
        if start and end and start > end:
            raise serializers.ValidationError("start_date must be on or before end_date.")
        return attrs
