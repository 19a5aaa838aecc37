from decimal import Decimal

from rest_framework import serializers

from accounts.serializers import MemberSummarySerializer
from escrow.models import ProjectEscrow
from payments.models import EscrowPayment
from .models import PaymentDispute


class PaymentDisputeSerializer(serializers.ModelSerializer):
    """Read representation of a dispute with the people involved expanded."""
    project_title = serializers.CharField(source='escrow.project.title', read_only=True)
    submitted_by = MemberSummarySerializer(read_only=True)
    respondent = MemberSummarySerializer(read_only=True)
    mediator = MemberSummarySerializer(read_only=True)
    resolved_by = MemberSummarySerializer(read_only=True)

    class Meta:
        model = PaymentDispute
        fields = [
            'id', 'escrow', 'project_title', 'payment', 'submitted_by', 'respondent',
            'dispute_reason', 'dispute_amount', 'evidence_provided', 'supporting_docs',
            'status', 'response_deadline', 'mediator', 'mediation_date',
            'resolution', 'resolution_amount', 'resolved_by', 'resolution_date',
            'crm_ticket_id', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class DisputeCreateSerializer(serializers.Serializer):
    escrow_id = serializers.PrimaryKeyRelatedField(queryset=ProjectEscrow.objects.all(), source='escrow')
    payment_id = serializers.PrimaryKeyRelatedField(
        queryset=EscrowPayment.objects.all(),
        source='payment',
        required=False,
        allow_null=True,
    )
    dispute_reason = serializers.CharField()
    dispute_amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    evidence_provided = serializers.ListField(child=serializers.CharField(), required=False)
    supporting_docs = serializers.ListField(child=serializers.CharField(), required=False)

    def validate(self, attrs):
        payment = attrs.get('payment')
        if payment is not None and payment.escrow_id != attrs['escrow'].id:
            raise serializers.ValidationError({'payment_id': "Payment does not belong to this escrow."})
        return attrs


class DisputeResolveSerializer(serializers.Serializer):
    resolution = serializers.CharField()
    resolution_amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=Decimal('0'),
        required=False,
        default=Decimal('0'),
    )
