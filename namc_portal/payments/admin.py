from django.contrib import admin
from .models import (
    EscrowPayment,
    PaymentMilestone,
    TaskPayment,
    CashFlowProjection,
)


@admin.register(EscrowPayment)
class EscrowPaymentAdmin(admin.ModelAdmin):
    list_display = ('id', 'escrow', 'recipient', 'amount', 'payment_type', 'payment_method', 'provider', 'payment_status', 'payment_date')
    list_filter = ('payment_type', 'payment_method', 'provider', 'payment_status')
    search_fields = ('transaction_id', 'recipient__email')


@admin.register(PaymentMilestone)
class PaymentMilestoneAdmin(admin.ModelAdmin):
    list_display = ('id', 'escrow', 'milestone_name', 'payment_amount', 'payment_percentage', 'status', 'due_date', 'payment_released')
    list_filter = ('status', 'payment_released', 'hubspot_sync_status')
    search_fields = ('milestone_name', 'payment_transaction_id')


@admin.register(TaskPayment)
class TaskPaymentAdmin(admin.ModelAdmin):
    list_display = ('id', 'escrow', 'task_id', 'task_name', 'payment_amount', 'status', 'quality_score', 'paid_date')
    list_filter = ('status', 'approval_required', 'photos_required', 'hubspot_sync_status')
    search_fields = ('task_id', 'task_name', 'payment_transaction_id')


@admin.register(CashFlowProjection)
class CashFlowProjectionAdmin(admin.ModelAdmin):
    list_display = ('id', 'escrow', 'member', 'projection_date', 'net_cash_flow', 'confidence_score')
    search_fields = ('member__email',)
