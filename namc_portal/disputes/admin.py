from django.contrib import admin
from .models import PaymentDispute


@admin.register(PaymentDispute)
class PaymentDisputeAdmin(admin.ModelAdmin):
    list_display = ('id', 'escrow', 'submitted_by', 'respondent', 'dispute_amount', 'status', 'mediator', 'response_deadline')
    list_filter = ('status',)
    search_fields = ('dispute_reason', 'submitted_by__email', 'respondent__email', 'crm_ticket_id')
