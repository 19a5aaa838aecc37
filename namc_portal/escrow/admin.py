from django.contrib import admin
from .models import ProjectEscrow, ChangeOrder


@admin.register(ProjectEscrow)
class ProjectEscrowAdmin(admin.ModelAdmin):
    list_display = ('id', 'project', 'total_project_value', 'escrow_balance', 'total_paid', 'retention_held', 'status', 'is_locked')
    list_filter = ('status', 'is_locked', 'hubspot_sync_status')
    search_fields = ('project__title', 'processor_account_id', 'project__client__email', 'project__contractor__email')


@admin.register(ChangeOrder)
class ChangeOrderAdmin(admin.ModelAdmin):
    list_display = ('id', 'escrow', 'change_order_number', 'amount_change', 'schedule_impact', 'approved_by', 'created_at')
    search_fields = ('change_order_number', 'description')
