from decimal import Decimal

from django.conf import settings
from django.db import models
from auditlog.registry import auditlog

from projects.models import Project


class CrmSyncedModel(models.Model):
    """Fields tracking the HubSpot object that mirrors a payment record."""
    SYNC_STATUS_CHOICES = (
        ('PENDING', 'Pending'),
        ('SYNCED', 'Synced'),
        ('FAILED', 'Failed'),
    )

    hubspot_object_id = models.CharField(max_length=64, blank=True)
    hubspot_sync_status = models.CharField(max_length=10, choices=SYNC_STATUS_CHOICES, default='PENDING')
    hubspot_last_sync = models.DateTimeField(null=True, blank=True)

    class Meta:
        abstract = True


class ProjectEscrow(CrmSyncedModel):
    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('active', 'Active'),          # partially funded
        ('funded', 'Funded'),
        ('completed', 'Completed'),
        ('disputed', 'Disputed'),
        ('closed', 'Closed'),
    )

    project = models.OneToOneField(Project, on_delete=models.PROTECT, related_name='escrow')
    total_project_value = models.DecimalField(max_digits=12, decimal_places=2)
    escrow_balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_deposited = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total_paid = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    retention_percentage = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal('10.00'))
    retention_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    retention_held = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    payment_schedule = models.JSONField(default=list, blank=True)
    expected_completion_date = models.DateField(null=True, blank=True)
    actual_completion_date = models.DateField(null=True, blank=True)
    processor_account_id = models.CharField(max_length=255, blank=True)
    processor_provider = models.CharField(max_length=20, blank=True)
    is_locked = models.BooleanField(default=False)  # Lock during disputes
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    last_payment_date = models.DateTimeField(null=True, blank=True)
    last_payment_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Escrow for {self.project.title} ({self.total_project_value})"

    @property
    def client(self):
        return self.project.client

    @property
    def contractor(self):
        return self.project.contractor

    @property
    def client_id(self):
        return self.project.client_id

    @property
    def contractor_id(self):
        return self.project.contractor_id

    def is_participant(self, user):
        return self.project.is_participant(user)

    def settled_status(self):
        """Status the escrow holds when no dispute is open."""
        if self.actual_completion_date:
            return 'completed'
        if self.total_deposited <= 0:
            return 'pending'
        if self.total_deposited >= self.total_project_value:
            return 'funded'
        return 'active'


class ChangeOrder(models.Model):
    escrow = models.ForeignKey(ProjectEscrow, on_delete=models.CASCADE, related_name='change_orders')
    change_order_number = models.CharField(max_length=50)
    description = models.TextField()
    amount_change = models.DecimalField(max_digits=12, decimal_places=2)
    schedule_impact = models.IntegerField(default=0, help_text="Days added (positive) or removed (negative)")
    reason = models.TextField(blank=True)
    approved_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='approved_change_orders')
    previous_project_value = models.DecimalField(max_digits=12, decimal_places=2)
    new_project_value = models.DecimalField(max_digits=12, decimal_places=2)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        unique_together = ['escrow', 'change_order_number']

    def __str__(self):
        return f"Change order {self.change_order_number} ({self.amount_change:+})"


auditlog.register(ProjectEscrow)
