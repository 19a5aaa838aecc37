from decimal import Decimal

from django.db import models
from django.contrib.auth import get_user_model
from auditlog.registry import auditlog

from escrow.models import ProjectEscrow, CrmSyncedModel

User = get_user_model()


class EscrowPayment(models.Model):
    """Ledger row for every movement of money into or out of an escrow."""
    TYPE_CHOICES = (
        ('DEPOSIT', 'Deposit'),
        ('TASK_COMPLETION', 'Task Completion'),
        ('MILESTONE', 'Milestone'),
        ('RETENTION_RELEASE', 'Retention Release'),
        ('REFUND', 'Refund'),
    )

    METHOD_CHOICES = (
        ('ACH', 'ACH'),
        ('WIRE', 'Wire'),
        ('CHECK', 'Check'),
        ('STRIPE', 'Stripe'),
    )

    STATUS_CHOICES = (
        ('PENDING', 'Pending'),
        ('COMPLETED', 'Completed'),
        ('FAILED', 'Failed'),
    )

    escrow = models.ForeignKey(ProjectEscrow, on_delete=models.CASCADE, related_name='payments')
    recipient = models.ForeignKey(User, on_delete=models.PROTECT, related_name='escrow_payments')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_type = models.CharField(max_length=20, choices=TYPE_CHOICES)
    payment_method = models.CharField(max_length=10, choices=METHOD_CHOICES, default='ACH')
    provider = models.CharField(max_length=50, blank=True)  # e.g., 'stripe', 'manual'
    transaction_id = models.CharField(max_length=255)
    payment_status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='COMPLETED')
    payment_date = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-payment_date', '-id']

    def __str__(self):
        return f"{self.payment_type} of {self.amount} for {self.escrow.project}"


class PaymentMilestone(CrmSyncedModel):
    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('verified', 'Verified'),
        ('paid', 'Paid'),
    )

    escrow = models.ForeignKey(ProjectEscrow, on_delete=models.PROTECT, related_name='milestones')
    contractor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='payment_milestones')
    milestone_name = models.CharField(max_length=255)
    payment_amount = models.DecimalField(max_digits=12, decimal_places=2)
    payment_percentage = models.DecimalField(max_digits=5, decimal_places=2)
    deliverables = models.JSONField(default=list, blank=True)
    verification_criteria = models.JSONField(default=dict, blank=True)
    due_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    completed_date = models.DateTimeField(null=True, blank=True)
    verified_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='verified_milestones')
    verification_date = models.DateTimeField(null=True, blank=True)
    payment_released = models.BooleanField(default=False)
    payment_date = models.DateTimeField(null=True, blank=True)
    payment_transaction_id = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['due_date', 'id']

    def __str__(self):
        return f"{self.milestone_name} ({self.payment_amount})"


class TaskPayment(CrmSyncedModel):
    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('verified', 'Verified'),      # awaiting client approval
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
        ('paid', 'Paid'),
    )

    escrow = models.ForeignKey(ProjectEscrow, on_delete=models.PROTECT, related_name='task_payments')
    contractor = models.ForeignKey(User, on_delete=models.PROTECT, related_name='task_payments')
    task_id = models.CharField(max_length=100)
    task_name = models.CharField(max_length=255)
    payment_amount = models.DecimalField(max_digits=12, decimal_places=2)
    completion_requirements = models.JSONField(default=dict, blank=True)
    verification_criteria = models.JSONField(default=dict, blank=True)
    approval_required = models.BooleanField(default=False)
    photos_required = models.BooleanField(default=False)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    quality_score = models.PositiveSmallIntegerField(null=True, blank=True)
    photos_submitted = models.JSONField(default=list, blank=True)
    verification_notes = models.TextField(blank=True)
    compliance_check = models.BooleanField(default=False)
    verified_at = models.DateTimeField(null=True, blank=True)
    approved_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='approved_task_payments')
    approved_date = models.DateTimeField(null=True, blank=True)
    paid_date = models.DateTimeField(null=True, blank=True)
    payment_transaction_id = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        unique_together = ['escrow', 'task_id']

    def __str__(self):
        return f"{self.task_name} ({self.payment_amount})"


class CashFlowProjection(models.Model):
    escrow = models.ForeignKey(ProjectEscrow, on_delete=models.CASCADE, related_name='cash_flow_projections')
    member = models.ForeignKey(User, on_delete=models.CASCADE, related_name='cash_flow_projections')
    projection_date = models.DateField()
    projected_inflow = models.DecimalField(max_digits=12, decimal_places=2)
    projected_outflow = models.DecimalField(max_digits=12, decimal_places=2)
    net_cash_flow = models.DecimalField(max_digits=12, decimal_places=2)
    confidence_score = models.DecimalField(max_digits=3, decimal_places=2, default=Decimal('0.80'))
    risk_factors = models.JSONField(default=list, blank=True)
    recommendations = models.JSONField(default=list, blank=True)
    actual_inflow = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    actual_outflow = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-projection_date', '-id']

    def __str__(self):
        return f"Projection {self.projection_date} for {self.member} ({self.net_cash_flow})"


auditlog.register(PaymentMilestone)
auditlog.register(TaskPayment)
