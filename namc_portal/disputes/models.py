from django.db import models
from django.contrib.auth import get_user_model
from auditlog.registry import auditlog

from escrow.models import ProjectEscrow
from payments.models import EscrowPayment

User = get_user_model()


class PaymentDispute(models.Model):
    STATUS_CHOICES = (
        ('open', 'Open'),
        ('mediation_requested', 'Mediation Requested'),
        ('resolved', 'Resolved'),
    )

    escrow = models.ForeignKey(ProjectEscrow, on_delete=models.CASCADE, related_name='disputes')
    payment = models.ForeignKey(EscrowPayment, on_delete=models.SET_NULL, null=True, blank=True, related_name='disputes')
    submitted_by = models.ForeignKey(User, on_delete=models.PROTECT, related_name='submitted_disputes')
    respondent = models.ForeignKey(User, on_delete=models.PROTECT, related_name='responding_disputes')

    dispute_reason = models.TextField()
    dispute_amount = models.DecimalField(max_digits=12, decimal_places=2)
    evidence_provided = models.JSONField(default=list, blank=True)
    supporting_docs = models.JSONField(default=list, blank=True)

    status = models.CharField(max_length=30, choices=STATUS_CHOICES, default='open')
    response_deadline = models.DateTimeField()

    mediator = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='mediated_disputes')
    mediation_requested_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    mediation_date = models.DateTimeField(null=True, blank=True)

    resolution = models.TextField(blank=True)
    resolution_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    resolved_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='resolved_disputes')
    resolution_date = models.DateTimeField(null=True, blank=True)

    crm_ticket_id = models.CharField(max_length=64, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"Dispute #{self.pk} on escrow #{self.escrow_id} by {self.submitted_by}"

    @property
    def is_open(self):
        return self.status != 'resolved'

    def is_participant(self, user):
        return user.id in (self.submitted_by_id, self.respondent_id)


auditlog.register(PaymentDispute)
