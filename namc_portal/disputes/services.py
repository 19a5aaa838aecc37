import datetime
import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from escrow.models import ProjectEscrow
from integrations.hubspot import HubSpotClient
from payments.notifications import (
    notify_dispute_opened,
    notify_dispute_resolved,
    notify_mediation_requested,
    notify_payment_released,
)
from payments.services import PaymentService, quantize, release_escrow_funds
from .models import PaymentDispute

logger = logging.getLogger(__name__)

User = get_user_model()


class DisputeService:
    def __init__(self, payment_service=None, crm_client=None):
        self.payment_service = payment_service or PaymentService()
        self.crm_client = crm_client or HubSpotClient()

    def create_payment_dispute(self, *, escrow, submitted_by, dispute_reason, dispute_amount,
                               payment=None, evidence_provided=None, supporting_docs=None):
        """
        Open a dispute against an escrow. The escrow is locked until every
        dispute on it is resolved.
        """
        if not escrow.is_participant(submitted_by):
            return {'status': 'error', 'message': 'Only the project client or contractor can open a dispute'}
        if payment is not None and payment.escrow_id != escrow.id:
            return {'status': 'error', 'message': 'Payment does not belong to this escrow'}

        dispute_amount = quantize(dispute_amount)
        if dispute_amount <= 0:
            return {'status': 'error', 'message': 'Dispute amount must be greater than zero'}

        with transaction.atomic():
            escrow = ProjectEscrow.objects.select_for_update().get(pk=escrow.pk)
            if escrow.status == 'closed':
                return {'status': 'error', 'message': 'Escrow is closed'}

            respondent = escrow.contractor if submitted_by.id == escrow.client_id else escrow.client
            dispute = PaymentDispute.objects.create(
                escrow=escrow,
                payment=payment,
                submitted_by=submitted_by,
                respondent=respondent,
                dispute_reason=dispute_reason,
                dispute_amount=dispute_amount,
                evidence_provided=evidence_provided or [],
                supporting_docs=supporting_docs or [],
                response_deadline=timezone.now() + datetime.timedelta(days=settings.DISPUTE_RESPONSE_DAYS),
            )

            escrow.is_locked = True
            escrow.status = 'disputed'
            escrow.save(update_fields=['is_locked', 'status', 'updated_at'])

        ticket = self.crm_client.create_ticket(
            subject=f"Payment dispute #{dispute.id}: {escrow.project.title}",
            content=dispute_reason,
            pipeline='payment_disputes',
            priority='HIGH',
            category='PAYMENT_DISPUTE',
            record_id=dispute.id,
        )
        if ticket['status'] == 'success' and ticket.get('id'):
            dispute.crm_ticket_id = ticket['id']
            dispute.save(update_fields=['crm_ticket_id'])

        notify_dispute_opened(dispute)
        logger.info(f"Dispute {dispute.id} opened on escrow {escrow.id} by {submitted_by.email} for {dispute_amount}")
        return {'status': 'success', 'dispute': dispute}

    def request_mediation(self, *, dispute, requested_by):
        if not dispute.is_participant(requested_by):
            return {'status': 'error', 'message': 'Only dispute participants can request mediation'}

        with transaction.atomic():
            dispute = PaymentDispute.objects.select_for_update().get(pk=dispute.pk)
            if dispute.status != 'open':
                return {'status': 'error', 'message': 'Mediation can only be requested for open disputes'}

            mediator = (
                User.objects.filter(groups__name=settings.MEDIATOR_GROUP_NAME, is_active=True)
                .order_by('id')
                .first()
            )
            if mediator is None:
                logger.warning(f"No active mediator available for dispute {dispute.id}")

            dispute.status = 'mediation_requested'
            dispute.mediator = mediator
            dispute.mediation_requested_by = requested_by
            dispute.mediation_date = timezone.now() + datetime.timedelta(days=settings.MEDIATION_LEAD_DAYS)
            dispute.save(update_fields=['status', 'mediator', 'mediation_requested_by', 'mediation_date', 'updated_at'])

        notify_mediation_requested(dispute)
        return {'status': 'success', 'dispute': dispute}

    def resolve_dispute(self, *, dispute, resolution, resolved_by, resolution_amount=0):
        """
        Record a mediated outcome and pay any awarded amount to the member
        who opened the dispute.

        The award is paid even while other disputes keep the escrow locked.
        The lock is lifted only when no other dispute on the escrow is open.
        """
        resolution_amount = quantize(resolution_amount or 0)
        if resolution_amount < 0:
            return {'status': 'error', 'message': 'Resolution amount cannot be negative'}

        payment = None
        with transaction.atomic():
            escrow = ProjectEscrow.objects.select_for_update().get(pk=dispute.escrow_id)
            dispute = PaymentDispute.objects.select_for_update().get(pk=dispute.pk)
            if dispute.status == 'resolved':
                return {'status': 'error', 'message': 'Dispute has already been resolved'}

            if resolution_amount > 0:
                result = release_escrow_funds(
                    escrow,
                    dispute.submitted_by,
                    resolution_amount,
                    'REFUND',
                    enforce_lock=False,
                    payment_service=self.payment_service,
                )
                if result['status'] != 'success':
                    return result
                payment = result['payment']

            dispute.status = 'resolved'
            dispute.resolution = resolution
            dispute.resolution_amount = resolution_amount
            dispute.resolved_by = resolved_by
            dispute.resolution_date = timezone.now()
            dispute.save(update_fields=[
                'status', 'resolution', 'resolution_amount', 'resolved_by', 'resolution_date', 'updated_at',
            ])

            still_disputed = escrow.disputes.exclude(pk=dispute.pk).exclude(status='resolved').exists()
            if not still_disputed:
                escrow.is_locked = False
                if escrow.total_deposited > 0 and escrow.escrow_balance <= 0:
                    escrow.status = 'closed'
                else:
                    escrow.status = escrow.settled_status()
                escrow.save(update_fields=['is_locked', 'status', 'updated_at'])

        if payment:
            notify_payment_released(payment)
        notify_dispute_resolved(dispute)
        logger.info(f"Dispute {dispute.id} resolved by {resolved_by.email}, awarded {resolution_amount}")
        return {'status': 'success', 'dispute': dispute, 'escrow': escrow, 'payment': payment}
