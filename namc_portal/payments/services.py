import logging
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from escrow.models import ProjectEscrow
from integrations.hubspot import sync_record
from .models import EscrowPayment, PaymentMilestone, TaskPayment
from .notifications import notify_payment_released
from .providers import get_payment_provider

logger = logging.getLogger(__name__)

CENTS = Decimal('0.01')

# Deposits go through the provider that matches how the client paid.
PAYMENT_METHOD_PROVIDERS = {
    'STRIPE': 'stripe',
    'ACH': 'manual',
    'WIRE': 'manual',
    'CHECK': 'manual',
}


def quantize(amount):
    return Decimal(str(amount)).quantize(CENTS, rounding=ROUND_HALF_UP)


class PaymentService:
    """
    Provider adapter. This class should NOT create or update escrow or ledger
    records. It only calls the configured payment provider(s).
    """
    def __init__(self, provider_name=None):
        self.default_provider_name = provider_name or settings.PAYOUT_PROVIDER

    def _get_provider(self, provider_name=None):
        name = provider_name or self.default_provider_name
        if not name:
            raise ValueError("provider_name is required (no default configured).")
        return get_payment_provider(name), name

    def open_escrow_account(self, escrow):
        provider, _ = self._get_provider()
        return provider.create_escrow_account(escrow)

    def collect_deposit(self, *, escrow, amount, payment_method, **kwargs):
        provider_name = PAYMENT_METHOD_PROVIDERS[payment_method]
        provider, resolved_name = self._get_provider(provider_name)
        # The escrow account only means something to the provider that opened it.
        account_id = escrow.processor_account_id if escrow.processor_provider == resolved_name else ''
        result = provider.charge(
            user=escrow.client,
            amount=amount,
            account_id=account_id,
            escrow_id=escrow.id,
            project_title=escrow.project.title,
            **kwargs,
        )
        result.setdefault('provider', resolved_name)
        return result

    def transfer_to_member(self, member, amount, **kwargs):
        """
        Transfer escrowed funds to a member using the payout provider.
        """
        provider, resolved_name = self._get_provider()
        result = provider.transfer_to_account(recipient=member, amount=amount, **kwargs)
        result.setdefault('provider', resolved_name)
        return result

    @property
    def payout_method(self):
        return 'STRIPE' if self.default_provider_name == 'stripe' else 'ACH'


def release_escrow_funds(escrow, recipient, gross_amount, payment_type, *,
                         withhold_retention=False, enforce_lock=True, payment_service=None):
    """
    Move money out of an escrow and record it in the ledger.

    The caller must hold the escrow row lock (``select_for_update``) inside a
    transaction. Retention withheld from milestone and task payouts stays in
    the escrow balance and is tracked on ``retention_held`` until it is
    released; it is not available to other payouts.

    Returns a result dict; on success it carries the ``payment`` ledger row.
    """
    payment_service = payment_service or PaymentService()
    gross_amount = quantize(gross_amount)

    if escrow.status == 'closed':
        return {'status': 'error', 'message': 'Escrow is closed'}
    if enforce_lock and escrow.is_locked:
        return {'status': 'error', 'message': 'Escrow is locked due to an open dispute'}
    if gross_amount <= 0:
        return {'status': 'error', 'message': 'Payment amount must be greater than zero'}

    if payment_type == 'RETENTION_RELEASE':
        available = escrow.retention_held
    else:
        available = escrow.escrow_balance - escrow.retention_held
    if gross_amount > available:
        return {'status': 'error', 'message': 'Insufficient escrow balance'}

    withheld = Decimal('0.00')
    if withhold_retention:
        withheld = quantize(gross_amount * escrow.retention_percentage / 100)
    net_amount = gross_amount - withheld

    transfer = payment_service.transfer_to_member(
        recipient,
        net_amount,
        escrow_id=escrow.id,
        payment_type=payment_type,
    )
    if transfer.get('status') != 'success':
        return {'status': 'error', 'message': transfer.get('message', 'Transfer failed')}

    payment = EscrowPayment.objects.create(
        escrow=escrow,
        recipient=recipient,
        amount=net_amount,
        payment_type=payment_type,
        payment_method=payment_service.payout_method,
        provider=transfer.get('provider', ''),
        transaction_id=transfer['transfer_id'],
        payment_status='COMPLETED',
    )

    escrow.escrow_balance -= net_amount
    if payment_type == 'RETENTION_RELEASE':
        escrow.retention_held -= net_amount
    else:
        escrow.retention_held += withheld
    if payment_type != 'REFUND':
        escrow.total_paid += net_amount
    escrow.last_payment_date = payment.payment_date
    escrow.last_payment_amount = net_amount
    escrow.save(update_fields=[
        'escrow_balance', 'retention_held', 'total_paid',
        'last_payment_date', 'last_payment_amount', 'updated_at',
    ])

    logger.info(
        f"Released {net_amount} ({payment_type}, {withheld} retained) from escrow {escrow.id} "
        f"to {recipient.email}, reference {payment.transaction_id}"
    )
    return {
        'status': 'success',
        'payment': payment,
        'gross_amount': gross_amount,
        'net_amount': net_amount,
        'retention_withheld': withheld,
    }


def milestone_crm_properties(milestone):
    return {
        'escrow_id': milestone.escrow_id,
        'milestone_name': milestone.milestone_name,
        'payment_amount': milestone.payment_amount,
        'payment_percentage': milestone.payment_percentage,
        'status': milestone.status,
        'due_date': milestone.due_date,
        'payment_released': milestone.payment_released,
    }


def task_crm_properties(task):
    return {
        'escrow_id': task.escrow_id,
        'task_id': task.task_id,
        'task_name': task.task_name,
        'payment_amount': task.payment_amount,
        'status': task.status,
        'quality_score': task.quality_score,
    }


class MilestoneService:
    def __init__(self, payment_service=None):
        self.payment_service = payment_service or PaymentService()

    def create_payment_milestone(self, *, escrow, milestone_name, payment_amount=None,
                                 payment_percentage=None, deliverables=None,
                                 verification_criteria=None, due_date=None):
        """
        Create a milestone worth either a fixed amount or a percentage of the
        project value; the other figure is derived.
        """
        if payment_amount is None and payment_percentage is None:
            return {'status': 'error', 'message': 'Either payment_amount or payment_percentage is required'}

        with transaction.atomic():
            escrow = ProjectEscrow.objects.select_for_update().get(pk=escrow.pk)
            if escrow.status == 'closed':
                return {'status': 'error', 'message': 'Escrow is closed'}

            total = escrow.total_project_value
            if payment_amount is None:
                payment_amount = quantize(total * Decimal(str(payment_percentage)) / 100)
            else:
                payment_amount = quantize(payment_amount)
                payment_percentage = quantize(payment_amount / total * 100)

            if payment_amount <= 0:
                return {'status': 'error', 'message': 'Milestone amount must be greater than zero'}

            committed = escrow.milestones.aggregate(total=Sum('payment_amount'))['total'] or Decimal('0')
            if committed + payment_amount > total:
                return {
                    'status': 'error',
                    'message': f'Milestone total would exceed project value ({committed + payment_amount} > {total})',
                }

            milestone = PaymentMilestone.objects.create(
                escrow=escrow,
                contractor=escrow.contractor,
                milestone_name=milestone_name,
                payment_amount=payment_amount,
                payment_percentage=quantize(payment_percentage),
                deliverables=deliverables or [],
                verification_criteria=verification_criteria or {},
                due_date=due_date,
            )

        sync_record(milestone, 'payment_milestones', milestone_crm_properties(milestone))
        logger.info(f"Milestone {milestone.id} '{milestone_name}' created on escrow {escrow.id} for {payment_amount}")
        return {'status': 'success', 'milestone': milestone}

    def complete_milestone(self, *, milestone, verified_by):
        """Verify a milestone's deliverables and release its payment."""
        with transaction.atomic():
            escrow = ProjectEscrow.objects.select_for_update().get(pk=milestone.escrow_id)
            milestone = PaymentMilestone.objects.select_for_update().get(pk=milestone.pk)

            if milestone.payment_released or milestone.status == 'paid':
                return {'status': 'error', 'message': 'Milestone has already been paid'}
            if escrow.status == 'closed':
                return {'status': 'error', 'message': 'Escrow is closed'}
            if escrow.is_locked:
                return {'status': 'error', 'message': 'Escrow is locked due to an open dispute'}

            now = timezone.now()
            if milestone.status == 'pending':
                milestone.status = 'verified'
                milestone.verified_by = verified_by
                milestone.verification_date = now
                milestone.completed_date = now
                milestone.save(update_fields=['status', 'verified_by', 'verification_date', 'completed_date'])

            result = release_escrow_funds(
                escrow,
                milestone.contractor,
                milestone.payment_amount,
                'MILESTONE',
                withhold_retention=True,
                payment_service=self.payment_service,
            )
            if result['status'] != 'success':
                return result

            payment = result['payment']
            milestone.status = 'paid'
            milestone.payment_released = True
            milestone.payment_date = payment.payment_date
            milestone.payment_transaction_id = payment.transaction_id
            milestone.save(update_fields=['status', 'payment_released', 'payment_date', 'payment_transaction_id'])

        notify_payment_released(payment)
        sync_record(milestone, 'payment_milestones', milestone_crm_properties(milestone))
        return {
            'status': 'success',
            'milestone': milestone,
            'payment': payment,
            'retention_withheld': result['retention_withheld'],
        }


class TaskPaymentService:
    def __init__(self, payment_service=None):
        self.payment_service = payment_service or PaymentService()

    def create_task_payment(self, *, escrow, task_id, task_name, payment_amount,
                            completion_requirements=None, verification_criteria=None,
                            approval_required=False, photos_required=False):
        payment_amount = quantize(payment_amount)
        if payment_amount <= 0:
            return {'status': 'error', 'message': 'Task payment amount must be greater than zero'}
        with transaction.atomic():
            escrow = ProjectEscrow.objects.select_for_update().get(pk=escrow.pk)
            if escrow.status == 'closed':
                return {'status': 'error', 'message': 'Escrow is closed'}
            if TaskPayment.objects.filter(escrow=escrow, task_id=task_id).exists():
                return {'status': 'error', 'message': f'A payment already exists for task {task_id}'}

            task = TaskPayment.objects.create(
                escrow=escrow,
                contractor=escrow.contractor,
                task_id=task_id,
                task_name=task_name,
                payment_amount=payment_amount,
                completion_requirements=completion_requirements or {},
                verification_criteria=verification_criteria or {},
                approval_required=approval_required,
                photos_required=photos_required,
            )
        sync_record(task, 'task_payments', task_crm_properties(task))
        return {'status': 'success', 'task': task}

    def verify_task_completion(self, *, task, quality_score, photos_submitted=None,
                               verification_notes='', compliance_check=False):
        """
        Record the verification outcome of a pending task.

        Low quality scores reject the task. Tasks that need client approval
        wait in ``verified``; the rest are approved and paid straight away.
        """
        photos_submitted = photos_submitted or []
        min_score = settings.TASK_MIN_QUALITY_SCORE
        payment = None

        with transaction.atomic():
            escrow = ProjectEscrow.objects.select_for_update().get(pk=task.escrow_id)
            task = TaskPayment.objects.select_for_update().get(pk=task.pk)

            if task.status != 'pending':
                return {'status': 'error', 'message': 'Only pending tasks can be verified'}
            if escrow.status == 'closed':
                return {'status': 'error', 'message': 'Escrow is closed'}
            if task.photos_required and not photos_submitted:
                return {'status': 'error', 'message': 'Photo evidence is required for this task'}

            passed = quality_score >= min_score
            auto_pay = passed and not task.approval_required
            if auto_pay and escrow.is_locked:
                return {'status': 'error', 'message': 'Escrow is locked due to an open dispute'}

            task.quality_score = quality_score
            task.photos_submitted = photos_submitted
            task.verification_notes = verification_notes
            task.compliance_check = compliance_check
            task.verified_at = timezone.now()

            if not passed:
                task.status = 'rejected'
            elif task.approval_required:
                task.status = 'verified'
            else:
                task.status = 'approved'
                task.approved_date = task.verified_at
            task.save()

            if auto_pay:
                result = self._pay_task(escrow, task)
                if result['status'] != 'success':
                    sync_record(task, 'task_payments', task_crm_properties(task))
                    return {
                        'status': 'error',
                        'message': f"Task approved but payment failed: {result['message']}",
                    }
                payment = result['payment']

        if payment:
            notify_payment_released(payment)
        sync_record(task, 'task_payments', task_crm_properties(task))

        if task.status == 'rejected':
            message = f'Task rejected: quality score {quality_score} is below the minimum of {min_score}'
        elif task.status == 'verified':
            message = 'Task verified, awaiting approval'
        else:
            message = 'Task approved and paid'
        return {'status': 'success', 'message': message, 'task': task, 'payment': payment}

    def approve_task_payment(self, *, task, approved_by):
        """Approve a verified task and release its payment."""
        with transaction.atomic():
            escrow = ProjectEscrow.objects.select_for_update().get(pk=task.escrow_id)
            task = TaskPayment.objects.select_for_update().get(pk=task.pk)

            if task.status == 'paid':
                return {'status': 'error', 'message': 'Task has already been paid'}
            if task.status not in ('verified', 'approved'):
                return {'status': 'error', 'message': 'Only verified tasks can be approved'}
            if escrow.status == 'closed':
                return {'status': 'error', 'message': 'Escrow is closed'}
            if escrow.is_locked:
                return {'status': 'error', 'message': 'Escrow is locked due to an open dispute'}

            task.status = 'approved'
            task.approved_by = approved_by
            task.approved_date = timezone.now()
            task.save(update_fields=['status', 'approved_by', 'approved_date'])

            result = self._pay_task(escrow, task)
            if result['status'] != 'success':
                return result
            payment = result['payment']

        notify_payment_released(payment)
        sync_record(task, 'task_payments', task_crm_properties(task))
        return {'status': 'success', 'task': task, 'payment': payment}

    def _pay_task(self, escrow, task):
        result = release_escrow_funds(
            escrow,
            task.contractor,
            task.payment_amount,
            'TASK_COMPLETION',
            withhold_retention=True,
            payment_service=self.payment_service,
        )
        if result['status'] == 'success':
            payment = result['payment']
            task.status = 'paid'
            task.paid_date = payment.payment_date
            task.payment_transaction_id = payment.transaction_id
            task.save(update_fields=['status', 'paid_date', 'payment_transaction_id'])
        return result
