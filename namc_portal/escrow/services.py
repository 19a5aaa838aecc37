import datetime
import logging
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from integrations.hubspot import HubSpotClient, sync_record
from payments.models import EscrowPayment
from payments.notifications import notify_payment_released
from payments.services import PaymentService, quantize, release_escrow_funds
from .models import ProjectEscrow, ChangeOrder

logger = logging.getLogger(__name__)


def escrow_crm_properties(escrow):
    return {
        'project_id': escrow.project_id,
        'project_title': escrow.project.title,
        'total_project_value': escrow.total_project_value,
        'escrow_balance': escrow.escrow_balance,
        'total_deposited': escrow.total_deposited,
        'total_paid': escrow.total_paid,
        'retention_percentage': escrow.retention_percentage,
        'retention_held': escrow.retention_held,
        'status': escrow.status,
        'expected_completion_date': escrow.expected_completion_date,
    }


class EscrowService:
    def __init__(self, payment_service=None):
        self.payment_service = payment_service or PaymentService()

    def create_project_escrow(self, *, project, total_project_value, payment_schedule=None,
                              retention_percentage=None, expected_completion_date=None):
        """
        Open an escrow for a project that already has a contractor assigned.
        The processor account is opened in the same transaction, so a
        provider failure leaves no escrow behind.
        """
        if project.contractor_id is None:
            return {'status': 'error', 'message': 'Project must have an assigned contractor before opening an escrow'}
        if ProjectEscrow.objects.filter(project=project).exists():
            return {'status': 'error', 'message': 'An escrow already exists for this project'}

        total_project_value = quantize(total_project_value)
        if total_project_value <= 0:
            return {'status': 'error', 'message': 'Total project value must be greater than zero'}

        if retention_percentage is None:
            retention_percentage = settings.DEFAULT_RETENTION_PERCENTAGE
        retention_percentage = quantize(retention_percentage)
        if not Decimal('0') <= retention_percentage <= Decimal('100'):
            return {'status': 'error', 'message': 'Retention percentage must be between 0 and 100'}

        try:
            with transaction.atomic():
                escrow = ProjectEscrow.objects.create(
                    project=project,
                    total_project_value=total_project_value,
                    retention_percentage=retention_percentage,
                    retention_amount=quantize(total_project_value * retention_percentage / 100),
                    payment_schedule=payment_schedule or [],
                    expected_completion_date=expected_completion_date,
                    status='pending',
                )

                account = self.payment_service.open_escrow_account(escrow)
                if account.get('status') != 'success':
                    raise ValueError(account.get('message') or 'Escrow account creation failed')

                escrow.processor_account_id = account['account_id']
                escrow.processor_provider = account.get('provider', '')
                escrow.save(update_fields=['processor_account_id', 'processor_provider'])
        except ValueError as e:
            logger.error(f"Escrow creation failed for project {project.id}: {str(e)}")
            return {'status': 'error', 'message': str(e)}

        sync_record(escrow, 'project_escrows', escrow_crm_properties(escrow))
        logger.info(f"Escrow {escrow.id} created for project {project.id} with value {total_project_value}")
        return {'status': 'success', 'escrow': escrow}

    def fund_escrow(self, *, escrow, amount, payment_method='ACH', **kwargs):
        """Deposit client funds into escrow and record the deposit."""
        amount = quantize(amount)
        if amount <= 0:
            return {'status': 'error', 'message': 'Deposit amount must be greater than zero'}

        with transaction.atomic():
            escrow = ProjectEscrow.objects.select_for_update().get(pk=escrow.pk)
            if escrow.status == 'closed':
                return {'status': 'error', 'message': 'Escrow is closed'}

            charge = self.payment_service.collect_deposit(
                escrow=escrow,
                amount=amount,
                payment_method=payment_method,
                **kwargs,
            )
            if charge.get('status') != 'success':
                return {
                    'status': 'error',
                    'message': charge.get('message', 'Deposit failed'),
                    'client_secret': charge.get('client_secret'),
                }

            escrow.escrow_balance += amount
            escrow.total_deposited += amount
            if not escrow.is_locked:
                escrow.status = escrow.settled_status()
            escrow.save(update_fields=['escrow_balance', 'total_deposited', 'status', 'updated_at'])

            deposit = EscrowPayment.objects.create(
                escrow=escrow,
                recipient=escrow.client,
                amount=amount,
                payment_type='DEPOSIT',
                payment_method=payment_method,
                provider=charge.get('provider', ''),
                transaction_id=charge['transaction_id'],
                payment_status='COMPLETED',
            )

        sync_record(escrow, 'project_escrows', escrow_crm_properties(escrow))
        logger.info(f"Escrow {escrow.id} funded with {amount} via {payment_method}, balance {escrow.escrow_balance}")
        return {'status': 'success', 'escrow': escrow, 'payment': deposit}

    def process_change_order(self, *, escrow, change_order_number, description, amount_change,
                             approved_by, schedule_impact=0, reason=''):
        """
        Apply an approved change order to the project value and schedule.

        Pending milestones are rescaled by the ratio of new to old value;
        verified and paid milestones keep their amounts.
        """
        amount_change = quantize(amount_change)

        with transaction.atomic():
            escrow = ProjectEscrow.objects.select_for_update().get(pk=escrow.pk)
            if escrow.status == 'closed':
                return {'status': 'error', 'message': 'Escrow is closed'}
            if escrow.change_orders.filter(change_order_number=change_order_number).exists():
                return {'status': 'error', 'message': f'Change order {change_order_number} has already been processed'}

            previous_value = escrow.total_project_value
            new_value = previous_value + amount_change
            if new_value <= 0:
                return {'status': 'error', 'message': 'Change order would make the project value zero or negative'}
            # Held retention is already owed to the contractor.
            if new_value < escrow.total_paid + escrow.retention_held:
                return {
                    'status': 'error',
                    'message': 'Change order would reduce the project value below the amount already paid or retained',
                }

            ratio = new_value / previous_value
            milestones = list(escrow.milestones.select_for_update())
            rescaled = {}
            milestone_total = Decimal('0')
            for milestone in milestones:
                if milestone.status == 'pending':
                    rescaled[milestone.pk] = quantize(milestone.payment_amount * ratio)
                    milestone_total += rescaled[milestone.pk]
                else:
                    milestone_total += milestone.payment_amount
            if milestone_total > new_value:
                return {
                    'status': 'error',
                    'message': f'Milestone total would exceed the new project value ({milestone_total} > {new_value})',
                }

            for milestone in milestones:
                if milestone.pk in rescaled:
                    milestone.payment_amount = rescaled[milestone.pk]
                    milestone.save(update_fields=['payment_amount'])

            escrow.total_project_value = new_value
            escrow.retention_amount = quantize(new_value * escrow.retention_percentage / 100)
            if escrow.expected_completion_date and schedule_impact:
                escrow.expected_completion_date += datetime.timedelta(days=schedule_impact)
            if not escrow.is_locked and escrow.status != 'completed':
                escrow.status = escrow.settled_status()
            escrow.save(update_fields=[
                'total_project_value', 'retention_amount', 'expected_completion_date', 'status', 'updated_at',
            ])

            change_order = ChangeOrder.objects.create(
                escrow=escrow,
                change_order_number=change_order_number,
                description=description,
                amount_change=amount_change,
                schedule_impact=schedule_impact,
                reason=reason,
                approved_by=approved_by,
                previous_project_value=previous_value,
                new_project_value=new_value,
            )

        sync_record(escrow, 'project_escrows', escrow_crm_properties(escrow))
        HubSpotClient().create_custom_object(
            'change_orders',
            {
                'escrow_id': escrow.id,
                'change_order_number': change_order_number,
                'amount_change': amount_change,
                'schedule_impact': schedule_impact,
                'new_project_value': new_value,
            },
            record_id=change_order.pk,
        )
        logger.info(f"Change order {change_order_number} applied to escrow {escrow.id}: {previous_value} -> {new_value}")
        return {'status': 'success', 'escrow': escrow, 'change_order': change_order}

    def mark_completed(self, *, escrow):
        with transaction.atomic():
            escrow = ProjectEscrow.objects.select_for_update().get(pk=escrow.pk)
            if escrow.is_locked:
                return {'status': 'error', 'message': 'Escrow is locked due to an open dispute'}
            if escrow.status == 'completed':
                return {'status': 'error', 'message': 'Escrow is already completed'}
            if escrow.status != 'funded':
                return {'status': 'error', 'message': 'Escrow must be fully funded before the project can be completed'}

            escrow.actual_completion_date = timezone.localdate()
            escrow.status = 'completed'
            escrow.save(update_fields=['actual_completion_date', 'status', 'updated_at'])

        sync_record(escrow, 'project_escrows', escrow_crm_properties(escrow))
        return {'status': 'success', 'escrow': escrow}

    def release_retention(self, *, escrow, released_by):
        """
        Pay the retention withheld from earlier payouts to the contractor and
        close the escrow.

        Whatever balance is left after the retention payout goes back to the
        client as a ``REFUND``, so a closed escrow holds no money.
        """
        payment = None
        refund = None
        with transaction.atomic():
            escrow = ProjectEscrow.objects.select_for_update().get(pk=escrow.pk)
            if escrow.is_locked:
                return {'status': 'error', 'message': 'Escrow is locked due to an open dispute'}
            if escrow.status != 'completed':
                return {'status': 'error', 'message': 'Retention can only be released once the project is completed'}
            if (escrow.milestones.filter(status='verified').exists()
                    or escrow.task_payments.filter(status='approved').exists()):
                return {
                    'status': 'error',
                    'message': 'Verified milestones and approved tasks must be paid before the escrow is closed',
                }

            released = escrow.retention_held
            if released > 0:
                result = release_escrow_funds(
                    escrow,
                    escrow.contractor,
                    released,
                    'RETENTION_RELEASE',
                    payment_service=self.payment_service,
                )
                if result['status'] != 'success':
                    return result
                payment = result['payment']

            refunded = escrow.escrow_balance
            if refunded > 0:
                result = release_escrow_funds(
                    escrow,
                    escrow.client,
                    refunded,
                    'REFUND',
                    payment_service=self.payment_service,
                )
                if result['status'] != 'success':
                    return {'status': 'error', 'message': f"Balance refund failed: {result['message']}"}
                refund = result['payment']

            escrow.status = 'closed'
            escrow.save(update_fields=['status', 'updated_at'])

        logger.info(
            f"Retention of {released} released and {refunded} refunded on escrow {escrow.id} by {released_by.email}"
        )
        for released_payment in (payment, refund):
            if released_payment:
                notify_payment_released(released_payment)
        sync_record(escrow, 'project_escrows', escrow_crm_properties(escrow))
        return {
            'status': 'success',
            'escrow': escrow,
            'payment': payment,
            'retention_released': released,
            'refund': refund,
            'balance_refunded': refunded,
        }
