import datetime
from decimal import Decimal

import pytest
from django.urls import reverse

from escrow.models import ProjectEscrow
from escrow.services import EscrowService
from payments.models import EscrowPayment, PaymentMilestone
from payments.services import MilestoneService, TaskPaymentService
from projects.models import Project

pytestmark = pytest.mark.django_db


class TestCreateProjectEscrow:

    def test_opens_pending_escrow_with_retention_target(self, escrow):
        assert escrow.status == 'pending'
        assert escrow.retention_percentage == Decimal('10.00')
        assert escrow.retention_amount == Decimal('10000.00')
        assert escrow.escrow_balance == Decimal('0.00')
        assert escrow.processor_account_id.startswith('escrow_')

    def test_custom_retention_percentage(self, project):
        result = EscrowService().create_project_escrow(
            project=project,
            total_project_value=Decimal('80000'),
            retention_percentage=Decimal('5'),
        )
        assert result['status'] == 'success'
        assert result['escrow'].retention_amount == Decimal('4000.00')

    def test_requires_assigned_contractor(self, client_member):
        project = Project.objects.create(client=client_member, title='Unassigned')
        result = EscrowService().create_project_escrow(project=project, total_project_value=Decimal('5000'))
        assert result['status'] == 'error'
        assert 'contractor' in result['message']
        assert not ProjectEscrow.objects.exists()

    def test_one_escrow_per_project(self, escrow, project):
        result = EscrowService().create_project_escrow(project=project, total_project_value=Decimal('5000'))
        assert result['status'] == 'error'
        assert ProjectEscrow.objects.count() == 1


class TestFundEscrow:

    def test_partial_deposit_marks_escrow_active(self, escrow, fund):
        fund('40000.00')
        assert escrow.status == 'active'
        assert escrow.escrow_balance == Decimal('40000.00')
        assert escrow.total_deposited == Decimal('40000.00')

        deposit = EscrowPayment.objects.get(escrow=escrow)
        assert deposit.payment_type == 'DEPOSIT'
        assert deposit.payment_method == 'ACH'
        assert deposit.provider == 'manual'
        assert deposit.transaction_id.startswith('deposit_')
        assert deposit.recipient == escrow.client

    def test_full_deposit_marks_escrow_funded(self, escrow, fund):
        fund('40000.00')
        fund('60000.00')
        assert escrow.status == 'funded'
        assert escrow.payments.filter(payment_type='DEPOSIT').count() == 2

    def test_deposit_keeps_disputed_status(self, escrow, fund):
        fund('10000.00')
        ProjectEscrow.objects.filter(pk=escrow.pk).update(is_locked=True, status='disputed')
        escrow.refresh_from_db()

        fund('5000.00')
        assert escrow.status == 'disputed'
        assert escrow.escrow_balance == Decimal('15000.00')

    def test_closed_escrow_rejects_deposit(self, escrow):
        ProjectEscrow.objects.filter(pk=escrow.pk).update(status='closed')
        result = EscrowService().fund_escrow(escrow=escrow, amount=Decimal('100'), payment_method='WIRE')
        assert result['status'] == 'error'
        assert not EscrowPayment.objects.exists()


class TestChangeOrders:

    def test_increase_rescales_pending_milestones_and_schedule(self, escrow, client_member):
        ProjectEscrow.objects.filter(pk=escrow.pk).update(expected_completion_date=datetime.date(2026, 6, 1))
        escrow.refresh_from_db()
        milestone = MilestoneService().create_payment_milestone(
            escrow=escrow, milestone_name='Foundation', payment_percentage=Decimal('50'),
        )['milestone']

        result = EscrowService().process_change_order(
            escrow=escrow,
            change_order_number='CO-001',
            description='Add solar-ready roof framing',
            amount_change=Decimal('20000'),
            schedule_impact=14,
            approved_by=client_member,
        )

        assert result['status'] == 'success'
        escrow.refresh_from_db()
        milestone.refresh_from_db()
        assert escrow.total_project_value == Decimal('120000.00')
        assert escrow.retention_amount == Decimal('12000.00')
        assert escrow.expected_completion_date == datetime.date(2026, 6, 15)
        assert milestone.payment_amount == Decimal('60000.00')
        assert result['change_order'].previous_project_value == Decimal('100000.00')

    def test_rejects_value_below_amount_paid(self, funded_escrow, client_member):
        milestone = MilestoneService().create_payment_milestone(
            escrow=funded_escrow, milestone_name='Framing', payment_amount=Decimal('60000'),
        )['milestone']
        MilestoneService().complete_milestone(milestone=milestone, verified_by=client_member)

        result = EscrowService().process_change_order(
            escrow=funded_escrow,
            change_order_number='CO-002',
            description='Descope',
            amount_change=Decimal('-50000'),
            approved_by=client_member,
        )
        assert result['status'] == 'error'
        funded_escrow.refresh_from_db()
        assert funded_escrow.total_project_value == Decimal('100000.00')

    def test_rejects_value_below_paid_plus_held_retention(self, funded_escrow, client_member):
        task = TaskPaymentService().create_task_payment(
            escrow=funded_escrow, task_id='T-1', task_name='Whole build', payment_amount=Decimal('100000'),
        )['task']
        TaskPaymentService().verify_task_completion(task=task, quality_score=90)
        funded_escrow.refresh_from_db()
        assert funded_escrow.total_paid == Decimal('90000.00')
        assert funded_escrow.retention_held == Decimal('10000.00')

        result = EscrowService().process_change_order(
            escrow=funded_escrow,
            change_order_number='CO-004',
            description='Drop finish carpentry',
            amount_change=Decimal('-10000'),
            approved_by=client_member,
        )

        assert result['status'] == 'error'
        funded_escrow.refresh_from_db()
        assert funded_escrow.total_project_value == Decimal('100000.00')

        EscrowService().mark_completed(escrow=funded_escrow)
        EscrowService().release_retention(escrow=funded_escrow, released_by=client_member)
        funded_escrow.refresh_from_db()
        assert funded_escrow.total_paid <= funded_escrow.total_project_value

    def test_rejects_when_milestones_would_exceed_new_value(self, funded_escrow, client_member):
        first = MilestoneService().create_payment_milestone(
            escrow=funded_escrow, milestone_name='Phase 1', payment_percentage=Decimal('50'),
        )['milestone']
        second = MilestoneService().create_payment_milestone(
            escrow=funded_escrow, milestone_name='Phase 2', payment_percentage=Decimal('50'),
        )['milestone']
        MilestoneService().complete_milestone(milestone=first, verified_by=client_member)

        result = EscrowService().process_change_order(
            escrow=funded_escrow,
            change_order_number='CO-003',
            description='Remove landscaping',
            amount_change=Decimal('-20000'),
            approved_by=client_member,
        )

        assert result['status'] == 'error'
        second.refresh_from_db()
        assert second.payment_amount == Decimal('50000.00')
        assert not funded_escrow.change_orders.exists()

    def test_duplicate_change_order_number(self, escrow, client_member):
        kwargs = dict(
            escrow=escrow, change_order_number='CO-010', description='Extra', amount_change=Decimal('1000'),
            approved_by=client_member,
        )
        assert EscrowService().process_change_order(**kwargs)['status'] == 'success'
        assert EscrowService().process_change_order(**kwargs)['status'] == 'error'


class TestCompletionAndRetention:

    def test_retention_released_to_contractor_on_completion(self, funded_escrow, client_member, contractor_member, mailoutbox):
        milestone = MilestoneService().create_payment_milestone(
            escrow=funded_escrow, milestone_name='Whole job', payment_percentage=Decimal('100'),
        )['milestone']
        MilestoneService().complete_milestone(milestone=milestone, verified_by=client_member)
        funded_escrow.refresh_from_db()
        assert funded_escrow.retention_held == Decimal('10000.00')
        assert funded_escrow.escrow_balance == Decimal('10000.00')

        early = EscrowService().release_retention(escrow=funded_escrow, released_by=client_member)
        assert early['status'] == 'error'

        assert EscrowService().mark_completed(escrow=funded_escrow)['status'] == 'success'
        result = EscrowService().release_retention(escrow=funded_escrow, released_by=client_member)

        assert result['status'] == 'success'
        assert result['retention_released'] == Decimal('10000.00')
        funded_escrow.refresh_from_db()
        assert funded_escrow.status == 'closed'
        assert funded_escrow.escrow_balance == Decimal('0.00')
        assert funded_escrow.retention_held == Decimal('0.00')
        assert funded_escrow.total_paid == Decimal('100000.00')

        release = funded_escrow.payments.get(payment_type='RETENTION_RELEASE')
        assert release.recipient == contractor_member
        assert release.amount == Decimal('10000.00')
        assert mailoutbox[-1].to == [contractor_member.email]

    def test_closing_refunds_unreserved_balance(self, funded_escrow, client_member, contractor_member):
        paid = MilestoneService().create_payment_milestone(
            escrow=funded_escrow, milestone_name='Foundation', payment_amount=Decimal('50000'),
        )['milestone']
        MilestoneService().complete_milestone(milestone=paid, verified_by=client_member)
        EscrowService().mark_completed(escrow=funded_escrow)

        result = EscrowService().release_retention(escrow=funded_escrow, released_by=client_member)

        assert result['status'] == 'success'
        assert result['retention_released'] == Decimal('5000.00')
        assert result['balance_refunded'] == Decimal('50000.00')
        assert result['refund'].recipient == client_member
        assert result['refund'].payment_type == 'REFUND'
        funded_escrow.refresh_from_db()
        assert funded_escrow.status == 'closed'
        assert funded_escrow.escrow_balance == Decimal('0.00')
        assert funded_escrow.retention_held == Decimal('0.00')
        assert funded_escrow.total_paid == Decimal('50000.00')

    def test_closed_escrow_pays_nothing_more(self, funded_escrow, client_member):
        leftover = MilestoneService().create_payment_milestone(
            escrow=funded_escrow, milestone_name='Landscaping', payment_amount=Decimal('50000'),
        )['milestone']
        task = TaskPaymentService().create_task_payment(
            escrow=funded_escrow, task_id='T-900', task_name='Punch list',
            payment_amount=Decimal('1000'), approval_required=True,
        )['task']
        TaskPaymentService().verify_task_completion(task=task, quality_score=95)
        pending_task = TaskPaymentService().create_task_payment(
            escrow=funded_escrow, task_id='T-901', task_name='Final clean', payment_amount=Decimal('500'),
        )['task']
        EscrowService().mark_completed(escrow=funded_escrow)
        EscrowService().release_retention(escrow=funded_escrow, released_by=client_member)
        ledger_size = funded_escrow.payments.count()

        milestone_result = MilestoneService().complete_milestone(milestone=leftover, verified_by=client_member)
        approve_result = TaskPaymentService().approve_task_payment(task=task, approved_by=client_member)
        verify_result = TaskPaymentService().verify_task_completion(task=pending_task, quality_score=95)

        for result in (milestone_result, approve_result, verify_result):
            assert result == {'status': 'error', 'message': 'Escrow is closed'}
        assert funded_escrow.payments.count() == ledger_size
        leftover.refresh_from_db()
        assert leftover.status == 'pending'

    def test_outstanding_payouts_block_closing(self, funded_escrow, client_member):
        milestone = MilestoneService().create_payment_milestone(
            escrow=funded_escrow, milestone_name='Roof', payment_amount=Decimal('20000'),
        )['milestone']
        PaymentMilestone.objects.filter(pk=milestone.pk).update(status='verified')
        EscrowService().mark_completed(escrow=funded_escrow)

        result = EscrowService().release_retention(escrow=funded_escrow, released_by=client_member)

        assert result['status'] == 'error'
        funded_escrow.refresh_from_db()
        assert funded_escrow.status == 'completed'
        assert funded_escrow.escrow_balance == Decimal('100000.00')

    def test_completion_requires_full_funding(self, escrow, fund):
        fund('50000.00')
        result = EscrowService().mark_completed(escrow=escrow)
        assert result['status'] == 'error'

    def test_completion_blocked_while_disputed(self, funded_escrow):
        ProjectEscrow.objects.filter(pk=funded_escrow.pk).update(is_locked=True, status='disputed')
        result = EscrowService().mark_completed(escrow=funded_escrow)
        assert result['status'] == 'error'
        assert 'dispute' in result['message']


class TestEscrowAPI:

    def test_client_creates_escrow(self, api_client, client_member, project):
        api_client.force_authenticate(client_member)
        response = api_client.post(
            reverse('escrow-list'),
            {'project_id': project.id, 'total_project_value': '250000.00', 'payment_schedule': []},
            format='json',
        )
        assert response.status_code == 201
        assert response.data['status'] == 'pending'
        assert response.data['retention_amount'] == '25000.00'
        assert response.data['contractor']['email'] == 'contractor@example.com'

    def test_contractor_cannot_create_escrow(self, api_client, contractor_member, project):
        api_client.force_authenticate(contractor_member)
        response = api_client.post(
            reverse('escrow-list'),
            {'project_id': project.id, 'total_project_value': '1000.00'},
            format='json',
        )
        assert response.status_code == 403
        assert 'error' in response.data

    def test_service_error_is_a_400(self, api_client, client_member, escrow, project):
        api_client.force_authenticate(client_member)
        response = api_client.post(
            reverse('escrow-list'),
            {'project_id': project.id, 'total_project_value': '1000.00'},
            format='json',
        )
        assert response.status_code == 400
        assert response.data == {'error': 'An escrow already exists for this project'}

    def test_list_by_member(self, api_client, contractor_member, escrow):
        api_client.force_authenticate(contractor_member)
        response = api_client.get(reverse('escrow-list'), {'member_id': contractor_member.id})
        assert response.status_code == 200
        assert [row['id'] for row in response.data] == [escrow.id]

    def test_list_other_member_forbidden(self, api_client, outsider, client_member, escrow):
        api_client.force_authenticate(outsider)
        response = api_client.get(reverse('escrow-list'), {'member_id': client_member.id})
        assert response.status_code == 403

    def test_staff_lists_any_member(self, api_client, staff_member, client_member, escrow):
        api_client.force_authenticate(staff_member)
        response = api_client.get(reverse('escrow-list'), {'member_id': client_member.id})
        assert response.status_code == 200
        assert len(response.data) == 1

    def test_detail_visible_to_participants_only(self, api_client, contractor_member, outsider, escrow):
        url = reverse('escrow-detail', args=[escrow.id])
        api_client.force_authenticate(contractor_member)
        assert api_client.get(url).status_code == 200

        api_client.force_authenticate(outsider)
        assert api_client.get(url).status_code == 403

    def test_repeated_reads_are_identical(self, api_client, client_member, escrow):
        api_client.force_authenticate(client_member)
        url = reverse('escrow-detail', args=[escrow.id])
        assert api_client.get(url).data == api_client.get(url).data

    def test_fund_endpoint(self, api_client, client_member, escrow):
        api_client.force_authenticate(client_member)
        response = api_client.post(
            reverse('escrow-fund', args=[escrow.id]),
            {'amount': '100000.00', 'payment_method': 'WIRE'},
            format='json',
        )
        assert response.status_code == 200
        assert response.data['escrow']['status'] == 'funded'
        assert response.data['payment']['payment_type'] == 'DEPOSIT'

    def test_contractor_cannot_fund(self, api_client, contractor_member, escrow):
        api_client.force_authenticate(contractor_member)
        response = api_client.post(
            reverse('escrow-fund', args=[escrow.id]),
            {'amount': '100.00', 'payment_method': 'ACH'},
            format='json',
        )
        assert response.status_code == 403

    def test_stripe_funding_needs_payment_method(self, api_client, client_member, escrow):
        api_client.force_authenticate(client_member)
        response = api_client.post(
            reverse('escrow-fund', args=[escrow.id]),
            {'amount': '100.00', 'payment_method': 'STRIPE'},
            format='json',
        )
        assert response.status_code == 400
        assert 'payment_method_id' in response.data['details']

    def test_change_order_endpoint(self, api_client, client_member, escrow):
        api_client.force_authenticate(client_member)
        response = api_client.post(
            reverse('escrow-change-orders', args=[escrow.id]),
            {'change_order_number': 'CO-100', 'description': 'ADA ramp', 'amount_change': '7500.00', 'schedule_impact': 5},
            format='json',
        )
        assert response.status_code == 201
        assert response.data['escrow']['total_project_value'] == '107500.00'

        listing = api_client.get(reverse('escrow-change-orders', args=[escrow.id]))
        assert [row['change_order_number'] for row in listing.data] == ['CO-100']

    def test_ledger_endpoint(self, api_client, contractor_member, funded_escrow):
        api_client.force_authenticate(contractor_member)
        response = api_client.get(reverse('escrow-payments', args=[funded_escrow.id]))
        assert response.status_code == 200
        assert [row['payment_type'] for row in response.data] == ['DEPOSIT']

    def test_complete_and_release_endpoints(self, api_client, client_member, funded_escrow):
        api_client.force_authenticate(client_member)
        complete = api_client.post(reverse('escrow-complete', args=[funded_escrow.id]))
        assert complete.status_code == 200
        assert complete.data['status'] == 'completed'

        release = api_client.post(reverse('escrow-release-retention', args=[funded_escrow.id]))
        assert release.status_code == 200
        assert release.data['escrow']['status'] == 'closed'
        assert release.data['retention_released'] == '0.00'
        assert release.data['payment'] is None
        assert release.data['balance_refunded'] == '100000.00'
        assert release.data['refund']['payment_type'] == 'REFUND'
        assert release.data['escrow']['escrow_balance'] == '0.00'
