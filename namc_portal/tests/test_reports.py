import datetime
from decimal import Decimal

import pytest
from django.urls import reverse

from disputes.services import DisputeService
from payments.models import CashFlowProjection
from payments.reports import confidence_score, projection_accuracy, projection_trend
from payments.services import MilestoneService, TaskPaymentService

pytestmark = pytest.mark.django_db


@pytest.mark.parametrize('risks, expected', [
    (0, Decimal('0.8')),
    (3, Decimal('0.5')),
    (10, Decimal('0.1')),
])
def test_confidence_score(risks, expected):
    assert confidence_score([f'risk {n}' for n in range(risks)]) == expected


def make_projection(escrow, member, day, inflow, outflow, actual_inflow=None, actual_outflow=None):
    return CashFlowProjection.objects.create(
        escrow=escrow,
        member=member,
        projection_date=datetime.date(2026, 3, day),
        projected_inflow=Decimal(inflow),
        projected_outflow=Decimal(outflow),
        net_cash_flow=Decimal(inflow) - Decimal(outflow),
        actual_inflow=Decimal(actual_inflow) if actual_inflow else None,
        actual_outflow=Decimal(actual_outflow) if actual_outflow else None,
    )


class TestProjectionMaths:

    def test_accuracy_ignores_projections_without_actuals(self, escrow, contractor_member):
        projections = [
            make_projection(escrow, contractor_member, 1, '10000', '6000', '9000', '6000'),
            make_projection(escrow, contractor_member, 2, '5000', '1000'),
        ]
        assert projection_accuracy(projections) == {'accuracy': 0.75, 'sample_size': 1}

    def test_accuracy_without_actuals(self, escrow, contractor_member):
        projections = [make_projection(escrow, contractor_member, 1, '100', '50')]
        assert projection_accuracy(projections) == {'accuracy': 0.0, 'sample_size': 0}

    def test_trend(self, escrow, contractor_member):
        later = make_projection(escrow, contractor_member, 20, '9000', '3000')
        earlier = make_projection(escrow, contractor_member, 5, '6000', '2000')

        trend = projection_trend([later, earlier])

        assert trend == {'trend': 'improving', 'change_amount': '2000.00', 'change_percentage': 50.0}

    def test_trend_needs_two_points(self, escrow, contractor_member):
        assert projection_trend([make_projection(escrow, contractor_member, 1, '1', '1')]) == {'trend': 'insufficient_data'}


class TestCashFlowAPI:

    def test_create_projection(self, api_client, contractor_member, escrow):
        api_client.force_authenticate(contractor_member)
        response = api_client.post(reverse('cash-flow-projection'), {
            'escrow_id': escrow.id,
            'projection_date': '2026-04-01',
            'projected_inflow': '25000.00',
            'projected_outflow': '18000.00',
            'risk_factors': ['Lumber price volatility', 'Permit delay'],
        }, format='json')

        assert response.status_code == 201
        assert response.data['net_cash_flow'] == '7000.00'
        assert response.data['confidence_score'] == '0.60'
        assert response.data['member'] == contractor_member.id

    def test_outsider_cannot_project(self, api_client, outsider, escrow):
        api_client.force_authenticate(outsider)
        response = api_client.post(reverse('cash-flow-projection'), {
            'escrow_id': escrow.id,
            'projection_date': '2026-04-01',
            'projected_inflow': '1.00',
            'projected_outflow': '1.00',
        }, format='json')
        assert response.status_code == 403

    def test_dashboard(self, api_client, client_member, contractor_member, funded_escrow):
        MilestoneService().create_payment_milestone(
            escrow=funded_escrow, milestone_name='Foundation', payment_amount=Decimal('20000'),
        )
        task = TaskPaymentService().create_task_payment(
            escrow=funded_escrow, task_id='T-100', task_name='Site survey',
            payment_amount=Decimal('2000'), approval_required=True,
        )['task']
        TaskPaymentService().verify_task_completion(task=task, quality_score=90)
        task.refresh_from_db()
        task.status = 'approved'
        task.save(update_fields=['status'])
        make_projection(funded_escrow, contractor_member, 1, '100', '50')

        api_client.force_authenticate(client_member)
        response = api_client.get(reverse('cash-flow-dashboard'))

        assert response.status_code == 200
        assert response.data['total_escrow_balance'] == '100000.00'
        assert response.data['total_project_value'] == '100000.00'
        assert response.data['total_paid'] == '0.00'
        assert response.data['pending_payments'] == 1
        assert response.data['active_escrows'] == 1
        assert len(response.data['recent_projections']) == 1

    def test_dashboard_for_member_without_escrows(self, api_client, outsider):
        api_client.force_authenticate(outsider)
        response = api_client.get(reverse('cash-flow-dashboard'))
        assert response.data['total_escrow_balance'] == '0.00'
        assert response.data['active_escrows'] == 0
        assert response.data['recent_projections'] == []


class TestReportsAPI:

    def get(self, api_client, member, **params):
        api_client.force_authenticate(member)
        return api_client.get(reverse('payment-reports'), params)

    def test_summary_is_default(self, api_client, client_member, funded_escrow):
        response = self.get(api_client, client_member)

        assert response.status_code == 200
        assert response.data['type'] == 'summary'
        assert response.data['total_projects'] == 1
        assert response.data['total_value'] == '100000.00'
        assert response.data['average_project_value'] == '100000.00'
        assert response.data['active_escrows'] == 1
        assert response.data['total_disputes'] == 0

    def test_detailed_report(self, api_client, contractor_member, funded_escrow):
        MilestoneService().create_payment_milestone(
            escrow=funded_escrow, milestone_name='Roofing', payment_percentage=Decimal('25'),
        )

        response = self.get(api_client, contractor_member, type='detailed')

        row = response.data['escrows'][0]
        assert row['milestone_summary'] == {'total': 1, 'completed': 0, 'pending': 1, 'total_amount': '25000.00'}
        assert row['task_summary']['total'] == 0
        assert [p['payment_type'] for p in row['payment_history']] == ['DEPOSIT']

    def test_projections_report(self, api_client, contractor_member, escrow):
        make_projection(escrow, contractor_member, 2, '8000', '4000', '8000', '4000')
        make_projection(escrow, contractor_member, 9, '8000', '6000')

        response = self.get(api_client, contractor_member, type='projections')

        assert len(response.data['projections']) == 2
        assert response.data['accuracy'] == {'accuracy': 1.0, 'sample_size': 1}
        assert response.data['trends']['trend'] == 'declining'

    def test_disputes_report(self, api_client, client_member, mediator, funded_escrow):
        service = DisputeService()
        first = service.create_payment_dispute(
            escrow=funded_escrow, submitted_by=client_member, dispute_reason='Late work', dispute_amount=Decimal('300'),
        )['dispute']
        service.create_payment_dispute(
            escrow=funded_escrow, submitted_by=client_member, dispute_reason='Materials', dispute_amount=Decimal('200'),
        )
        service.resolve_dispute(dispute=first, resolution='Withdrawn', resolved_by=mediator)

        response = self.get(api_client, client_member, type='disputes')

        summary = response.data['summary']
        assert summary['total'] == 2
        assert summary['resolved'] == 1
        assert summary['pending'] == 1
        assert summary['total_amount'] == '500.00'
        assert summary['average_resolution_time'] >= 0

    def test_date_range_filters_escrows(self, api_client, client_member, funded_escrow):
        response = self.get(api_client, client_member, start_date='2000-01-01', end_date='2000-12-31')
        assert response.data['total_projects'] == 0

    def test_invalid_type(self, api_client, client_member):
        response = self.get(api_client, client_member, type='weekly')
        assert response.status_code == 400
        assert response.data == {'error': 'Invalid report type'}

    def test_inverted_date_range(self, api_client, client_member):
        response = self.get(api_client, client_member, start_date='2026-05-01', end_date='2026-04-01')
        assert response.status_code == 400
