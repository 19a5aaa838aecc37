from decimal import Decimal
from unittest import mock

import pytest
import requests
import stripe

from disputes.services import DisputeService
from escrow.services import EscrowService
from integrations.hubspot import HubSpotClient, sync_record
from payments.providers import get_payment_provider
from payments.providers.manual import ManualProvider
from payments.providers.stripe import StripeProvider, to_cents

pytestmark = pytest.mark.django_db


def hubspot_response(object_id):
    response = mock.Mock()
    response.json.return_value = {'id': object_id}
    response.raise_for_status.return_value = None
    return response


class TestHubSpotSync:

    @mock.patch('integrations.hubspot.requests.request')
    def test_create_marks_record_synced(self, request, escrow):
        request.return_value = hubspot_response('987')

        result = sync_record(escrow, 'project_escrows', {'total_project_value': Decimal('100.00')},
                             client=HubSpotClient(access_token='token'))

        assert result['status'] == 'success'
        method, url = request.call_args.args
        assert method == 'POST'
        assert url.endswith('/crm/v3/objects/project_escrows')
        properties = request.call_args.kwargs['json']['properties']
        assert properties['total_project_value'] == '100.00'
        assert properties['namc_record_id'] == str(escrow.pk)

        escrow.refresh_from_db()
        assert escrow.hubspot_sync_status == 'SYNCED'
        assert escrow.hubspot_object_id == '987'
        assert escrow.hubspot_last_sync is not None

    @mock.patch('integrations.hubspot.requests.request')
    def test_existing_object_is_patched(self, request, escrow):
        escrow.hubspot_object_id = '555'
        escrow.save(update_fields=['hubspot_object_id'])
        request.return_value = hubspot_response('555')

        sync_record(escrow, 'project_escrows', {'status': 'funded'}, client=HubSpotClient(access_token='token'))

        method, url = request.call_args.args
        assert method == 'PATCH'
        assert url.endswith('/crm/v3/objects/project_escrows/555')

    @mock.patch('integrations.hubspot.requests.request', side_effect=requests.exceptions.ConnectionError('down'))
    def test_connection_error_marks_failed(self, request, escrow):
        result = sync_record(escrow, 'project_escrows', {}, client=HubSpotClient(access_token='token'))

        assert result['status'] == 'error'
        escrow.refresh_from_db()
        assert escrow.hubspot_sync_status == 'FAILED'
        assert escrow.hubspot_object_id == ''

    @mock.patch('integrations.hubspot.requests.request')
    def test_skipped_without_token(self, request, escrow):
        result = sync_record(escrow, 'project_escrows', {})

        assert result['status'] == 'skipped'
        request.assert_not_called()
        escrow.refresh_from_db()
        assert escrow.hubspot_sync_status == 'PENDING'

    def test_dispute_ticket_id_is_stored(self, funded_escrow, client_member):
        crm = mock.Mock()
        crm.create_ticket.return_value = {'status': 'success', 'id': 'T-42'}

        dispute = DisputeService(crm_client=crm).create_payment_dispute(
            escrow=funded_escrow, submitted_by=client_member,
            dispute_reason='Unpaid change order', dispute_amount=Decimal('750'),
        )['dispute']

        assert dispute.crm_ticket_id == 'T-42'
        kwargs = crm.create_ticket.call_args.kwargs
        assert kwargs['pipeline'] == 'payment_disputes'
        assert kwargs['priority'] == 'HIGH'

    def test_failed_ticket_does_not_block_dispute(self, funded_escrow, client_member):
        crm = mock.Mock()
        crm.create_ticket.return_value = {'status': 'error', 'message': '502'}

        result = DisputeService(crm_client=crm).create_payment_dispute(
            escrow=funded_escrow, submitted_by=client_member,
            dispute_reason='Unpaid change order', dispute_amount=Decimal('750'),
        )

        assert result['status'] == 'success'
        assert result['dispute'].crm_ticket_id == ''


class TestProviders:

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            get_payment_provider('chapa')

    def test_registry(self):
        assert isinstance(get_payment_provider('manual'), ManualProvider)
        assert isinstance(get_payment_provider('stripe'), StripeProvider)

    def test_manual_references(self, contractor_member):
        provider = ManualProvider()

        payout = provider.transfer_to_account(contractor_member, Decimal('10'))
        deposit = provider.charge(contractor_member, Decimal('10'), reference='WIRE-2026-001')

        assert payout['status'] == 'success'
        assert payout['transfer_id'].startswith('payment_')
        assert deposit['transaction_id'] == 'WIRE-2026-001'
        assert provider.charge(contractor_member, Decimal('1'))['transaction_id'].startswith('deposit_')

    def test_to_cents(self):
        assert to_cents(Decimal('1500.10')) == 150010
        assert to_cents('0.99') == 99


class TestStripeProvider:

    @mock.patch('stripe.Transfer.create')
    def test_transfer_to_connected_account(self, create, contractor_member):
        contractor_member.stripe_account_id = 'acct_123'
        create.return_value = mock.Mock(id='tr_1')

        result = StripeProvider().transfer_to_account(contractor_member, Decimal('2500.50'), escrow_id=7)

        assert result == {'status': 'success', 'transfer_id': 'tr_1', 'provider': 'stripe'}
        kwargs = create.call_args.kwargs
        assert kwargs['amount'] == 250050
        assert kwargs['destination'] == 'acct_123'
        assert kwargs['transfer_group'] == 'escrow-7'

    @mock.patch('stripe.Transfer.create')
    def test_transfer_needs_connected_account(self, create, contractor_member):
        result = StripeProvider().transfer_to_account(contractor_member, Decimal('1'))

        assert result['status'] == 'error'
        create.assert_not_called()

    @mock.patch('stripe.Transfer.create', side_effect=stripe.StripeError('card network down'))
    def test_transfer_error(self, create, contractor_member):
        contractor_member.stripe_account_id = 'acct_123'
        result = StripeProvider().transfer_to_account(contractor_member, Decimal('1'))
        assert result['status'] == 'error'
        assert result['message'] == 'Transfer failed'

    @mock.patch('stripe.PaymentIntent.create')
    def test_charge_confirms_with_payment_method(self, create, client_member):
        create.return_value = mock.Mock(id='pi_1', status='succeeded')

        result = StripeProvider().charge(
            client_member, Decimal('100'), account_id='cus_1', payment_method_id='pm_card', escrow_id=3,
        )

        assert result['transaction_id'] == 'pi_1'
        kwargs = create.call_args.kwargs
        assert kwargs['amount'] == 10000
        assert kwargs['customer'] == 'cus_1'
        assert kwargs['confirm'] is True

    @mock.patch('stripe.PaymentIntent.create')
    def test_charge_requiring_action(self, create, client_member):
        create.return_value = mock.Mock(id='pi_2', status='requires_action', client_secret='secret_2')

        result = StripeProvider().charge(client_member, Decimal('100'), payment_method_id='pm_card')

        assert result['status'] == 'error'
        assert result['client_secret'] == 'secret_2'

    @mock.patch('stripe.Customer.create')
    def test_escrow_account_is_a_customer(self, create, escrow):
        create.return_value = mock.Mock(id='cus_9')

        result = StripeProvider().create_escrow_account(escrow)

        assert result['account_id'] == 'cus_9'
        assert create.call_args.kwargs['email'] == 'client@example.com'


class TestStripeDeposits:

    @mock.patch('stripe.PaymentIntent.create')
    def test_manual_escrow_reference_is_not_sent_as_customer(self, create, escrow):
        create.return_value = mock.Mock(id='pi_5', status='succeeded')
        assert escrow.processor_provider == 'manual'

        result = EscrowService().fund_escrow(
            escrow=escrow, amount=Decimal('2500'), payment_method='STRIPE', payment_method_id='pm_card_visa',
        )

        assert result['status'] == 'success'
        assert 'customer' not in create.call_args.kwargs
        assert result['payment'].transaction_id == 'pi_5'
        assert result['payment'].provider == 'stripe'

    @mock.patch('stripe.PaymentIntent.create')
    @mock.patch('stripe.Customer.create')
    def test_stripe_escrow_customer_is_charged(self, customer_create, intent_create, settings, project):
        settings.PAYOUT_PROVIDER = 'stripe'
        customer_create.return_value = mock.Mock(id='cus_77')
        intent_create.return_value = mock.Mock(id='pi_6', status='succeeded')

        escrow = EscrowService().create_project_escrow(
            project=project, total_project_value=Decimal('40000'),
        )['escrow']
        result = EscrowService().fund_escrow(
            escrow=escrow, amount=Decimal('40000'), payment_method='STRIPE', payment_method_id='pm_card_visa',
        )

        assert escrow.processor_provider == 'stripe'
        assert result['status'] == 'success'
        assert intent_create.call_args.kwargs['customer'] == 'cus_77'
