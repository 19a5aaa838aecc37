import logging
from decimal import Decimal

import stripe
from django.conf import settings

from .base import BasePaymentProvider

logger = logging.getLogger(__name__)


def to_cents(amount):
    return int((Decimal(str(amount)) * 100).quantize(Decimal('1')))


class StripeProvider(BasePaymentProvider):
    """
    Stripe payment provider implementation for project escrows.
    Deposits are PaymentIntents on a per-escrow customer; payouts are
    Connect transfers to the member's connected account.
    """
    name = 'stripe'

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        stripe.api_key = settings.STRIPE_SECRET_KEY
        self.currency = getattr(settings, 'STRIPE_CURRENCY', 'usd')

    def create_escrow_account(self, escrow, **kwargs):
        """
        Create the Stripe customer that escrow deposits are attached to.

        Returns:
            Dict containing the customer id as ``account_id``
        """
        client = escrow.project.client
        try:
            customer = stripe.Customer.create(
                email=client.email,
                name=client.get_full_name() or client.email,
                metadata={
                    'project_id': str(escrow.project_id),
                    'project_title': escrow.project.title,
                    'escrow': 'true',
                },
            )
            logger.info(f"Stripe escrow customer created: {customer.id} for project {escrow.project_id}")
            return {'status': 'success', 'account_id': customer.id, 'provider': self.name}

        except stripe.StripeError as e:
            logger.error(f"Stripe API error in create_escrow_account: {str(e)}")
            return {
                'status': 'error',
                'message': 'Escrow account creation failed',
                'error': str(e)
            }

    def charge(self, user, amount, **kwargs):
        """
        Create and confirm a Payment Intent for an escrow deposit.

        Args:
            user: Member making the payment
            amount: Amount to charge (Decimal)
            **kwargs: account_id (escrow customer), payment_method_id, project_title, escrow_id

        Returns:
            Dict containing payment response
        """
        try:
            params = {
                'amount': to_cents(amount),
                'currency': self.currency,
                'metadata': {
                    'member_id': str(user.id),
                    'member_email': user.email,
                    'escrow_id': str(kwargs.get('escrow_id', '')),
                    'escrow_funding': 'true',
                },
                'description': f"Escrow deposit for {kwargs.get('project_title', 'project')}",
            }
            if kwargs.get('account_id'):
                params['customer'] = kwargs['account_id']
            if kwargs.get('payment_method_id'):
                params['payment_method'] = kwargs['payment_method_id']
                params['confirm'] = True
                params['automatic_payment_methods'] = {'enabled': True, 'allow_redirects': 'never'}

            intent = stripe.PaymentIntent.create(**params)

            logger.info(f"Stripe Payment Intent created: {intent.id} for member {user.email}, amount: {amount}, status: {intent.status}")

            if intent.status != 'succeeded':
                return {
                    'status': 'error',
                    'message': 'Payment requires confirmation',
                    'payment_intent_id': intent.id,
                    'client_secret': intent.client_secret,
                }

            return {
                'status': 'success',
                'transaction_id': intent.id,
                'provider': self.name,
            }

        except stripe.StripeError as e:
            logger.error(f"Stripe API error in charge: {str(e)}")
            return {
                'status': 'error',
                'message': 'Payment initiation failed',
                'error': str(e)
            }

    def transfer_to_account(self, recipient, amount, **kwargs):
        """
        Transfer escrowed funds to a member's Stripe Connect account.
        """
        destination = getattr(recipient, 'stripe_account_id', '')
        if not destination:
            return {
                'status': 'error',
                'message': f'No Stripe payout account on file for {recipient.email}',
            }

        try:
            transfer = stripe.Transfer.create(
                amount=to_cents(amount),
                currency=self.currency,
                destination=destination,
                transfer_group=f"escrow-{kwargs.get('escrow_id', '')}",
                metadata={
                    'escrow_id': str(kwargs.get('escrow_id', '')),
                    'payment_type': kwargs.get('payment_type', ''),
                    'recipient_id': str(recipient.id),
                },
            )
            logger.info(f"Stripe transfer created: {transfer.id} to {destination}, amount: {amount}")
            return {'status': 'success', 'transfer_id': transfer.id, 'provider': self.name}

        except stripe.StripeError as e:
            logger.error(f"Stripe transfer error: {str(e)}")
            return {
                'status': 'error',
                'message': 'Transfer failed',
                'error': str(e)
            }
