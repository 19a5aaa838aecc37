import logging
import uuid

from .base import BasePaymentProvider

logger = logging.getLogger(__name__)


class ManualProvider(BasePaymentProvider):
    """
    Bookkeeping provider for money that moves outside the platform
    (ACH, wire, paper check). It only issues references for the ledger.
    """
    name = 'manual'

    def _reference(self, prefix):
        return f"{prefix}_{uuid.uuid4().hex[:12]}"

    def create_escrow_account(self, escrow, **kwargs):
        account_id = self._reference('escrow')
        logger.info(f"Manual escrow account {account_id} opened for project {escrow.project_id}")
        return {'status': 'success', 'account_id': account_id, 'provider': self.name}

    def charge(self, user, amount, **kwargs):
        transaction_id = kwargs.get('reference') or self._reference('deposit')
        logger.info(f"Manual deposit {transaction_id} recorded from {user.email}, amount: {amount}")
        return {'status': 'success', 'transaction_id': transaction_id, 'provider': self.name}

    def transfer_to_account(self, recipient, amount, **kwargs):
        transfer_id = self._reference('payment')
        logger.info(f"Manual payout {transfer_id} recorded to {recipient.email}, amount: {amount}")
        return {'status': 'success', 'transfer_id': transfer_id, 'provider': self.name}
