from abc import ABC, abstractmethod

class BasePaymentProvider(ABC):
    """
    Abstract base class for all payment providers.
    Defines the common interface that all payment providers must implement.

    Every method returns a result dict whose ``status`` is ``success`` or
    ``error``; error results carry a ``message``.
    """
    name = None

    def __init__(self, **kwargs):
        """Initialize the payment provider with configuration."""
        self.config = kwargs

    @abstractmethod
    def create_escrow_account(self, escrow, **kwargs):
        """
        Open the processor-side record that deposits for this escrow are tied to.

        Returns:
            Dict with ``account_id`` on success
        """
        pass

    @abstractmethod
    def charge(self, user, amount, **kwargs):
        """
        Collect a deposit into escrow from the paying member.

        Args:
            user: Member making the payment
            amount: Amount to charge (as Decimal)
            **kwargs: Additional parameters specific to the provider

        Returns:
            Dict with ``transaction_id`` on success
        """
        pass

    @abstractmethod
    def transfer_to_account(self, recipient, amount, **kwargs):
        """
        Pay out escrowed funds to a member.

        Args:
            recipient: Member receiving the funds
            amount: Amount to transfer (as Decimal)

        Returns:
            Dict with ``transfer_id`` on success
        """
        pass
