from django.conf import settings
from rest_framework.permissions import BasePermission

from .models import PaymentDispute


def is_mediator(user):
    return user.groups.filter(name=settings.MEDIATOR_GROUP_NAME).exists()


class IsMediator(BasePermission):
    """
    Allows access only to staff and users in the mediators group.
    """
    message = "Only mediators can resolve disputes."

    def has_permission(self, request, view):
        if not request.user.is_authenticated:
            return False
        return request.user.is_staff or is_mediator(request.user)


class IsDisputeParticipantOrMediator(BasePermission):
    """
    Allows access only to the dispute's submitter, respondent, a mediator or staff.
    This permission is checked against a single PaymentDispute object.
    """
    message = "Not authorised to access this dispute."

    def has_object_permission(self, request, view, obj: PaymentDispute):
        user = request.user
        if user.is_staff:
            return True
        return obj.is_participant(user) or obj.escrow.is_participant(user) or is_mediator(user)


class IsDisputeParticipant(BasePermission):
    message = "Only dispute participants can perform this action."

    def has_object_permission(self, request, view, obj: PaymentDispute):
        return obj.is_participant(request.user)
