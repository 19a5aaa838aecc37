from rest_framework.permissions import BasePermission, SAFE_METHODS


def _escrow_of(obj):
    return getattr(obj, 'escrow', obj)


class IsEscrowParticipantOrStaff(BasePermission):
    """
    Read access for the escrow's client, contractor, or staff.
    Mutations are reserved for the client who funds the escrow (or staff).

    Works on escrows and on anything that points at one (milestones, task payments).
    """
    message = "Not authorised to access this escrow."

    def has_object_permission(self, request, view, obj):
        user = request.user
        if user.is_staff:
            return True
        escrow = _escrow_of(obj)
        if request.method in SAFE_METHODS:
            return escrow.is_participant(user)
        return escrow.client_id == user.id


class IsEscrowClientOrStaff(BasePermission):
    message = "Only the project client can perform this action."

    def has_object_permission(self, request, view, obj):
        return request.user.is_staff or _escrow_of(obj).client_id == request.user.id
