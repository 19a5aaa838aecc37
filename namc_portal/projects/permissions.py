from rest_framework.permissions import BasePermission, SAFE_METHODS


class IsClient(BasePermission):
    message = "Only client members can perform this action."

    def has_permission(self, request, view):
        return bool(request.user and (request.user.member_type == 'client' or request.user.is_staff))


class IsProjectParticipantOrStaff(BasePermission):
    """
    Read access for the project's client, assigned contractor, or staff.
    Writes are reserved for the client who owns the project (or staff).
    """

    def has_object_permission(self, request, view, obj):
        user = request.user
        if user.is_staff:
            return True
        if request.method in SAFE_METHODS:
            return obj.is_participant(user)
        return obj.client_id == user.id
