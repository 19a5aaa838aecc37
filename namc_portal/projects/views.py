from django.db.models import Q
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from drf_yasg.utils import swagger_auto_schema


from .models import Project
from .permissions import IsClient, IsProjectParticipantOrStaff
from .serializers import ProjectSerializer


class ListCreateProjectAPIView(generics.ListCreateAPIView):
    """
    GET: projects where the member is client or contractor (all projects for staff).
    POST: client members create a project; the requester becomes its client.
    """
    serializer_class = ProjectSerializer
    filterset_fields = ['status']

    def get_permissions(self):
        if self.request.method == 'POST':
            return [permissions.IsAuthenticated(), IsClient()]
        return [permissions.IsAuthenticated()]

    def get_queryset(self):
        user = self.request.user
        queryset = Project.objects.select_related('client', 'contractor')
        if user.is_staff:
            return queryset
        return queryset.filter(Q(client=user) | Q(contractor=user))

    @swagger_auto_schema(
        operation_summary="Create a project",
        request_body=ProjectSerializer,
        responses={201: ProjectSerializer(), 400: "Validation error"}
    )
    def post(self, request, *args, **kwargs):
        return super().post(request, *args, **kwargs)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self.perform_create(serializer)

        return Response(serializer.data, status=status.HTTP_201_CREATED)


class RetrieveUpdateProjectAPIView(generics.RetrieveUpdateAPIView):
    serializer_class = ProjectSerializer
    permission_classes = [permissions.IsAuthenticated, IsProjectParticipantOrStaff]
    queryset = Project.objects.select_related('client', 'contractor')
    lookup_field = 'id'
    http_method_names = ['get', 'patch', 'head', 'options']

    @swagger_auto_schema(
        operation_summary="Update a project (title, scope, contractor assignment)",
        request_body=ProjectSerializer,
        responses={200: ProjectSerializer(), 400: "Validation error", 403: "Forbidden"}
    )
    def patch(self, request, *args, **kwargs):
        return super().patch(request, *args, **kwargs)
