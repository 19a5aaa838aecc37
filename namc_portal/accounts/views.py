from django.contrib.auth import login, logout
from django.db import transaction
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import ensure_csrf_cookie
from rest_framework_simplejwt import views as jwt_views, tokens
from rest_framework import views as drf_views, generics, permissions, status
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle
from drf_yasg.utils import swagger_auto_schema


from . import serializers as my_serializers


class CustomTokenObtainPairView(jwt_views.TokenObtainPairView):
    serializer_class = my_serializers.CustomTokenObtainPairSerializer


class RegistrationAPIView(generics.CreateAPIView):
    """
    Handles new member registration.

    Creates the member and returns their data along with JWT access and
    refresh tokens.
    """
    serializer_class = my_serializers.RegistrationSerializer
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    @swagger_auto_schema(
        operation_summary="Register a new member",
        responses={
            201: my_serializers.RegistrationSerializer,
            400: "Invalid input"
        }
    )
    def post(self, request, *args, **kwargs):
        return super().post(request, *args, **kwargs)

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        with transaction.atomic():
            user = serializer.save()
            refresh = tokens.RefreshToken.for_user(user)

        return Response(
            {
                'user': serializer.data,
                'refresh': str(refresh),
                'access': str(refresh.access_token)
            },
            status=status.HTTP_201_CREATED
        )


@method_decorator(ensure_csrf_cookie, name='dispatch')
class SessionLoginAPIView(drf_views.APIView):
    """
    Cookie-based login for the portal frontend.

    On success the response carries the session cookie (and a CSRF cookie for
    subsequent unsafe requests).
    """
    permission_classes = [permissions.AllowAny]
    throttle_classes = [AnonRateThrottle]

    @swagger_auto_schema(
        operation_summary="Log in and start a session",
        request_body=my_serializers.SessionLoginSerializer,
        responses={200: my_serializers.MemberProfileSerializer(), 401: "Invalid credentials"}
    )
    def post(self, request):
        serializer = my_serializers.SessionLoginSerializer(data=request.data, context={'request': request})
        serializer.is_valid(raise_exception=True)
        user = serializer.validated_data['user']
        login(request, user)
        return Response(my_serializers.MemberProfileSerializer(user).data, status=status.HTTP_200_OK)


class SessionLogoutAPIView(drf_views.APIView):
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(operation_summary="End the current session")
    def post(self, request):
        logout(request)
        return Response({'detail': "Logout successful."}, status=status.HTTP_200_OK)


class MemberProfileRetrieveUpdateAPIView(generics.RetrieveUpdateAPIView):
    """
    Allows authenticated members to retrieve and update their own profile.
    """
    serializer_class = my_serializers.MemberProfileSerializer
    permission_classes = [permissions.IsAuthenticated]

    @swagger_auto_schema(operation_summary="Retrieve member profile")
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @swagger_auto_schema(operation_summary="Partially update member profile")
    def patch(self, request, *args, **kwargs):
        return super().patch(request, *args, **kwargs)

    def get_object(self):
        return self.request.user
