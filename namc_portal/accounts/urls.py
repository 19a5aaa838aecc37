from rest_framework_simplejwt.views import TokenRefreshView
from django.urls import path


from . import views as my_views


urlpatterns = [
    path('register/', my_views.RegistrationAPIView.as_view(), name='register'),
    path('login/', my_views.SessionLoginAPIView.as_view(), name='session-login'),
    path('logout/', my_views.SessionLogoutAPIView.as_view(), name='session-logout'),
    path('token/', my_views.CustomTokenObtainPairView.as_view(), name='token-obtain-pair'),
    path('token/refresh/', TokenRefreshView.as_view(), name='token-refresh'),
    path('me/', my_views.MemberProfileRetrieveUpdateAPIView.as_view(), name='profile-retrieve-update'),
]
