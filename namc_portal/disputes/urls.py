from django.urls import path

from . import views

urlpatterns = [
    path(
        '',
        views.ListCreateDisputeAPIView.as_view(),
        name='disputes-list',
    ),
    path(
        '<int:id>/',
        views.RetrieveDisputeAPIView.as_view(),
        name='disputes-detail',
    ),
    path(
        '<int:id>/mediation/',
        views.RequestMediationAPIView.as_view(),
        name='disputes-mediation',
    ),
    path(
        '<int:id>/resolve/',
        views.ResolveDisputeAPIView.as_view(),
        name='disputes-resolve',
    ),
]
