from django.urls import path

from . import views

urlpatterns = [
    path("", views.EscrowListCreateView.as_view(), name="escrow-list"),
    path("<int:pk>/", views.EscrowDetailView.as_view(), name="escrow-detail"),
    path("<int:pk>/fund/", views.EscrowFundView.as_view(), name="escrow-fund"),
    path("<int:pk>/change-orders/", views.EscrowChangeOrderView.as_view(), name="escrow-change-orders"),
    path("<int:pk>/complete/", views.EscrowCompleteView.as_view(), name="escrow-complete"),
    path("<int:pk>/release-retention/", views.EscrowReleaseRetentionView.as_view(), name="escrow-release-retention"),
    path("<int:pk>/payments/", views.EscrowPaymentListView.as_view(), name="escrow-payments"),
]
