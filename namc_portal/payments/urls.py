from django.urls import path

from . import views

urlpatterns = [
    path('milestones/', views.MilestoneListCreateAPIView.as_view(), name='milestone-list'),
    path('milestones/<int:pk>/complete/', views.MilestoneCompleteAPIView.as_view(), name='milestone-complete'),
    path('tasks/', views.TaskPaymentListCreateAPIView.as_view(), name='task-payment-list'),
    path('tasks/<int:pk>/verify/', views.TaskVerifyAPIView.as_view(), name='task-payment-verify'),
    path('tasks/<int:pk>/approve/', views.TaskApproveAPIView.as_view(), name='task-payment-approve'),
    path('cash-flow/', views.CashFlowProjectionCreateAPIView.as_view(), name='cash-flow-projection'),
    path('cash-flow/dashboard/', views.CashFlowDashboardAPIView.as_view(), name='cash-flow-dashboard'),
    path('reports/', views.PaymentReportAPIView.as_view(), name='payment-reports'),
]
