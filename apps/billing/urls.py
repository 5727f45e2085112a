from django.urls import path

from . import views

urlpatterns = [
    path('estimate/', views.CostEstimateView.as_view(), name='cost-estimate'),
]
