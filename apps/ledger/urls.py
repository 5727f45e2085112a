from django.urls import path, include
from rest_framework.routers import DefaultRouter

from . import views

router = DefaultRouter()
router.register(r'vouchers', views.AccountVoucherViewSet, basename='voucher')

urlpatterns = [
    path('', include(router.urls)),
]
