from django.contrib import admin
from django.urls import path, include
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

urlpatterns = [
    path('admin/', admin.site.urls),

    # Auth
    path('api/auth/token/', TokenObtainPairView.as_view(), name='token-obtain-pair'),
    path('api/auth/token/refresh/', TokenRefreshView.as_view(), name='token-refresh'),

    # API endpoints
    path('api/', include('apps.patients.urls')),
    path('api/', include('apps.visits.urls')),
    path('api/', include('apps.payments.urls')),

    path('api/billing/', include('apps.billing.urls')),
    path('api/ledger/', include('apps.ledger.urls')),
]
