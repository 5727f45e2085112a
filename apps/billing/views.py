# apps/billing/views.py
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from core.permissions import IsAuthenticatedAndActive

from .costs import estimate_for
from .serializers import CostEstimateRequestSerializer, CostBreakdownSerializer


class CostEstimateView(APIView):
    """Preview the charges for a visit before registering it"""

    permission_classes = [IsAuthenticatedAndActive]

    def post(self, request):
        serializer = CostEstimateRequestSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        breakdown = estimate_for(
            doctor=data.get('doctor'),
            discount_type=data.get('discount_type'),
            discount_value=data.get('discount_value'),
            is_followup=data.get('is_followup', False),
        )
        return Response(CostBreakdownSerializer(breakdown).data)
