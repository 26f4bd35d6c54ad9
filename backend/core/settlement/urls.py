from django.urls import path

from settlement.views import SettlementDetailAPIView, TransferAPIView

urlpatterns = [
    path("transfers/", TransferAPIView.as_view(), name="settlement-transfers"),
    path("<str:reference>/", SettlementDetailAPIView.as_view(), name="settlement-detail"),
]
