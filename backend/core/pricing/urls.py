from django.urls import path

from pricing.views import (
    ChargeQuoteAPIView,
    RateAssignmentAPIView,
    RateAssignmentDetailAPIView,
    SlabTableAPIView,
)

urlpatterns = [
    path("rates/", RateAssignmentAPIView.as_view(), name="pricing-rates"),
    path(
        "rates/<int:target>/<int:channel>/",
        RateAssignmentDetailAPIView.as_view(),
        name="pricing-rates-detail",
    ),
    path("slabs/", SlabTableAPIView.as_view(), name="pricing-slabs"),
    path("quote/", ChargeQuoteAPIView.as_view(), name="pricing-quote"),
]
