from django.urls import path

from ledger.views import AccountBalanceAPIView, AccountLedgerEntryListAPIView

urlpatterns = [
    path("entries/", AccountLedgerEntryListAPIView.as_view(), name="ledger-entries-list"),
    path("account/", AccountBalanceAPIView.as_view(), name="ledger-account"),
]
