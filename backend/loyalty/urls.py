from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import (
    BootstrapView,
    DigiposLookupView,
    LocationListView,
    LoyaltyProgramViewSet,
    RaffleProgramViewSet,
    RaffleWinnerViewSet,
    RedemptionViewSet,
    RewardViewSet,
    RunningProgramViewSet,
    SpecialNumberViewSet,
    TransactionViewSet,
    WhatsAppSettingsViewSet,
)

router = DefaultRouter()
router.register(r"transactions", TransactionViewSet, basename="transactions")
router.register(r"rewards", RewardViewSet, basename="rewards")
router.register(r"redemptions", RedemptionViewSet, basename="redemptions")
router.register(r"loyalty-programs", LoyaltyProgramViewSet, basename="loyalty-programs")
router.register(r"running-programs", RunningProgramViewSet, basename="running-programs")
router.register(r"raffle-programs", RaffleProgramViewSet, basename="raffle-programs")
router.register(r"raffle-winners", RaffleWinnerViewSet, basename="raffle-winners")
router.register(r"special-numbers", SpecialNumberViewSet, basename="special-numbers")
router.register(r"whatsapp-settings", WhatsAppSettingsViewSet, basename="whatsapp-settings")

urlpatterns = [
    *router.urls,
    path("bootstrap/", BootstrapView.as_view(), name="bootstrap"),
    path("digipos/<str:id_digipos>/", DigiposLookupView.as_view(), name="digipos-lookup"),
    path("locations/", LocationListView.as_view(), name="locations"),
]
