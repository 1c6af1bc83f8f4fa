from rest_framework import status


class LoyaltyError(Exception):
    """Business-rule violation raised by the service layer."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"

    def __init__(self, message=None):
        super().__init__(message or self.default_message)


class PartnerNotFound(LoyaltyError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Partner not found"


class RewardNotFound(LoyaltyError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Reward not found"


class LevelNotFound(LoyaltyError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Level not found"


class DigiposNotFound(LoyaltyError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Digipos ID not found in master data"


class AlreadyRegistered(LoyaltyError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Digipos ID is already registered"


class InsufficientPoints(LoyaltyError):
    default_message = "Insufficient points"


class OutOfStock(LoyaltyError):
    default_message = "Reward is out of stock"


class InvalidUpload(LoyaltyError):
    default_message = "Invalid upload"


class NoCoupons(LoyaltyError):
    default_message = "This raffle has no coupons to draw from"
