from marketmatch.models.user import User
from marketmatch.models.listing import Listing
from marketmatch.models.preference import BuyerPreference
from marketmatch.models.match import PreferenceMatch

__all__ = [
    "User",
    "Listing",
    "BuyerPreference",
    "PreferenceMatch",
]
