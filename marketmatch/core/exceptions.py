from fastapi import HTTPException, status


class PreferenceNotFoundError(HTTPException):
    def __init__(self, preference_id: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"Preference {preference_id} not found")


class MatchNotFoundError(HTTPException):
    def __init__(self, match_id: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"Match {match_id} not found")


class ListingNotFoundError(HTTPException):
    def __init__(self, listing_id: str):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"Listing {listing_id} not found")


class ForbiddenError(HTTPException):
    def __init__(self, detail: str = "Not allowed to modify this resource"):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class InvalidMatchStatusError(HTTPException):
    def __init__(self, requested: str, allowed: tuple[str, ...]):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid match status '{requested}'. Valid status required: {', '.join(allowed)}",
        )


class InvalidListingStatusError(HTTPException):
    def __init__(self, requested: str, allowed: tuple[str, ...]):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid listing status '{requested}'. Expected one of: {', '.join(allowed)}",
        )


class EmptyUpdateError(HTTPException):
    def __init__(self):
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")


class UnauthorizedError(HTTPException):
    def __init__(self, detail: str = "Invalid or missing authentication"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class SellerLookupError(LookupError):
    """The seller referenced by a listing could not be resolved."""

    def __init__(self, listing_id: str, seller_id: str):
        super().__init__(f"Seller {seller_id} for listing {listing_id} not found")
        self.listing_id = listing_id
        self.seller_id = seller_id


class ExtractionError(ValueError):
    """The preference extractor returned nothing usable."""
