"""Read-only adapters for the listing catalog and the user directory."""

from decimal import Decimal
from typing import Any

from marketplace.models import Actor, GuideProfile, Listing, TouristProfile, UserRole

from .dynamodb import DynamoDBService
from .tables import GUIDES, LISTINGS, TOURISTS, USERS


class CatalogReader:
    """Supplies listing attributes as they are at booking time."""

    def __init__(self, db: DynamoDBService) -> None:
        self.db = db

    def get_listing(self, listing_id: str) -> Listing | None:
        item = self.db.get_item(LISTINGS, {"listing_id": listing_id})
        if not item:
            return None
        return Listing(
            listing_id=item["listing_id"],
            guide_id=item["guide_id"],
            title=item.get("title", ""),
            price_per_person=Decimal(str(item["price_per_person"])),
            max_group_size=int(item["max_group_size"]),
            is_active=bool(item.get("is_active", True)),
            is_deleted=bool(item.get("is_deleted", False)),
        )


class ProfileDirectory:
    """Resolves authenticated subjects to marketplace actors and profiles."""

    def __init__(self, db: DynamoDBService) -> None:
        self.db = db

    def get_actor_by_subject(self, subject: str) -> Actor | None:
        """Look up the user bound to an identity-provider subject.

        Args:
            subject: Cognito user sub from the verified token

        Returns:
            Actor or None if the subject is unknown
        """
        results = self.db.query_by_gsi(
            table=USERS,
            index_name="cognito_sub-index",
            partition_key_name="cognito_sub",
            partition_key_value=subject,
        )
        return self._item_to_actor(results[0]) if results else None

    def get_guide(self, guide_id: str) -> GuideProfile | None:
        item = self.db.get_item(GUIDES, {"guide_id": guide_id})
        if not item:
            return None
        return GuideProfile(
            guide_id=item["guide_id"],
            name=item.get("name", ""),
            email=item.get("email"),
            is_deleted=bool(item.get("is_deleted", False)),
            total_bookings=int(item.get("total_bookings", 0)),
            total_revenue=Decimal(str(item.get("total_revenue", 0))),
        )

    def get_tourist(self, tourist_id: str) -> TouristProfile | None:
        item = self.db.get_item(TOURISTS, {"tourist_id": tourist_id})
        if not item:
            return None
        return TouristProfile(
            tourist_id=item["tourist_id"],
            name=item.get("name", ""),
            email=item.get("email"),
            total_tours_booked=int(item.get("total_tours_booked", 0)),
        )

    @staticmethod
    def _item_to_actor(item: dict[str, Any]) -> Actor:
        return Actor(
            user_id=item["user_id"],
            role=UserRole(item["role"]),
            email=item.get("email"),
            tourist_id=item.get("tourist_id"),
            guide_id=item.get("guide_id"),
        )
