from sqlalchemy.orm import Session

from database.repositories import (
    ProviderCatalog,
    OrderRepository,
    ClaimRepository,
    NotificationRepository,
)


class MarketplaceRepository:
    """All marketplace tables behind one Session, so one unit of work spans them."""

    def __init__(self, db: Session):
        self.db = db
        self.providers = ProviderCatalog(db)
        self.orders = OrderRepository(db)
        self.claims = ClaimRepository(db)
        self.notifications = NotificationRepository(db)

    def savepoint(self):
        return self.db.begin_nested()

    def flush(self) -> None:
        self.db.flush()
