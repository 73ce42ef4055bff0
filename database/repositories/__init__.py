from database.repositories.base import BaseRepository
from database.repositories.provider_catalog import ProviderCatalog
from database.repositories.order import OrderRepository
from database.repositories.claim import ClaimRepository
from database.repositories.notification import NotificationRepository

__all__ = [
    'BaseRepository',
    'ProviderCatalog',
    'OrderRepository',
    'ClaimRepository',
    'NotificationRepository',
]
