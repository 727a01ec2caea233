"""healthchain, client access layer for the HealthPolicy insurance contract"""

__all__ = [
    "ChainContext",
    "build_context",
    "IdentifierCache",
    "RecordFetcher",
    "RecordResolver",
    "RightsAggregator",
    "PolicyService",
    "RegistryService",
    "PaymentToken",
    "RecordKind",
    "ServiceCategory",
]

__version__ = "0.1.0"

from healthchain.cache import IdentifierCache
from healthchain.context import ChainContext, build_context
from healthchain.fetcher import RecordFetcher
from healthchain.models import RecordKind, ServiceCategory
from healthchain.payment_token import PaymentToken
from healthchain.registry import RegistryService
from healthchain.resolver import RecordResolver
from healthchain.rights import RightsAggregator
from healthchain.service import PolicyService
