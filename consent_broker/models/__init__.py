# Import Base from database config (shared instance)
from consent_broker.database.config import Base

# Import all models here to register them with Base
from .consent import (
    Consent, ConsentAction, ConsentStatus, REREQUESTABLE_STATUSES, UNBOUNDED_VALIDITY, utcnow
)
from .consent_history import ConsentHistory
from .data_item import DataItem, DeliveryMode
from .principal import Principal, PrincipalRole

__all__ = [
    'Base', 'Consent', 'ConsentAction', 'ConsentHistory', 'ConsentStatus', 'DataItem',
    'DeliveryMode', 'Principal', 'PrincipalRole', 'REREQUESTABLE_STATUSES',
    'UNBOUNDED_VALIDITY', 'utcnow',
]
