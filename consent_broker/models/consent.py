import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, DateTime, Enum, ForeignKey, Integer, Text, UniqueConstraint
)

from consent_broker.database.config import Base

# "Unbounded" validity until the owner sets a real bound on approval
UNBOUNDED_VALIDITY = datetime(9999, 12, 31, 23, 59, 59)


def utcnow():
    """Naive UTC timestamp; every stored datetime is naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class ConsentStatus(enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    REVOKED = "revoked"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


# Statuses from which a requester may ask again
REREQUESTABLE_STATUSES = frozenset({
    ConsentStatus.REJECTED,
    ConsentStatus.REVOKED,
    ConsentStatus.EXPIRED,
    ConsentStatus.EXHAUSTED,
})


class ConsentAction(enum.Enum):
    REQUEST = "request"
    APPROVE = "approve"
    REJECT = "reject"
    REVOKE = "revoke"
    ACCESS = "access"
    EXPIRE = "expire"


class Consent(Base):
    """Current state of one (item, requester) relationship.

    Rows are never deleted. ``version`` increases on every write and guards
    the conditional updates issued by the record store.
    """

    __tablename__ = "consents"
    __table_args__ = (
        UniqueConstraint("item_id", "requester_id", name="uq_consent_item_requester"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    item_id = Column(Integer, ForeignKey("data_items.id"), nullable=False, index=True)
    requester_id = Column(Integer, ForeignKey("principals.id"), nullable=False, index=True)
    owner_id = Column(Integer, ForeignKey("principals.id"), nullable=False, index=True)
    status = Column(Enum(ConsentStatus), nullable=False, default=ConsentStatus.PENDING)
    access_count = Column(Integer, nullable=False, default=1)
    valid_until = Column(DateTime, nullable=False, default=UNBOUNDED_VALIDITY)
    released_key_material = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)
