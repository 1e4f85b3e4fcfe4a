import uuid

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text

from consent_broker.database.config import Base
from consent_broker.models.consent import ConsentAction, ConsentStatus, utcnow


def new_history_id():
    return str(uuid.uuid4())


class ConsentHistory(Base):
    """Append-only audit entry, one per consent transition.

    The id is generated client side so an entry can be built before it is
    inserted. Rows are never updated or deleted.
    """

    __tablename__ = "consent_history"

    id = Column(String(36), primary_key=True, default=new_history_id)
    consent_id = Column(Integer, ForeignKey("consents.id"), nullable=False, index=True)
    consent_version = Column(Integer, nullable=False)  # record version this entry produced
    actor = Column(String(64), nullable=False)
    previous_status = Column(Enum(ConsentStatus), nullable=True)
    new_status = Column(Enum(ConsentStatus), nullable=False)
    action = Column(Enum(ConsentAction), nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow, index=True)
    remarks = Column(Text)
    extra = Column(Text)
