import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, Integer, String, Text

from consent_broker.database.config import Base
from consent_broker.models.consent import utcnow


class PrincipalRole(enum.Enum):
    PROVIDER = "provider"
    SEEKER = "seeker"
    ADMIN = "admin"


class Principal(Base):
    """An authenticated party as resolved by the identity collaborator.

    Providers own data items, seekers request access to them. Credentials
    live elsewhere; only the stable id, role and public key are kept here.
    """

    __tablename__ = "principals"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True)
    role = Column(Enum(PrincipalRole), nullable=False)
    public_key = Column(Text)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
