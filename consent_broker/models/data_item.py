import enum

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Text

from consent_broker.database.config import Base
from consent_broker.models.consent import utcnow


class DeliveryMode(enum.Enum):
    INLINE = "inline"      # ciphertext returned in the access response
    INDIRECT = "indirect"  # ciphertext fetched from encrypted_url afterwards


class DataItem(Base):
    __tablename__ = "data_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    owner_id = Column(Integer, ForeignKey("principals.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    item_type = Column(String(50), nullable=False)
    delivery_mode = Column(Enum(DeliveryMode), nullable=False, default=DeliveryMode.INLINE)
    encrypted_data = Column(Text)  # base64 ciphertext for inline items
    encrypted_url = Column(String(1000))  # reference for indirect items
    encrypted_key = Column(Text, nullable=False)  # item key wrapped for the owner
    iv = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
    deleted_at = Column(DateTime)  # set by delete_item, never cleared
