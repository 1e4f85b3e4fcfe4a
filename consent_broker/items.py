"""Provider item catalogue.

Items arrive already encrypted. Listings never include ciphertext or key
material; that only leaves through the access gate.
"""

import structlog
from sqlalchemy import select, update

from consent_broker.errors import ForbiddenError, InvalidArgumentError, NotFoundError
from consent_broker.models.consent import Consent, utcnow
from consent_broker.models.data_item import DataItem, DeliveryMode
from consent_broker.models.principal import Principal, PrincipalRole

log = structlog.get_logger(__name__)

TEXT_ITEM_TYPE = "text"


def _summary(item):
    return {
        "id": item.id,
        "item_name": item.name,
        "item_type": item.item_type,
        "delivery_mode": item.delivery_mode.value,
        "created_at": item.created_at.isoformat() if item.created_at else None,
    }


def _check_strings(**fields):
    bad = sorted(
        key for key, value in fields.items() if value is not None and not isinstance(value, str)
    )
    if bad:
        raise InvalidArgumentError(f"Fields must be strings: {', '.join(bad)}")


def _active_provider(db, provider_id):
    provider = db.get(Principal, provider_id)
    if not provider or not provider.is_active:
        raise NotFoundError("Provider not found")
    if provider.role != PrincipalRole.PROVIDER:
        raise ForbiddenError("Only providers own items")
    return provider


def add_item(db, owner_id, name, item_type, encrypted_key, iv,
             encrypted_data=None, encrypted_url=None):
    """Register an encrypted item. Text items are inline, anything else indirect."""
    owner = _active_provider(db, owner_id)
    _check_strings(
        item_name=name, item_type=item_type, encrypted_key=encrypted_key, iv=iv,
        encrypted_data=encrypted_data, encrypted_url=encrypted_url,
    )
    name = (name or "").strip()
    item_type = (item_type or "").strip()

    missing = [key for key, value in (
        ("item_name", name), ("item_type", item_type),
        ("encrypted_key", encrypted_key), ("iv", iv),
    ) if not value]
    if missing:
        raise InvalidArgumentError(f"Missing required fields: {', '.join(missing)}")

    if item_type == TEXT_ITEM_TYPE:
        if not encrypted_data:
            raise InvalidArgumentError("Text items need encrypted_data")
        mode = DeliveryMode.INLINE
    else:
        if not encrypted_url:
            raise InvalidArgumentError("File items need encrypted_url")
        mode = DeliveryMode.INDIRECT

    item = DataItem(
        owner_id=owner.id,
        name=name,
        item_type=item_type,
        delivery_mode=mode,
        encrypted_data=encrypted_data if mode == DeliveryMode.INLINE else None,
        encrypted_url=encrypted_url if mode == DeliveryMode.INDIRECT else None,
        encrypted_key=encrypted_key,
        iv=iv,
        is_active=True,
        created_at=utcnow(),
    )
    db.add(item)
    db.commit()
    log.info("item.added", item_id=item.id, owner_id=owner.id, delivery_mode=mode.value)
    return item


def _owned_item(db, owner, item_id):
    item = db.get(DataItem, item_id)
    if not item or item.deleted_at is not None:
        raise NotFoundError("Item not found")
    if item.owner_id != owner.id:
        raise ForbiddenError("Item belongs to another provider")
    return item


def edit_item(db, owner_id, item_id, name=None, item_type=None, encrypted_key=None, iv=None,
              encrypted_data=None, encrypted_url=None):
    """Replace an item's metadata or ciphertext. Omitted fields are kept.

    Changing the type between text and file switches the delivery mode, in
    which case the matching payload must be supplied.
    """
    _check_strings(
        item_name=name, item_type=item_type, encrypted_key=encrypted_key, iv=iv,
        encrypted_data=encrypted_data, encrypted_url=encrypted_url,
    )
    name = name.strip() if name else name
    item_type = item_type.strip() if item_type else item_type
    owner = _active_provider(db, owner_id)
    item = _owned_item(db, owner, item_id)
    if not item.is_active:
        raise NotFoundError("Item not found or inactive")

    new_type = item_type or item.item_type
    mode = DeliveryMode.INLINE if new_type == TEXT_ITEM_TYPE else DeliveryMode.INDIRECT
    if mode == DeliveryMode.INLINE:
        data = encrypted_data or (item.encrypted_data if item.delivery_mode == mode else None)
        if not data:
            raise InvalidArgumentError("Text items need encrypted_data")
        item.encrypted_data, item.encrypted_url = data, None
    else:
        url = encrypted_url or (item.encrypted_url if item.delivery_mode == mode else None)
        if not url:
            raise InvalidArgumentError("File items need encrypted_url")
        item.encrypted_data, item.encrypted_url = None, url

    item.name = name or item.name
    item.item_type = new_type
    item.delivery_mode = mode
    item.encrypted_key = encrypted_key or item.encrypted_key
    item.iv = iv or item.iv
    db.commit()
    log.info("item.edited", item_id=item.id, owner_id=owner.id, delivery_mode=mode.value)
    return item


def delete_item(db, owner_id, item_id, now=None):
    """Soft-delete an item and deactivate every consent on it.

    Consent statuses are left as they are and no audit entry is written.
    Deleted items stay deleted when their owner is reactivated.
    """
    owner = _active_provider(db, owner_id)
    item = _owned_item(db, owner, item_id)

    item.is_active = False
    item.deleted_at = now or utcnow()
    db.execute(
        update(Consent)
        .where(Consent.item_id == item.id, Consent.is_active.is_(True))
        .values(is_active=False, version=Consent.version + 1)
        .execution_options(synchronize_session="fetch")
    )
    db.commit()
    log.info("item.deleted", item_id=item.id, owner_id=owner.id)
    return item


def list_owner_items(db, owner_id):
    owner = _active_provider(db, owner_id)
    items = db.execute(
        select(DataItem)
        .where(DataItem.owner_id == owner.id, DataItem.is_active.is_(True))
        .order_by(DataItem.created_at.desc(), DataItem.id.desc())
    ).scalars().all()
    return [_summary(item) for item in items]


def list_provider_items(db, provider_email):
    """Items a seeker can ask for, looked up by the provider's email."""
    if not provider_email:
        raise InvalidArgumentError("Provider email is required")
    provider = db.execute(
        select(Principal).where(
            Principal.email == provider_email.strip().lower(),
            Principal.role == PrincipalRole.PROVIDER,
        )
    ).scalar_one_or_none()
    if not provider or not provider.is_active:
        raise NotFoundError("Provider not found")

    return {
        "provider_id": provider.id,
        "provider_name": provider.name,
        "items": list_owner_items(db, provider.id),
    }
