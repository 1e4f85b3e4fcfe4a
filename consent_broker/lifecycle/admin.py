"""Owner-side grant administration.

Owners approve, reject or revoke consents on their own items. Approval sets
how many accesses are allowed and until when, and may attach key material
already wrapped for the requester.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import select, update

from consent_broker.errors import ForbiddenError, InvalidArgumentError, NotFoundError
from consent_broker.lifecycle import engine
from consent_broker.lifecycle.store import ConsentStore, state_of, translate_db_errors
from consent_broker.models.consent import Consent, ConsentStatus, utcnow
from consent_broker.models.data_item import DataItem
from consent_broker.models.principal import Principal, PrincipalRole

log = structlog.get_logger(__name__)


def parse_timestamp(value):
    """Parse an ISO-8601 string into naive UTC; None passes through."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError as exc:
            raise InvalidArgumentError(f"Invalid validUntil timestamp: {value}") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


@dataclass
class DecisionResult:
    consent_id: int
    status: ConsentStatus
    message: str
    access_count: int
    valid_until: datetime
    rewrap: Optional[dict] = None

    def to_dict(self):
        body = {
            "message": self.message,
            "consent_id": self.consent_id,
            "consent_status": self.status.value,
            "access_count": self.access_count,
            "valid_until": self.valid_until.isoformat(),
        }
        if self.rewrap is not None:
            body["rewrap"] = self.rewrap
        return body


class GrantAdministration:
    def __init__(self, db, clock=utcnow):
        self.db = db
        self.store = ConsentStore(db)
        self.clock = clock

    def _owner(self, owner_id):
        owner = self.db.get(Principal, owner_id)
        if not owner or not owner.is_active:
            raise NotFoundError("Provider not found")
        if owner.role != PrincipalRole.PROVIDER:
            raise ForbiddenError("Only providers can decide on consents")
        return owner

    @translate_db_errors
    def decide(self, owner_id, consent_id, decision, count=None, valid_until=None,
               key_material=None):
        owner = self._owner(owner_id)

        action = engine.OWNER_DECISIONS.get(decision)
        if action is None:
            raise InvalidArgumentError(
                f"decision must be one of {sorted(engine.OWNER_DECISIONS)}"
            )

        consent = self.store.get(consent_id)
        if not consent or not consent.is_active:
            raise NotFoundError("Consent request not found or inactive")
        if consent.owner_id != owner.id:
            raise ForbiddenError("Consent belongs to another provider")

        now = self.clock()
        if decision == "approve":
            outcome = action(
                state_of(consent), owner.id, now,
                count=count,
                valid_until=parse_timestamp(valid_until),
                key_material=key_material,
            )
        else:
            outcome = action(state_of(consent), owner.id, now)

        self.store.persist(consent, outcome)
        log.info("consent.decided", consent_id=consent.id, decision=decision, owner_id=owner.id)

        rewrap = None
        if decision == "approve" and not consent.released_key_material:
            # Owner still has to wrap the item key for the requester
            seeker = self.db.get(Principal, consent.requester_id)
            item = self.db.get(DataItem, consent.item_id)
            rewrap = {
                "seeker_public_key": seeker.public_key if seeker else None,
                "item_encrypted_key": item.encrypted_key,
                "iv": item.iv,
            }

        return DecisionResult(
            consent.id, consent.status, outcome.message,
            consent.access_count, consent.valid_until, rewrap=rewrap,
        )

    @translate_db_errors
    def list_pending(self, owner_id):
        owner = self._owner(owner_id)
        rows = self.db.execute(
            select(Consent, DataItem, Principal)
            .join(DataItem, DataItem.id == Consent.item_id)
            .join(Principal, Principal.id == Consent.requester_id)
            .where(
                Consent.owner_id == owner.id,
                Consent.status == ConsentStatus.PENDING,
                Consent.is_active.is_(True),
            )
            .order_by(Consent.created_at, Consent.id)
        ).all()
        return [
            {
                "consent_id": consent.id,
                "item_id": item.id,
                "item_name": item.name,
                "seeker_id": seeker.id,
                "seeker_name": seeker.name,
                "seeker_email": seeker.email,
                "seeker_public_key": seeker.public_key,
                "status": consent.status.value,
                "date_created": consent.created_at.isoformat(),
            }
            for consent, item, seeker in rows
        ]

    @translate_db_errors
    def history(self, owner_id):
        owner = self._owner(owner_id)
        return self.store.audit.history_for_owner(owner.id)


class ActivationReconciler:
    """Cascade a principal's (de)activation onto its items and consents.

    Safe to run repeatedly, in any order. Consents flagged inactive are
    hidden from owners and cannot be decided; their status is left untouched
    and no audit entry is written. A consent only comes back once its owner,
    its requester and its item are all live again, and deleted items never
    come back.
    """

    def __init__(self, db):
        self.db = db

    def _principal(self, principal_id, role):
        principal = self.db.get(Principal, principal_id)
        if not principal or principal.role != role:
            raise NotFoundError(f"{role.value.title()} not found")
        return principal

    def _cascade_consents(self, column, principal_id, active):
        stmt = update(Consent).where(column == principal_id, Consent.is_active != active)
        if active:
            active_principals = select(Principal.id).where(Principal.is_active.is_(True))
            live_items = select(DataItem.id).where(
                DataItem.is_active.is_(True), DataItem.deleted_at.is_(None)
            )
            stmt = stmt.where(
                Consent.owner_id.in_(active_principals),
                Consent.requester_id.in_(active_principals),
                Consent.item_id.in_(live_items),
            )
        self.db.execute(
            stmt.values(is_active=active, version=Consent.version + 1)
            .execution_options(synchronize_session="fetch")
        )

    @translate_db_errors
    def set_owner_active(self, owner_id, active):
        owner = self._principal(owner_id, PrincipalRole.PROVIDER)
        owner.is_active = active
        # The consent cascade reads principal flags from the database
        self.db.flush()
        items = update(DataItem).where(DataItem.owner_id == owner.id)
        if active:
            items = items.where(DataItem.deleted_at.is_(None))
        self.db.execute(
            items.values(is_active=active)
            .execution_options(synchronize_session="fetch")
        )
        self._cascade_consents(Consent.owner_id, owner.id, active)
        self.db.commit()
        log.info("principal.reconciled", principal_id=owner.id, role="provider", active=active)
        return owner

    @translate_db_errors
    def set_requester_active(self, requester_id, active):
        seeker = self._principal(requester_id, PrincipalRole.SEEKER)
        seeker.is_active = active
        self.db.flush()
        self._cascade_consents(Consent.requester_id, seeker.id, active)
        self.db.commit()
        log.info("principal.reconciled", principal_id=seeker.id, role="seeker", active=active)
        return seeker
