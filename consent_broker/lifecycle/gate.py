"""Item access gate: one requester access attempt, end to end.

Resolves the requester and the item, loads or creates the consent record,
asks the engine what happens next and persists the result together with its
audit entry. Denials come back as results carrying the consent status; only
lookups that fail, illegal re-requests and infrastructure trouble raise.
"""

from dataclasses import dataclass, field
from typing import Optional

import structlog

from consent_broker.errors import (
    ForbiddenError, InvalidArgumentError, InvalidTransitionError, NotFoundError
)
from consent_broker.lifecycle import engine
from consent_broker.lifecycle.engine import Outcome
from consent_broker.lifecycle.fetcher import ContentFetcher
from consent_broker.lifecycle.store import ConsentStore, state_of, translate_db_errors
from consent_broker.models.consent import ConsentStatus, utcnow
from consent_broker.models.data_item import DataItem, DeliveryMode
from consent_broker.models.principal import Principal, PrincipalRole

log = structlog.get_logger(__name__)


@dataclass
class AccessResult:
    consent_id: int
    status: ConsentStatus
    outcome: Outcome
    message: str
    item: dict
    payload: Optional[dict] = None

    @property
    def granted(self):
        return self.outcome == Outcome.GRANTED

    def to_dict(self):
        body = {
            "message": self.message,
            "consent_id": self.consent_id,
            "consent_status": self.status.value,
            **self.item,
        }
        if self.payload is not None:
            body.update(self.payload)
        return body


@dataclass
class RetrievalResult:
    consent_id: int
    status: ConsentStatus
    outcome: Outcome
    message: str
    content: Optional[bytes] = None
    content_type: Optional[str] = None
    remaining: Optional[int] = None
    item: dict = field(default_factory=dict)

    @property
    def granted(self):
        return self.outcome == Outcome.GRANTED


def _item_summary(item):
    return {
        "item_id": item.id,
        "item_name": item.name,
        "item_type": item.item_type,
        "delivery_mode": item.delivery_mode.value,
    }


class AccessGate:
    def __init__(self, db, fetcher=None, clock=utcnow):
        self.db = db
        self.store = ConsentStore(db)
        self.fetcher = fetcher or ContentFetcher()
        self.clock = clock

    def _resolve(self, requester_id, item_id):
        requester = self.db.get(Principal, requester_id)
        if not requester or not requester.is_active:
            raise NotFoundError("Seeker inactive or not found")
        if requester.role != PrincipalRole.SEEKER:
            raise ForbiddenError("Only seekers can access items")

        item = self.db.get(DataItem, item_id)
        if not item or not item.is_active:
            raise NotFoundError("Item is deleted or inactive")

        owner = self.db.get(Principal, item.owner_id)
        if not owner or not owner.is_active:
            raise NotFoundError("Item owner is inactive or not found")
        return requester, item

    def _payload(self, consent, item, decision):
        previous = decision.previous
        payload = {
            "encrypted_key_for_seeker": consent.released_key_material,
            "iv": item.iv,
            # Count before this access was consumed
            "access_count": previous.access_count,
            "valid_until": previous.valid_until.isoformat(),
        }
        if item.delivery_mode == DeliveryMode.INLINE:
            payload["encrypted_data"] = item.encrypted_data
        else:
            payload["encrypted_url"] = item.encrypted_url
        return payload

    @translate_db_errors
    def attempt_access(self, requester_id, item_id):
        """Request access on first contact, otherwise check and consume the grant."""
        requester, item = self._resolve(requester_id, item_id)
        now = self.clock()

        consent = self.store.find(item.id, requester.id)
        if consent is None:
            decision = engine.request(requester.id, now)
            consent = self.store.create(item, requester.id, decision)
            log.info(
                "consent.requested",
                consent_id=consent.id,
                item_id=item.id,
                requester_id=requester.id,
            )
            return AccessResult(
                consent.id, consent.status, decision.outcome, decision.message, _item_summary(item)
            )

        decision = engine.check_access(state_of(consent), requester.id, item.delivery_mode, now)
        self.store.persist(consent, decision)

        payload = None
        if decision.release:
            payload = self._payload(consent, item, decision)
            log.info(
                "consent.granted",
                consent_id=consent.id,
                delivery_mode=item.delivery_mode.value,
                remaining=consent.access_count,
            )
        else:
            log.info("consent.denied", consent_id=consent.id, status=consent.status.value)

        return AccessResult(
            consent.id, consent.status, decision.outcome, decision.message,
            _item_summary(item), payload=payload,
        )

    @translate_db_errors
    def retrieve(self, requester_id, item_id):
        """Fetch an indirect item's content and only then consume one access."""
        requester, item = self._resolve(requester_id, item_id)
        if item.delivery_mode != DeliveryMode.INDIRECT:
            raise InvalidArgumentError("Item is delivered inline, use the access call")

        consent = self.store.find(item.id, requester.id)
        if consent is None:
            raise NotFoundError("No consent found for this item")

        decision = engine.confirm_retrieval(state_of(consent), requester.id, self.clock())
        if decision.outcome != Outcome.GRANTED:
            self.store.persist(consent, decision)
            log.info("consent.retrieval_denied", consent_id=consent.id, status=consent.status.value)
            return RetrievalResult(
                consent.id, consent.status, decision.outcome, decision.message,
                item=_item_summary(item),
            )

        # A failed fetch raises before anything is written
        fetched = self.fetcher.fetch(item.encrypted_url)
        self.store.persist(consent, decision)
        log.info("consent.retrieved", consent_id=consent.id, remaining=consent.access_count)
        return RetrievalResult(
            consent.id, consent.status, decision.outcome, decision.message,
            content=fetched.content,
            content_type=fetched.content_type,
            remaining=consent.access_count,
            item=_item_summary(item),
        )

    @translate_db_errors
    def re_request(self, requester_id, item_id):
        requester, item = self._resolve(requester_id, item_id)

        consent = self.store.find(item.id, requester.id)
        if consent is None:
            raise InvalidTransitionError("No valid consent to re-request")

        decision = engine.re_request(state_of(consent), requester.id, self.clock())
        self.store.persist(consent, decision)
        log.info("consent.re_requested", consent_id=consent.id, previous=decision.previous.status.value)
        return AccessResult(
            consent.id, consent.status, decision.outcome, decision.message, _item_summary(item)
        )
