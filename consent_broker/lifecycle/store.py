"""Consent record store.

One mutable row per (item, requester) pair. Writes are conditional: a row is
only updated if its status and version are still the ones the decision was
computed from, so two concurrent callers can never both spend the same
access count. Persisting a decision updates the row and appends its audit
entry inside one transaction.
"""

from functools import wraps

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.attributes import set_committed_value

from consent_broker.errors import ConflictError, ConsentBrokerError, UnavailableError
from consent_broker.lifecycle.audit import AuditLog
from consent_broker.lifecycle.engine import ConsentState
from consent_broker.models.consent import Consent

log = structlog.get_logger(__name__)


def translate_db_errors(fn):
    """Roll back and surface persistence failures as UnavailableError."""

    @wraps(fn)
    def wrapper(self, *args, **kwargs):
        try:
            return fn(self, *args, **kwargs)
        except ConsentBrokerError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            log.error("consent.persistence_failed", operation=fn.__name__, error=str(exc))
            raise UnavailableError("Consent store is unavailable, retry the request") from exc

    return wrapper


def state_of(consent):
    return ConsentState(
        status=consent.status,
        access_count=consent.access_count,
        valid_until=consent.valid_until,
        released_key_material=consent.released_key_material,
    )


class ConsentStore:
    def __init__(self, db):
        self.db = db
        self.audit = AuditLog(db)

    def get(self, consent_id):
        return self.db.get(Consent, consent_id)

    def find(self, item_id, requester_id):
        return self.db.execute(
            select(Consent).where(
                Consent.item_id == item_id,
                Consent.requester_id == requester_id,
            )
        ).scalar_one_or_none()

    def create(self, item, requester_id, decision):
        """Insert the record for a first request together with its audit entry."""
        state = decision.state
        consent = Consent(
            item_id=item.id,
            requester_id=requester_id,
            owner_id=item.owner_id,
            status=state.status,
            access_count=state.access_count,
            valid_until=state.valid_until,
            created_at=decision.audit.timestamp,
            is_active=True,
            version=1,
        )
        self.db.add(consent)
        try:
            self.db.flush()
        except IntegrityError as exc:
            # Another request for the same pair was inserted first
            self.db.rollback()
            raise ConflictError("Consent request already being created, retry") from exc

        self.audit.append(consent.id, decision.audit, consent.version)
        self.db.commit()
        return consent

    def apply(self, consent, decision):
        """Write decision.state over consent if nobody else changed it first."""
        expected_version = consent.version
        state = decision.state
        result = self.db.execute(
            update(Consent)
            .where(
                Consent.id == consent.id,
                Consent.version == expected_version,
                Consent.status == decision.previous.status,
            )
            .values(
                status=state.status,
                access_count=state.access_count,
                valid_until=state.valid_until,
                released_key_material=state.released_key_material,
                version=expected_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.db.rollback()
            log.warning(
                "consent.write_conflict",
                consent_id=consent.id,
                expected_version=expected_version,
            )
            raise ConflictError("Consent was modified concurrently, retry the request")

        # Keep the in-session instance in step with the row without dirtying it
        for key, value in (
            ("status", state.status),
            ("access_count", state.access_count),
            ("valid_until", state.valid_until),
            ("released_key_material", state.released_key_material),
            ("version", expected_version + 1),
        ):
            set_committed_value(consent, key, value)

    def persist(self, consent, decision):
        """Apply a decision and its audit entry atomically; no-op if nothing changed."""
        if not decision.changed:
            return consent
        self.apply(consent, decision)
        self.audit.append(consent.id, decision.audit, consent.version)
        self.db.commit()
        log.info(
            "consent.transition",
            consent_id=consent.id,
            action=decision.audit.action.value,
            actor=decision.audit.actor,
            previous_status=decision.audit.previous_status.value,
            new_status=decision.audit.new_status.value,
        )
        return consent
