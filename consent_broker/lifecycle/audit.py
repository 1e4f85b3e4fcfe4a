"""Audit log of consent transitions.

Entries are only ever inserted. Reading a consent's entries ordered by
(timestamp, consent_version) replays its status trajectory from the first
request onwards.
"""

from sqlalchemy import select
from sqlalchemy.orm import aliased

from consent_broker.models.consent import Consent
from consent_broker.models.consent_history import ConsentHistory, new_history_id
from consent_broker.models.data_item import DataItem
from consent_broker.models.principal import Principal


def _iso(value):
    return value.isoformat() if value else None


def _status(value):
    return value.value if value is not None else None


class AuditLog:
    def __init__(self, db):
        self.db = db

    def append(self, consent_id, planned, consent_version):
        """Stage one entry in the caller's transaction. The caller commits."""
        entry = ConsentHistory(
            id=new_history_id(),
            consent_id=consent_id,
            consent_version=consent_version,
            actor=planned.actor,
            previous_status=planned.previous_status,
            new_status=planned.new_status,
            action=planned.action,
            timestamp=planned.timestamp,
            remarks=planned.remarks,
            extra=planned.extra,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def entries_for(self, consent_id):
        return self.db.execute(
            select(ConsentHistory)
            .where(ConsentHistory.consent_id == consent_id)
            .order_by(ConsentHistory.timestamp, ConsentHistory.consent_version)
        ).scalars().all()

    def _projection(self, role_column, principal_id, counterpart_column):
        counterpart = aliased(Principal)
        rows = self.db.execute(
            select(ConsentHistory, Consent, DataItem, counterpart)
            .join(Consent, Consent.id == ConsentHistory.consent_id)
            .join(DataItem, DataItem.id == Consent.item_id)
            .outerjoin(counterpart, counterpart.id == counterpart_column)
            .where(role_column == principal_id)
            .order_by(ConsentHistory.timestamp.desc(), ConsentHistory.consent_version.desc())
        ).all()
        return rows

    def history_for_requester(self, requester_id):
        """Every transition on the requester's consents, newest first."""
        result = []
        for entry, consent, item, provider in self._projection(
            Consent.requester_id, requester_id, Consent.owner_id
        ):
            result.append({
                "history_id": entry.id,
                "consent_id": consent.id,
                "item_id": item.id,
                "item_name": item.name,
                "item_type": item.item_type,
                "provider_name": provider.name if provider else "Unknown Provider",
                "provider_email": provider.email if provider else None,
                "action": entry.action.value,
                "previous_status": _status(entry.previous_status),
                "status": entry.new_status.value,
                "timestamp": _iso(entry.timestamp),
                "remarks": entry.remarks,
                "additional_info": entry.extra,
            })
        return result

    def history_for_owner(self, owner_id):
        """Every transition on consents for the owner's items, newest first."""
        result = []
        for entry, consent, item, seeker in self._projection(
            Consent.owner_id, owner_id, Consent.requester_id
        ):
            result.append({
                "history_id": entry.id,
                "consent_id": consent.id,
                "item_id": item.id,
                "item_name": item.name,
                "item_type": item.item_type,
                "seeker_name": seeker.name if seeker else "Unknown Seeker",
                "seeker_email": seeker.email if seeker else None,
                "action": entry.action.value,
                "previous_status": _status(entry.previous_status),
                "status": entry.new_status.value,
                "timestamp": _iso(entry.timestamp),
                "remarks": entry.remarks,
                "additional_info": entry.extra,
            })
        return result
