"""Concurrent access attempts against one consent record."""

import threading
from datetime import timedelta

import pytest

from consent_broker.database.config import SessionLocal
from consent_broker.errors import ConflictError, UnavailableError
from consent_broker.lifecycle import AccessGate, GrantAdministration, engine
from consent_broker.lifecycle.audit import AuditLog
from consent_broker.lifecycle.engine import Outcome
from consent_broker.lifecycle.store import ConsentStore, state_of
from consent_broker.models import Consent, ConsentAction, ConsentStatus, DeliveryMode


@pytest.fixture
def approved_once(db, fetcher, clock, provider, seeker, inline_item):
    consent_id = AccessGate(db, fetcher=fetcher, clock=clock).attempt_access(
        seeker.id, inline_item.id
    ).consent_id
    GrantAdministration(db, clock=clock).decide(
        provider.id, consent_id, "approve",
        count=1, valid_until=clock.now + timedelta(days=1), key_material="k",
    )
    return consent_id


def test_interleaved_writers_cannot_both_spend_the_last_access(approved_once, clock, seeker):
    first, second = SessionLocal(), SessionLocal()
    try:
        store_a, store_b = ConsentStore(first), ConsentStore(second)
        consent_a = store_a.get(approved_once)
        consent_b = store_b.get(approved_once)

        decision_a = engine.check_access(state_of(consent_a), seeker.id, DeliveryMode.INLINE, clock())
        decision_b = engine.check_access(state_of(consent_b), seeker.id, DeliveryMode.INLINE, clock())
        assert decision_a.outcome == decision_b.outcome == Outcome.GRANTED

        store_a.persist(consent_a, decision_a)
        with pytest.raises(ConflictError):
            store_b.persist(consent_b, decision_b)
    finally:
        first.close()
        second.close()


def test_parallel_attempts_grant_exactly_once(db, approved_once, fetcher, clock, seeker, inline_item):
    workers = 8
    barrier = threading.Barrier(workers)
    outcomes = []
    failures = []
    lock = threading.Lock()

    def attempt():
        session = SessionLocal()
        try:
            gate = AccessGate(session, fetcher=fetcher, clock=clock)
            barrier.wait()
            try:
                result = gate.attempt_access(seeker.id, inline_item.id)
            except (ConflictError, UnavailableError) as exc:
                with lock:
                    failures.append(exc)
            else:
                with lock:
                    outcomes.append(result.outcome)
        finally:
            session.close()

    threads = [threading.Thread(target=attempt) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count(Outcome.GRANTED) == 1
    assert len(outcomes) + len(failures) == workers
    assert all(outcome == Outcome.DENIED for outcome in outcomes if outcome != Outcome.GRANTED)
    assert all(exc.retryable for exc in failures)

    consent = db.get(Consent, approved_once)
    db.refresh(consent)
    assert consent.access_count == 0
    assert consent.status == ConsentStatus.EXHAUSTED

    accesses = [e for e in AuditLog(db).entries_for(approved_once) if e.action == ConsentAction.ACCESS]
    assert len(accesses) == 1


def test_parallel_first_requests_create_one_record(db, fetcher, clock, seeker, inline_item):
    workers = 4
    barrier = threading.Barrier(workers)
    errors = []
    lock = threading.Lock()

    def attempt():
        session = SessionLocal()
        try:
            gate = AccessGate(session, fetcher=fetcher, clock=clock)
            barrier.wait()
            try:
                gate.attempt_access(seeker.id, inline_item.id)
            except (ConflictError, UnavailableError) as exc:
                with lock:
                    errors.append(exc)
        finally:
            session.close()

    threads = [threading.Thread(target=attempt) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    consents = db.query(Consent).filter_by(item_id=inline_item.id, requester_id=seeker.id).all()
    assert len(consents) == 1
    requests = AuditLog(db).entries_for(consents[0].id)
    assert [entry.action for entry in requests] == [ConsentAction.REQUEST]
