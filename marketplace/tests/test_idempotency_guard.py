from __future__ import annotations

from marketplace.app.entitlements import IdempotencyGuard
from marketplace.app.ledger.models import CreditType, Transaction


def test_guard_allows_unseen_reference(store):
    assert IdempotencyGuard(store).should_process("cs_new") is True


def test_guard_allows_pending_reference(store):
    store.create_pending_transaction(
        Transaction(user_id="user-1", credit_type=CreditType.STANDARD, amount=1, external_reference_id="cs_1")
    )

    assert IdempotencyGuard(store).should_process("cs_1") is True


def test_guard_skips_completed_reference(store):
    store.complete_transaction(reference_id="cs_1", user_id="user-1", credit_type=CreditType.STANDARD, amount=1)

    assert IdempotencyGuard(store).should_process("cs_1") is False
