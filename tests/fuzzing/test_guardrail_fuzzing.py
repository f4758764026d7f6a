"""
Hypothesis-based fuzzing of the pure guardrails.

Properties:
- normalize_purpose is total: any input yields a canonical purpose.
- Idempotency keys ignore sub-minute time and quantity formatting.
- The regression guard never lets a ratcheted field move backwards.
- Part transitions out of installed are always rejected.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

try:
    from hypothesis import given, settings
    from hypothesis import strategies as st

    HYPOTHESIS_AVAILABLE = True
except ImportError:
    HYPOTHESIS_AVAILABLE = False

    def given(*args, **kwargs):
        def decorator(f):
            return pytest.mark.skip(reason="hypothesis not installed")(f)
        return decorator

    def settings(*args, **kwargs):
        def decorator(f):
            return f
        return decorator

    class st:
        @staticmethod
        def text(*args, **kwargs):
            return None

        @staticmethod
        def integers(*args, **kwargs):
            return None

        @staticmethod
        def sampled_from(*args, **kwargs):
            return None

        @staticmethod
        def one_of(*args, **kwargs):
            return None

        @staticmethod
        def none():
            return None

        @staticmethod
        def booleans():
            return None

        @staticmethod
        def floats(*args, **kwargs):
            return None

        @staticmethod
        def just(*args, **kwargs):
            return None

from logistics_kernel.domain.part_state_machine import KNOWN_PART_STATUSES, validate_transition
from logistics_kernel.domain.purpose import VALID_LOGISTICS_PURPOSES, normalize_purpose
from logistics_kernel.domain.regression import JobLogisticsPatch, guard_job_write
from logistics_kernel.utils.idempotency import build_movement_idempotency_key

pytestmark = pytest.mark.skipif(not HYPOTHESIS_AVAILABLE, reason="hypothesis not installed")

PLACEHOLDERS = st.sampled_from([None, "", "unknown", "null", "N/A"])


@given(value=st.one_of(
    st.none(),
    st.booleans(),
    st.integers(),
    st.floats(allow_nan=True),
    st.text(max_size=60),
))
@settings(max_examples=300)
def test_purpose_normaliser_is_total(value):
    assert normalize_purpose(value) in VALID_LOGISTICS_PURPOSES


@given(
    seconds=st.integers(min_value=0, max_value=59),
    minute=st.integers(min_value=0, max_value=59),
    quantity=st.integers(min_value=1, max_value=10_000),
    zeros=st.integers(min_value=0, max_value=4),
)
def test_idempotency_key_stable_within_the_minute(seconds, minute, quantity, zeros):
    base = datetime(2024, 3, 1, 9, minute, tzinfo=timezone.utc)
    padded = Decimal(quantity).quantize(Decimal(1).scaleb(-zeros)) if zeros else Decimal(quantity)
    fields = {"source": "transfer", "price_list_item_id": "pli-1", "to_location_id": "loc-1"}

    first = build_movement_idempotency_key({**fields, "quantity": quantity, "occurred_at": base}, "SMV", 32)
    retry = build_movement_idempotency_key(
        {**fields, "quantity": padded, "occurred_at": base + timedelta(seconds=seconds)}, "SMV", 32
    )
    later = build_movement_idempotency_key(
        {**fields, "quantity": quantity, "occurred_at": base + timedelta(minutes=1)}, "SMV", 32
    )
    assert first == retry
    assert first != later


@given(
    new_flag=st.one_of(st.booleans(), PLACEHOLDERS),
    new_purpose=st.one_of(PLACEHOLDERS, st.text(max_size=30)),
    new_status=st.one_of(PLACEHOLDERS, st.sampled_from(["draft", "not_started", "pending", "skipped", "completed"])),
    new_project_number=st.one_of(PLACEHOLDERS, st.text(max_size=10)),
)
def test_guard_never_regresses(new_flag, new_purpose, new_status, new_project_number):
    previous = {
        "id": "job-1",
        "is_logistics_job": True,
        "logistics_purpose": "sample_pickup",
        "stock_transfer_status": "completed",
        "logistics_outcome": "none",
        "project_number": "5001",
    }
    patch = JobLogisticsPatch(
        is_logistics_job=new_flag,
        logistics_purpose=new_purpose,
        stock_transfer_status=new_status,
        project_number=new_project_number,
    )
    written = guard_job_write(previous, patch).patch.to_mapping()
    after = {**previous, **written}

    assert after["is_logistics_job"] is True
    assert after["logistics_purpose"] in VALID_LOGISTICS_PURPOSES
    assert after["stock_transfer_status"] == "completed"
    assert after["project_number"]


@given(target=st.sampled_from(sorted(KNOWN_PART_STATUSES - {"installed"})))
def test_installed_is_terminal(target):
    assert validate_transition("installed", target).valid is False
