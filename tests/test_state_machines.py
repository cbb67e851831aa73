"""Vendor request and credit note transition tables."""
import pytest

from grn_recon.core.exceptions import ConflictError, InvariantViolation
from grn_recon.services import credit_note_state_machine as cn
from grn_recon.services import vendor_request_state_machine as vr


class TestVendorRequestStateMachine:

    @pytest.mark.parametrize(
        "current, new",
        [
            ("pending", "sent"),
            ("sent", "acknowledged"),
            ("acknowledged", "in_transit"),
            ("in_transit", "fulfilled"),
            ("sent", "fulfilled"),
            ("pending", "cancelled"),
            ("in_transit", "cancelled"),
        ],
    )
    def test_allowed(self, current, new):
        assert vr.can_transition(current, new)
        vr.validate_transition(current, new)

    @pytest.mark.parametrize(
        "current, new",
        [
            ("pending", "acknowledged"),
            ("pending", "fulfilled"),
            ("in_transit", "sent"),
            ("acknowledged", "pending"),
        ],
    )
    def test_illegal_transition_is_conflict(self, current, new):
        assert not vr.can_transition(current, new)
        with pytest.raises(ConflictError):
            vr.validate_transition(current, new)

    @pytest.mark.parametrize("terminal", ["fulfilled", "cancelled"])
    def test_terminal_states(self, terminal):
        assert vr.is_terminal(terminal)
        assert vr.get_allowed_transitions(terminal) == []
        with pytest.raises(ConflictError):
            vr.validate_transition(terminal, "cancelled")

    def test_every_status_has_a_rule(self):
        assert set(vr.VENDOR_REQUEST_TRANSITIONS) == set(vr.VendorRequestStatus.all())

    def test_entered_statuses_are_timestamped(self):
        for status in ["sent", "acknowledged", "in_transit", "fulfilled", "cancelled"]:
            assert vr.STATUS_TIMESTAMPS[status] == f"{status}_at"


class TestCreditNoteStateMachine:

    @pytest.mark.parametrize(
        "current, new",
        [
            ("draft", "issued"),
            ("issued", "accepted"),
            ("issued", "rejected"),
            ("accepted", "settled"),
            ("draft", "cancelled"),
            ("issued", "cancelled"),
        ],
    )
    def test_allowed(self, current, new):
        cn.validate_transition(current, new)

    @pytest.mark.parametrize(
        "current, new",
        [
            ("draft", "accepted"),
            ("draft", "settled"),
            ("accepted", "cancelled"),
            ("settled", "cancelled"),
            ("rejected", "issued"),
        ],
    )
    def test_illegal(self, current, new):
        with pytest.raises(ConflictError):
            cn.validate_transition(current, new)

    def test_terminal_statuses_have_no_exits(self):
        assert set(cn.TERMINAL_STATUSES) == {"rejected", "settled", "cancelled"}
        for status in cn.TERMINAL_STATUSES:
            assert cn.CREDIT_NOTE_TRANSITIONS[status] == []
        assert [s for s in cn.CreditNoteStatus.all() if not cn.CREDIT_NOTE_TRANSITIONS[s]] == cn.TERMINAL_STATUSES

    def test_only_drafts_are_editable(self):
        assert cn.can_edit("draft")
        assert not any(cn.can_edit(s) for s in cn.CreditNoteStatus.all() if s != "draft")

    def test_settlement_ordering(self):
        cn.validate_settlement_transition("accepted", "pending", "in_progress")
        cn.validate_settlement_transition("settled", "in_progress", "completed")
        cn.validate_settlement_transition("accepted", "in_progress", "failed")
        with pytest.raises(ConflictError):
            cn.validate_settlement_transition("accepted", "pending", "completed")
        with pytest.raises(ConflictError):
            cn.validate_settlement_transition("accepted", "completed", "failed")

    @pytest.mark.parametrize("status", ["draft", "issued", "rejected", "cancelled"])
    def test_settlement_frozen_outside_active_statuses(self, status):
        with pytest.raises(ConflictError):
            cn.validate_settlement_transition(status, "pending", "in_progress")

    def test_completion_requires_settled_note(self):
        with pytest.raises(InvariantViolation):
            cn.validate_settlement_transition("accepted", "in_progress", "completed")
