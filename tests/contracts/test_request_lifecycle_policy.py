import unittest
from datetime import datetime, timezone

from trial_funnel.contracts.request_lifecycle import (
    AuxiliaryData,
    RequestStatus,
    build_transition_change,
    can_transition,
    ensure_archivable,
    is_same_column,
    requires_auxiliary,
    validate_transition,
)
from trial_funnel.errors import ValidationError
from trial_funnel.models import TrialRequest

TRIAL_AT = datetime(2025, 6, 10, 17, 30, tzinfo=timezone.utc)


class RequestLifecyclePolicyTests(unittest.TestCase):
    def test_new_and_trial_assigned_can_move_forward(self):
        for current in (RequestStatus.NEW, RequestStatus.TRIAL_ASSIGNED):
            for target in (RequestStatus.TRIAL_ASSIGNED, RequestStatus.REFUSED, RequestStatus.SIGNED):
                self.assertTrue(can_transition(current, target), f"{current} -> {target}")

    def test_terminal_statuses_do_not_move(self):
        for current in (RequestStatus.REFUSED, RequestStatus.SIGNED):
            for target in RequestStatus:
                self.assertFalse(can_transition(current, target))

    def test_nothing_moves_back_to_new(self):
        self.assertFalse(can_transition(RequestStatus.TRIAL_ASSIGNED, RequestStatus.NEW))
        with self.assertRaises(ValidationError) as ctx:
            validate_transition(RequestStatus.TRIAL_ASSIGNED, RequestStatus.NEW)
        self.assertEqual(ctx.exception.details["target_status"], "NEW")

    def test_auxiliary_targets(self):
        self.assertTrue(requires_auxiliary(RequestStatus.TRIAL_ASSIGNED))
        self.assertTrue(requires_auxiliary(RequestStatus.REFUSED))
        self.assertFalse(requires_auxiliary(RequestStatus.SIGNED))
        self.assertFalse(requires_auxiliary(RequestStatus.NEW))

    def test_same_column(self):
        self.assertTrue(is_same_column("NEW", "NEW"))
        self.assertFalse(is_same_column("NEW", "SIGNED"))


class TransitionChangeTests(unittest.TestCase):
    def test_trial_assignment_requires_date_when_captured(self):
        request = TrialRequest(id=7, status=RequestStatus.NEW)
        with self.assertRaises(ValidationError):
            build_transition_change(request, RequestStatus.TRIAL_ASSIGNED, AuxiliaryData())

    def test_trial_assignment_carries_date(self):
        request = TrialRequest(id=7, status=RequestStatus.NEW)
        change = build_transition_change(
            request, RequestStatus.TRIAL_ASSIGNED, AuxiliaryData(scheduled_date=TRIAL_AT)
        )
        self.assertEqual(change.status, RequestStatus.TRIAL_ASSIGNED)
        self.assertEqual(change.scheduled_date, TRIAL_AT)

    def test_direct_trial_assignment_reuses_existing_date(self):
        request = TrialRequest(id=7, status=RequestStatus.TRIAL_ASSIGNED, scheduled_date=TRIAL_AT)
        change = build_transition_change(request, RequestStatus.TRIAL_ASSIGNED, capture_required=False)
        self.assertEqual(change.scheduled_date, TRIAL_AT)

        undated = TrialRequest(id=8, status=RequestStatus.NEW)
        with self.assertRaises(ValidationError):
            build_transition_change(undated, RequestStatus.TRIAL_ASSIGNED, capture_required=False)

    def test_refusal_needs_reason_or_comment(self):
        request = TrialRequest(id=3, status=RequestStatus.NEW)
        with self.assertRaises(ValidationError):
            build_transition_change(request, RequestStatus.REFUSED, AuxiliaryData(comment="   "))

        commented = build_transition_change(request, RequestStatus.REFUSED, AuxiliaryData(comment="moved away"))
        self.assertEqual(commented.notes, "Comment: moved away")

    def test_refusal_prepends_reasons_to_existing_notes(self):
        request = TrialRequest(id=3, status=RequestStatus.TRIAL_ASSIGNED, notes="called twice")
        change = build_transition_change(
            request, RequestStatus.REFUSED, AuxiliaryData(reasons=("price", "health"), comment="maybe in autumn")
        )
        self.assertEqual(
            change.notes,
            "Reasons: High price, Health issues. Comment: maybe in autumn\ncalled twice",
        )

    def test_direct_refusal_without_reasons_only_changes_status(self):
        request = TrialRequest(id=3, status=RequestStatus.NEW, notes="keep me")
        change = build_transition_change(request, RequestStatus.REFUSED, capture_required=False)
        self.assertEqual(change.status, RequestStatus.REFUSED)
        self.assertEqual(change.fields, {})

    def test_signing_is_status_only(self):
        request = TrialRequest(id=4, status=RequestStatus.TRIAL_ASSIGNED)
        change = build_transition_change(request, RequestStatus.SIGNED)
        self.assertEqual(change.status, RequestStatus.SIGNED)
        self.assertEqual(change.fields, {})

    def test_disallowed_transition_is_rejected_before_building(self):
        request = TrialRequest(id=5, status=RequestStatus.SIGNED)
        with self.assertRaises(ValidationError):
            build_transition_change(request, RequestStatus.REFUSED, AuxiliaryData(comment="x"))

    def test_only_refused_or_signed_are_archivable(self):
        ensure_archivable(TrialRequest(id=1, status=RequestStatus.REFUSED))
        ensure_archivable(TrialRequest(id=2, status=RequestStatus.SIGNED))
        for status in (RequestStatus.NEW, RequestStatus.TRIAL_ASSIGNED):
            with self.assertRaises(ValidationError):
                ensure_archivable(TrialRequest(id=3, status=status))


if __name__ == "__main__":
    unittest.main()
