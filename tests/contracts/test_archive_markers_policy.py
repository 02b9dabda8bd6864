import unittest
from datetime import date

from trial_funnel.contracts.archive_markers import (
    ARCHIVE_TAG,
    RESTORE_TAG,
    SUCCESS_TAG,
    append_marker,
    archive_date,
    build_archive_marker,
    build_restore_marker,
    build_success_marker,
    display_texts,
    is_archived,
    is_restored,
    is_successful,
    is_successful_archived,
    remove_archive_markers,
    strip_technical_markers,
)
from trial_funnel.models import RequestStatus, TrialRequest

JUNE_5 = date(2025, 6, 5)

SAMPLE_NOTES = [
    "",
    "price too high",
    "Reasons: High price, Health issues.\nComment: will call back in autumn",
    "  leading and trailing spaces  ",
    "[archived copy of the form] kept by the parent",
    "line one\n\n\n\nline two",
    "mentions __init__ and AR but no tags",
]


def _request(notes: str = "", status: RequestStatus = RequestStatus.REFUSED) -> TrialRequest:
    return TrialRequest(id=1, status=status, notes=notes)


def _squash(text: str) -> str:
    return " ".join(text.split())


class MarkerPredicateTests(unittest.TestCase):
    def test_archived_iff_archive_tag_present(self):
        for notes in SAMPLE_NOTES + [f"x {ARCHIVE_TAG}", ARCHIVE_TAG, f"{RESTORE_TAG} {SUCCESS_TAG}"]:
            self.assertEqual(is_archived(_request(notes)), ARCHIVE_TAG in notes, notes)

    def test_predicates_default_to_false_without_notes(self):
        request = _request("", status=RequestStatus.REFUSED)
        self.assertFalse(is_archived(request))
        self.assertFalse(is_restored(request))
        self.assertFalse(is_successful(request))
        self.assertFalse(is_archived(None))
        self.assertFalse(is_restored(None))
        self.assertFalse(is_successful(None))

    def test_successful_by_tag_or_signed_status(self):
        self.assertTrue(is_successful(_request(status=RequestStatus.SIGNED)))
        self.assertTrue(is_successful(_request(f"done {SUCCESS_TAG}", status=RequestStatus.REFUSED)))
        self.assertFalse(is_successful(_request("done", status=RequestStatus.TRIAL_ASSIGNED)))

    def test_restored_requires_absent_archive_tag(self):
        self.assertTrue(is_restored(_request(f"back {RESTORE_TAG}")))
        self.assertFalse(is_restored(_request(f"back {RESTORE_TAG} again {ARCHIVE_TAG}")))

    def test_successful_archived_needs_both_tags(self):
        self.assertTrue(is_successful_archived(_request(f"{SUCCESS_TAG} {ARCHIVE_TAG}", RequestStatus.SIGNED)))
        self.assertFalse(is_successful_archived(_request(SUCCESS_TAG, RequestStatus.SIGNED)))


class MarkerTextTests(unittest.TestCase):
    def test_markers_carry_message_date_and_tag(self):
        self.assertEqual(build_archive_marker(JUNE_5), f"[Request archived 05.06.2025] {ARCHIVE_TAG}")
        self.assertEqual(build_restore_marker(JUNE_5), f"[Restored from archive 05.06.2025] {RESTORE_TAG}")
        self.assertEqual(build_success_marker(JUNE_5), f"[Successful enrollment 05.06.2025] {SUCCESS_TAG}")

    def test_append_marker_uses_single_space(self):
        marker = build_archive_marker(JUNE_5)
        self.assertEqual(append_marker("price too high", marker), f"price too high {marker}")
        self.assertEqual(append_marker("price too high  ", marker), f"price too high {marker}")
        self.assertEqual(append_marker("", marker), marker)
        self.assertEqual(append_marker(None, marker), marker)

    def test_strip_is_idempotent(self):
        marked = [
            append_marker(notes, build_archive_marker(JUNE_5)) for notes in SAMPLE_NOTES
        ] + [
            "[Request __AR__archived 01.01.2025] keep",
            f"a {build_success_marker(JUNE_5)}   b {build_archive_marker(JUNE_5)}\n\n\n c",
        ]
        for notes in SAMPLE_NOTES + marked:
            once = strip_technical_markers(notes)
            self.assertEqual(strip_technical_markers(once), once, notes)

    def test_strip_round_trip_keeps_user_text(self):
        for notes in SAMPLE_NOTES:
            for marker in (build_archive_marker(JUNE_5), build_restore_marker(JUNE_5), build_success_marker(JUNE_5)):
                stripped = strip_technical_markers(append_marker(notes, marker))
                self.assertEqual(_squash(stripped), _squash(notes))

    def test_strip_handles_empty_input(self):
        self.assertEqual(strip_technical_markers(""), "")
        self.assertEqual(strip_technical_markers(None), "")

    def test_strip_removes_marker_history(self):
        notes = (
            f"price too high {build_archive_marker(JUNE_5)} "
            f"{build_restore_marker(JUNE_5)} {build_archive_marker(date(2025, 7, 1))}"
        )
        self.assertEqual(strip_technical_markers(notes), "price too high")

    def test_bracketed_user_text_without_date_is_kept(self):
        user_note = "[Request archived by mistake, call back] mother prefers mornings"
        self.assertEqual(strip_technical_markers(user_note), user_note)
        self.assertEqual(remove_archive_markers(user_note), user_note)

        marked = append_marker(user_note, build_archive_marker(JUNE_5))
        self.assertEqual(strip_technical_markers(marked), user_note)
        self.assertEqual(remove_archive_markers(marked), user_note)
        self.assertEqual(archive_date(_request(marked)), "05.06.2025")

    def test_remove_archive_markers_keeps_success_and_user_text(self):
        notes = f"enrolled {build_success_marker(JUNE_5)} {build_archive_marker(JUNE_5)}"
        cleaned = remove_archive_markers(notes)
        self.assertNotIn(ARCHIVE_TAG, cleaned)
        self.assertNotIn("Request archived", cleaned)
        self.assertIn(SUCCESS_TAG, cleaned)
        self.assertTrue(cleaned.startswith("enrolled"))


class DisplayTextTests(unittest.TestCase):
    def test_archive_date_uses_latest_message(self):
        notes = f"x {build_archive_marker(JUNE_5)} {build_restore_marker(JUNE_5)} {build_archive_marker(date(2025, 7, 1))}"
        self.assertEqual(archive_date(_request(notes)), "01.07.2025")
        self.assertIsNone(archive_date(_request("no markers")))

    def test_display_texts_for_archived_request(self):
        texts = display_texts(_request(f"price too high {build_archive_marker(JUNE_5)}"))
        self.assertEqual(texts.notes, "price too high")
        self.assertEqual(texts.status, "REFUSED")
        self.assertEqual(texts.archive_status, "Archived")
        self.assertEqual(texts.archive_date, "05.06.2025")

    def test_display_texts_for_restored_and_signed_requests(self):
        restored = display_texts(_request(f"ok {build_restore_marker(JUNE_5)}"))
        self.assertEqual(restored.archive_status, "Restored")
        self.assertIsNone(restored.archive_date)

        signed = display_texts(_request("", status=RequestStatus.SIGNED))
        self.assertEqual(signed.archive_status, "Enrolled")

        plain = display_texts(_request("call later", status=RequestStatus.NEW))
        self.assertIsNone(plain.archive_status)
        self.assertEqual(plain.notes, "call later")

    def test_archived_without_dated_message_falls_back_to_today(self):
        texts = display_texts(_request(f"legacy {ARCHIVE_TAG}"), today=JUNE_5)
        self.assertEqual(texts.archive_date, "05.06.2025")


if __name__ == "__main__":
    unittest.main()
