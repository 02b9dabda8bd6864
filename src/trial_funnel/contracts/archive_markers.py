"""
Archive markers embedded in the free-text ``notes`` of a trial request.

A marker is a bracketed, dated message followed by a short tag, e.g.
``[Request archived 05.06.2025] __AR__``. The tag carries the state; the
message is for humans and is stripped before display. The persisted notes
always keep the full marker history.
"""

import re
from dataclasses import dataclass
from datetime import date

from trial_funnel.models import RequestStatus

ARCHIVE_TAG = "__AR__"
RESTORE_TAG = "__RS__"
SUCCESS_TAG = "__SU__"

ARCHIVE_MESSAGE = "Request archived"
RESTORE_MESSAGE = "Restored from archive"
SUCCESS_MESSAGE = "Successful enrollment"

ARCHIVE_LABEL = "Archived"
RESTORE_LABEL = "Restored"
SUCCESS_LABEL = "Enrolled"

DATE_FORMAT = "%d.%m.%Y"


_DATE_RE = r"\d{1,2}\.\d{1,2}\.\d{4}"


def _message_pattern(message: str, capture_date: bool = False) -> str:
    # only "[<message> dd.mm.yyyy]" is a marker; other bracketed notes are user text
    words = [re.escape(word) for word in message.split()]
    date_part = f"({_DATE_RE})" if capture_date else _DATE_RE
    return r"\[" + r"\s+".join(words) + r"\s+" + date_part + r"\s*\]"


_ARCHIVE_MESSAGE_RE = _message_pattern(ARCHIVE_MESSAGE)
_ALL_MARKERS_RE = re.compile(
    "|".join(
        [
            _ARCHIVE_MESSAGE_RE,
            _message_pattern(RESTORE_MESSAGE),
            _message_pattern(SUCCESS_MESSAGE),
            re.escape(ARCHIVE_TAG),
            re.escape(RESTORE_TAG),
            re.escape(SUCCESS_TAG),
        ]
    )
)
_ARCHIVE_MARKERS_RE = re.compile(f"{_ARCHIVE_MESSAGE_RE}|{re.escape(ARCHIVE_TAG)}")
_ARCHIVE_DATE_RE = re.compile(_message_pattern(ARCHIVE_MESSAGE, capture_date=True))


@dataclass(frozen=True)
class DisplayTexts:
    notes: str
    status: str
    archive_status: str | None
    archive_date: str | None


def _notes_of(request) -> str:
    notes = getattr(request, "notes", None)
    return notes if isinstance(notes, str) else ""


def is_archived(request) -> bool:
    return ARCHIVE_TAG in _notes_of(request)


def is_restored(request) -> bool:
    return RESTORE_TAG in _notes_of(request) and not is_archived(request)


def is_successful(request) -> bool:
    return SUCCESS_TAG in _notes_of(request) or getattr(request, "status", None) == RequestStatus.SIGNED


def is_successful_archived(request) -> bool:
    notes = _notes_of(request)
    return SUCCESS_TAG in notes and ARCHIVE_TAG in notes


def _build_marker(message: str, tag: str, today: date | None) -> str:
    stamp = (today or date.today()).strftime(DATE_FORMAT)
    return f"[{message} {stamp}] {tag}"


def build_archive_marker(today: date | None = None) -> str:
    return _build_marker(ARCHIVE_MESSAGE, ARCHIVE_TAG, today)


def build_restore_marker(today: date | None = None) -> str:
    return _build_marker(RESTORE_MESSAGE, RESTORE_TAG, today)


def build_success_marker(today: date | None = None) -> str:
    return _build_marker(SUCCESS_MESSAGE, SUCCESS_TAG, today)


def append_marker(notes: str | None, marker: str) -> str:
    base = (notes or "").strip()
    return f"{base} {marker}" if base else marker


def _remove_until_stable(pattern: re.Pattern, text: str) -> str:
    # removing one marker can splice the remaining text into another one
    while True:
        reduced = pattern.sub("", text)
        if reduced == text:
            return text
        text = reduced


def _normalize_whitespace(text: str) -> str:
    text = re.sub(r"[ \t]{2,}", " ", text)
    text = re.sub(r"[ \t]+\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def strip_technical_markers(notes: str | None) -> str:
    if not notes:
        return ""
    return _normalize_whitespace(_remove_until_stable(_ALL_MARKERS_RE, notes))


def remove_archive_markers(notes: str | None) -> str:
    if not notes:
        return ""
    return _normalize_whitespace(_remove_until_stable(_ARCHIVE_MARKERS_RE, notes))


def archive_date(request) -> str | None:
    matches = _ARCHIVE_DATE_RE.findall(_notes_of(request))
    return matches[-1] if matches else None


def display_texts(request, today: date | None = None) -> DisplayTexts:
    status = getattr(request, "status", None)
    status_text = status.value if isinstance(status, RequestStatus) else str(status or "")

    archive_status = None
    archived_on = None
    if is_archived(request):
        archive_status = ARCHIVE_LABEL
        archived_on = archive_date(request) or (today or date.today()).strftime(DATE_FORMAT)
    elif is_restored(request):
        archive_status = RESTORE_LABEL
    elif is_successful(request):
        archive_status = SUCCESS_LABEL

    return DisplayTexts(
        notes=strip_technical_markers(_notes_of(request)),
        status=status_text,
        archive_status=archive_status,
        archive_date=archived_on,
    )
