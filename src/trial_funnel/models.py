from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class RequestStatus(str, Enum):
    NEW = "NEW"
    TRIAL_ASSIGNED = "TRIAL_ASSIGNED"
    REFUSED = "REFUSED"
    SIGNED = "SIGNED"


_CAMEL_FIELDS = {
    "child_name": "childName",
    "child_age": "childAge",
    "parent_name": "parentName",
    "parent_phone": "parentPhone",
    "section_id": "sectionId",
    "branch_id": "branchId",
    "desired_date": "desiredDate",
    "scheduled_date": "scheduledDate",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "notes": "notes",
    "status": "status",
}

_TIMESTAMP_FIELDS = {"desired_date", "scheduled_date", "created_at", "updated_at"}

STATUS_CHANGE_FIELDS = frozenset({"scheduled_date", "notes"})


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise ValueError(f"timestamp must be an ISO-8601 string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"invalid timestamp: {value!r}")


def as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def format_timestamp(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class TrialRequest:
    id: int
    status: RequestStatus = RequestStatus.NEW
    notes: str = ""
    scheduled_date: datetime | None = None
    desired_date: datetime | None = None
    child_name: str = ""
    child_age: int | None = None
    parent_name: str = ""
    parent_phone: str = ""
    section_id: int | None = None
    branch_id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id}
        for name, key in _CAMEL_FIELDS.items():
            value = getattr(self, name)
            if name in _TIMESTAMP_FIELDS:
                value = format_timestamp(value)
            elif name == "status":
                value = value.value
            payload[key] = value
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrialRequest":
        if not isinstance(data, dict):
            raise ValueError("trial request payload must be an object")
        raw_id = data.get("id")
        if isinstance(raw_id, bool) or not isinstance(raw_id, int):
            raise ValueError("trial request id must be an integer")

        raw_status = data.get("status") or RequestStatus.NEW.value
        try:
            status = RequestStatus(str(raw_status).upper())
        except ValueError:
            raise ValueError(f"unknown trial request status: {raw_status!r}")

        return cls(
            id=raw_id,
            status=status,
            notes=data.get("notes") or "",
            scheduled_date=parse_timestamp(data.get("scheduledDate")),
            desired_date=parse_timestamp(data.get("desiredDate")),
            child_name=data.get("childName") or "",
            child_age=data.get("childAge"),
            parent_name=data.get("parentName") or "",
            parent_phone=data.get("parentPhone") or "",
            section_id=data.get("sectionId"),
            branch_id=data.get("branchId"),
            created_at=parse_timestamp(data.get("createdAt")),
            updated_at=parse_timestamp(data.get("updatedAt")),
        )


@dataclass(frozen=True)
class RequestChange:
    """A tentative change to one cached request.

    ``status`` set means the change goes through the status endpoint, which
    also stores ``scheduled_date`` and ``notes`` and nothing else. A change
    without a status patches any attribute in ``fields`` keyed by name.
    """

    request_id: int
    status: RequestStatus | None = None
    fields: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        unknown = set(self.fields) - set(_CAMEL_FIELDS)
        if unknown or "status" in self.fields:
            raise ValueError(f"unsupported request fields: {sorted(unknown | ({'status'} & set(self.fields)))}")
        if self.status is not None:
            # stored by a single write to the status endpoint
            extra = set(self.fields) - STATUS_CHANGE_FIELDS
            if extra:
                raise ValueError(f"fields not accepted with a status change: {sorted(extra)}")

    @property
    def scheduled_date(self) -> datetime | None:
        return self.fields.get("scheduled_date")

    @property
    def notes(self) -> str | None:
        return self.fields.get("notes")

    def apply_to(self, request: TrialRequest) -> TrialRequest:
        if request.id != self.request_id:
            raise ValueError(f"change for request {self.request_id} applied to request {request.id}")
        updates = dict(self.fields)
        if self.status is not None:
            updates["status"] = self.status
        return replace(request, **updates)

    def camel_fields(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        for name, value in self.fields.items():
            payload[_CAMEL_FIELDS[name]] = format_timestamp(value) if name in _TIMESTAMP_FIELDS else value
        return payload
