import re
from collections import Counter
from dataclasses import dataclass
from typing import Iterable

REASONS_PREFIX = "Reasons:"
COMMENT_PREFIX = "Comment:"

REFUSAL_REASONS: dict[str, str] = {
    "price": "High price",
    "location": "Inconvenient branch location",
    "schedule": "Unsuitable class schedule",
    "competitor": "Chose another school",
    "not_interested": "Lost interest in the sport",
    "age": "Age restrictions",
    "health": "Health issues",
    "transport": "Transport difficulties",
}

_REASONS_RE = re.compile(re.escape(REASONS_PREFIX) + r"\s*([^.\n]*)")


@dataclass(frozen=True)
class RefusalStat:
    reason: str
    count: int
    percentage: int


def reason_label(code: str) -> str:
    label = REFUSAL_REASONS.get(code, code)
    # "," and "." delimit the reason list inside notes
    return re.sub(r"[,.]", " ", label).strip()


def build_refusal_notes(reasons: Iterable[str], comment: str = "", existing_notes: str | None = "") -> str:
    labels = [reason_label(code) for code in reasons if code and code.strip()]
    labels = [label for label in labels if label]

    parts: list[str] = []
    if labels:
        parts.append(f"{REASONS_PREFIX} {', '.join(labels)}.")
    if comment and comment.strip():
        parts.append(f"{COMMENT_PREFIX} {comment.strip()}")

    prefix = " ".join(parts)
    existing = (existing_notes or "").strip()
    if not prefix:
        return existing
    return f"{prefix}\n{existing}" if existing else prefix


def parse_refusal_reasons(notes: str | None) -> list[str]:
    if not notes:
        return []
    match = _REASONS_RE.search(notes)
    if match is None:
        return []
    return [item.strip() for item in match.group(1).split(",") if item.strip()]


def refusal_statistics(requests: Iterable) -> list[RefusalStat]:
    counts: Counter[str] = Counter()
    labels: dict[str, str] = {}
    for request in requests:
        for reason in parse_refusal_reasons(getattr(request, "notes", None)):
            key = reason.lower()
            labels.setdefault(key, reason)
            counts[key] += 1

    total = sum(counts.values())
    if total == 0:
        return []

    stats = [
        RefusalStat(reason=labels[key], count=count, percentage=int(count * 100 / total + 0.5))
        for key, count in counts.items()
    ]
    stats.sort(key=lambda stat: (-stat.count, stat.reason.lower()))
    return stats
