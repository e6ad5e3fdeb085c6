"""
Due dates of the issues waiting on the DevQueue triage boards.
"""

import logging
from datetime import date, datetime
from typing import Iterable, List, Optional

from pydantic import BaseModel

from team51.pyd_models.github_models import GitHubIssue

logger = logging.getLogger(__name__)

TRIAGE_STATUS = "🆕 Needs Triaged"
IN_PROGRESS_STATUS = "🏗 In Progress"
WAITING_FEEDBACK_STATUS = "⌛ Waiting Feedback"

NO_DUE_DATE = 9999
DUE_DATE_LABEL_PREFIX = "[DUE DATE]"
URGENT_WITHIN_DAYS = 2

DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%d %B %Y", "%B %d, %Y", "%B %d %Y", "%b %d, %Y", "%b %d %Y")


class TriageIssue(BaseModel):
    number: int
    title: str
    url: str = ""
    labels: List[str] = []
    due_in: int = NO_DUE_DATE

    @property
    def is_late(self) -> bool:
        return self.due_in <= 0

    def markdown(self, with_labels: bool = False) -> str:
        tags = "".join(f"*{label}* " for label in self.labels) if with_labels else ""
        return f"* {self.number}: {tags}[{self.title}]({self.url}) ({how_long(self.due_in)})"


def parse_due_date(value: str) -> Optional[date]:
    value = value.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def days_until(due: Optional[date], today: Optional[date] = None) -> int:
    if due is None:
        return NO_DUE_DATE
    return (due - (today or date.today())).days


def how_long(due_in: int) -> str:
    if due_in == NO_DUE_DATE:
        return "No Due Date Specified"
    if due_in == -1:
        return "Due YESTERDAY!"
    if due_in == 0:
        return "Due TODAY"
    if due_in == 1:
        return "Due Tomorrow"
    if due_in < -1:
        return f"Overdue by {-due_in} days"
    return f"Due in {due_in} days"


def item_has_status(item: dict, status: str) -> bool:
    values = ((item.get("fieldValues") or {}).get("nodes")) or []
    return any(value.get("name") == status for value in values if value)


def triage_issue_from_item(item: dict, today: Optional[date] = None) -> Optional[TriageIssue]:
    """Build a TriageIssue from a ProjectV2 item; items that aren't issues give None."""
    content = item.get("content") or {}
    if "number" not in content:
        return None

    values = ((item.get("fieldValues") or {}).get("nodes")) or []
    dates = [value["date"] for value in values if value and value.get("date")]
    due = parse_due_date(dates[0]) if dates else None

    return TriageIssue(
        number=content["number"],
        title=content.get("title", ""),
        url=content.get("url", ""),
        labels=[label["name"] for label in ((content.get("labels") or {}).get("nodes") or []) if label],
        due_in=days_until(due, today),
    )


def due_date_from_labels(issue: GitHubIssue) -> Optional[date]:
    """Read a "[DUE DATE] 2026-10-20" style label."""
    for label in issue.labels:
        if label.name[: len(DUE_DATE_LABEL_PREFIX)].upper() != DUE_DATE_LABEL_PREFIX:
            continue
        due = parse_due_date(label.name[len(DUE_DATE_LABEL_PREFIX) + 1:])
        if due is None:
            logger.debug(f"Unparseable due date label on #{issue.number}: {label.name}")
            continue
        return due
    return None


def urgent_issues(issues: Iterable[GitHubIssue], today: Optional[date] = None) -> List[TriageIssue]:
    """Issues with a due date label at most two days away, soonest first."""
    urgent = {}
    for issue in issues:
        due = due_date_from_labels(issue)
        if due is None:
            continue
        due_in = days_until(due, today)
        if due_in <= URGENT_WITHIN_DAYS:
            urgent[issue.number] = TriageIssue(
                number=issue.number, title=issue.title, url=issue.html_url or "", due_in=due_in
            )
    return sorted(urgent.values(), key=lambda issue: issue.due_in)
