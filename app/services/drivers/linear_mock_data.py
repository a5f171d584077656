"""Canned Linear responses served when LINEAR_USE_MOCK_DATA is enabled."""

_TEAM = {"id": "team-fusion", "name": "Fusion Team", "key": "FUS"}
_OWNER = {"id": "user-owner", "name": "Fusion Owner", "email": "owner@example.com", "displayName": "Fusion Owner"}
_DEVELOPER = {"id": "user-dev", "name": "Fusion Developer", "email": "dev@example.com", "displayName": "Fusion Developer"}


def _issue(issue_id, number, title, priority, state, updated_at, created_at, labels, description=None, assignee=_OWNER):
    return {
        "id": issue_id,
        "identifier": f"FUS-{number}",
        "title": title,
        "description": description,
        "priority": priority,
        "url": f"https://linear.app/fusion/issue/FUS-{number}",
        "updatedAt": updated_at,
        "createdAt": created_at,
        "state": state,
        "assignee": assignee,
        "creator": _OWNER,
        "team": _TEAM,
        "labels": labels,
    }


_TODO = {"id": "state-todo", "name": "Todo", "color": "#e2e2e2", "type": "unstarted"}
_BACKLOG = {"id": "state-backlog", "name": "Backlog", "color": "#bec2c8", "type": "backlog"}
_IN_PROGRESS = {"id": "state-in-progress", "name": "In Progress", "color": "#f2c94c", "type": "started"}
_DONE = {"id": "state-done", "name": "Done", "color": "#5e6ad2", "type": "completed"}
_CANCELED = {"id": "state-canceled", "name": "Canceled", "color": "#95a2b3", "type": "canceled"}

_IMPROVEMENT = {"id": "improvement-1", "name": "Improvement", "color": "#10b981"}
_FEATURE = {"id": "feature-1", "name": "Feature", "color": "#BB87FC"}
_BUG = {"id": "bug-1", "name": "Bug", "color": "#EB5757"}

MOCK_LINEAR_ISSUES = [
    _issue(
        "3c00c903-ae15-4b5e-a9dd-d714f93409a4", 55,
        "Cleanup | Remove data/repositories/event.ts", 3, _TODO,
        "2025-08-01T04:24:11.990Z", "2025-07-15T10:20:30.000Z", [_IMPROVEMENT],
        description="Merge the event repository with the organization-scoped queries.",
    ),
    _issue(
        "0fd4bab0-4371-4830-a0d5-7915f2996c32", 52,
        "Devices | Device onboarding wizard", 0, _BACKLOG,
        "2025-07-31T19:54:27.286Z", "2025-07-20T14:30:15.000Z", [_FEATURE],
    ),
    _issue(
        "7b1f4a52-1d8e-4c1a-9a55-0e5f0c9d2b11", 41,
        "Events | Add initial Genea event support", 2, _IN_PROGRESS,
        "2025-07-28T08:11:02.000Z", "2025-06-30T09:00:00.000Z", [_FEATURE],
        assignee=_DEVELOPER,
    ),
    _issue(
        "c2e8d7a1-5b3f-4e6a-8f90-1a2b3c4d5e6f", 10,
        "Locations & Areas | Connectors w/ same name causes frontend display issues", 2, _DONE,
        "2025-06-12T16:45:00.000Z", "2025-05-02T12:00:00.000Z", [_BUG],
    ),
    _issue(
        "9f8e7d6c-5b4a-4321-8765-0fedcba98765", 4,
        "Connect GitHub or GitLab", 1, _CANCELED,
        "2025-05-10T10:10:10.000Z", "2025-04-01T08:30:00.000Z", [],
        assignee=None,
    ),
]

MOCK_LINEAR_ISSUES_RESPONSE = {
    "issues": MOCK_LINEAR_ISSUES,
    "pageInfo": {"hasNextPage": False, "endCursor": None},
    "totalCount": len(MOCK_LINEAR_ISSUES),
}
