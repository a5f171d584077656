"""
Linear issue tracker driver (GraphQL over HTTP).

With LINEAR_USE_MOCK_DATA=true, issue queries are answered from
linear_mock_data without touching the network.
"""
import copy
import time
from typing import Any, Dict, List, Optional

import requests

from app.core.config import get_settings
from app.core.exceptions import ServiceApiError
from app.services.drivers.linear_mock_data import MOCK_LINEAR_ISSUES_RESPONSE
from app.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

LINEAR_GRAPHQL_URL = "https://api.linear.app/graphql"

LINEAR_PRIORITY_CONFIG = {
    0: {"label": "None", "color": "#6b7280"},
    1: {"label": "Urgent", "color": "#ef4444"},
    2: {"label": "High", "color": "#f97316"},
    3: {"label": "Medium", "color": "#eab308"},
    4: {"label": "Low", "color": "#3b82f6"},
}

INACTIVE_STATE_TYPES = {"completed", "canceled"}

_USER_FIELDS = "id name email displayName"

VIEWER_QUERY = f"query {{ viewer {{ {_USER_FIELDS} }} }}"
TEAMS_QUERY = "query { teams { nodes { id name key description } } }"
ISSUES_QUERY = f"""
query Issues($filter: IssueFilter, $first: Int, $after: String) {{
  issues(filter: $filter, first: $first, after: $after, orderBy: updatedAt) {{
    nodes {{
      id identifier title description priority estimate url createdAt updatedAt
      state {{ id name color type }}
      assignee {{ {_USER_FIELDS} }}
      creator {{ {_USER_FIELDS} }}
      team {{ id name key }}
      labels {{ nodes {{ id name color }} }}
    }}
    pageInfo {{ hasNextPage endCursor }}
  }}
}}
"""


def get_priority_config(priority: int) -> Dict[str, str]:
    return LINEAR_PRIORITY_CONFIG.get(priority, LINEAR_PRIORITY_CONFIG[0])


def _graphql(api_key: str, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    try:
        response = requests.post(
            LINEAR_GRAPHQL_URL,
            json={"query": query, "variables": variables or {}},
            headers={"Authorization": api_key, "Content-Type": "application/json"},
            timeout=settings.http_timeout_seconds
        )
    except requests.RequestException as e:
        raise ServiceApiError("Linear", f"Network error: Unable to connect to Linear API. {e}") from e

    if response.status_code == 401:
        raise ServiceApiError("Linear", "Invalid API key. Please check your Linear API key.", status_code=401)
    if response.status_code == 403:
        raise ServiceApiError("Linear", "Access forbidden. Please check your API key permissions.", status_code=403)

    try:
        body = response.json()
    except ValueError as e:
        raise ServiceApiError("Linear", f"Unexpected response (status {response.status_code})", status_code=response.status_code) from e

    if body.get("errors"):
        message = "; ".join(err.get("message", "Unknown error") for err in body["errors"])
        raise ServiceApiError("Linear", message, status_code=response.status_code)
    if not response.ok:
        raise ServiceApiError("Linear", f"Request failed (status {response.status_code})", status_code=response.status_code)
    return body.get("data") or {}


def _user(node: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not node:
        return None
    return {
        "id": node.get("id"),
        "name": node.get("name"),
        "email": node.get("email"),
        "displayName": node.get("displayName") or node.get("name"),
    }


def _issue(node: Dict[str, Any]) -> Dict[str, Any]:
    state = node.get("state") or {}
    team = node.get("team") or {}
    return {
        "id": node.get("id"),
        "identifier": node.get("identifier"),
        "title": node.get("title"),
        "description": node.get("description"),
        "priority": node.get("priority", 0),
        "estimate": node.get("estimate"),
        "url": node.get("url"),
        "createdAt": node.get("createdAt"),
        "updatedAt": node.get("updatedAt"),
        "state": {k: state.get(k, "") for k in ("id", "name", "color", "type")},
        "assignee": _user(node.get("assignee")),
        "creator": _user(node.get("creator")),
        "team": {k: team.get(k, "") for k in ("id", "name", "key")},
        "labels": (node.get("labels") or {}).get("nodes", []),
    }


def get_viewer(api_key: str) -> Dict[str, Any]:
    return _user(_graphql(api_key, VIEWER_QUERY).get("viewer"))


def get_teams(api_key: str) -> List[Dict[str, Any]]:
    nodes = (_graphql(api_key, TEAMS_QUERY).get("teams") or {}).get("nodes", [])
    return [
        {"id": t.get("id"), "name": t.get("name"), "key": t.get("key"), "description": t.get("description")}
        for t in nodes
    ]


def test_connection(api_key: str) -> Dict[str, Any]:
    """
    Check the API key by fetching the viewer and the available teams.

    Returns:
        {"success": bool, "message"|"error": str, "user"?, "teams"?, "responseTime": ms}
    """
    start = time.monotonic()
    try:
        viewer = get_viewer(api_key)
        teams = get_teams(api_key)
    except ServiceApiError as e:
        logger.error(f"[Linear] Connection test failed: {e}")
        return {"success": False, "error": str(e), "responseTime": int((time.monotonic() - start) * 1000)}

    return {
        "success": True,
        "message": f"Connected successfully as {viewer.get('displayName') or viewer.get('name')}",
        "user": viewer,
        "teams": teams,
        "responseTime": int((time.monotonic() - start) * 1000),
    }


def get_issues(
    api_key: str,
    team_id: Optional[str] = None,
    active_only: bool = False,
    state_id: Optional[str] = None,
    assignee_id: Optional[str] = None,
    priority: Optional[int] = None,
    first: int = 50,
    after: Optional[str] = None
) -> Dict[str, Any]:
    """
    Fetch issues, optionally for one team.

    Returns:
        {"issues": [...], "pageInfo": {"hasNextPage", "endCursor"}, "totalCount": int}
    """
    if settings.linear_use_mock_data:
        logger.info("[Linear] Using mock data")
        return copy.deepcopy(MOCK_LINEAR_ISSUES_RESPONSE)

    issue_filter: Dict[str, Any] = {}
    if team_id:
        issue_filter["team"] = {"id": {"eq": team_id}}
    if state_id:
        issue_filter["state"] = {"id": {"eq": state_id}}
    if assignee_id:
        issue_filter["assignee"] = {"id": {"eq": assignee_id}}
    if priority is not None:
        issue_filter["priority"] = {"eq": priority}

    data = _graphql(api_key, ISSUES_QUERY, {"filter": issue_filter or None, "first": first, "after": after})
    connection = data.get("issues") or {}
    issues = [_issue(node) for node in connection.get("nodes", [])]
    if active_only:
        issues = [i for i in issues if i["state"]["type"] not in INACTIVE_STATE_TYPES]

    page_info = connection.get("pageInfo") or {}
    return {
        "issues": issues,
        "pageInfo": {"hasNextPage": bool(page_info.get("hasNextPage")), "endCursor": page_info.get("endCursor")},
        "totalCount": len(issues),
    }
