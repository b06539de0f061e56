"""Pytest configuration for the Lark timesheet API tests.

Sets required environment variables before any test module imports
server.py, which reads its settings at module level.
"""

from __future__ import annotations

import os
from typing import Any

os.environ.setdefault("LARK_APP_ID", "cli_test_app")
os.environ.setdefault("LARK_APP_SECRET", "test-app-secret")
os.environ.setdefault("LARK_API_BASE_URL", "https://lark.example.com/open-apis")
os.environ.setdefault("BITABLE_APP_TOKEN", "app_timesheet")
os.environ.setdefault("BITABLE_TABLE_ID", "tbl_timesheet")
os.environ.setdefault("SESSION_SECRET", "test-session-secret-0123456789")
os.environ.setdefault("ENABLED_ROUTES", "timesheet,people,login")

BASE_URL = "https://lark.example.com/open-apis"
APP_TOKEN = "app_timesheet"
TABLE_ID = "tbl_timesheet"
TOKEN_URL = f"{BASE_URL}/auth/v3/tenant_access_token/internal"

# ---------------------------------------------------------------------------
# Shared test helpers: upstream payload builders
# ---------------------------------------------------------------------------


def records_url(app_token: str = APP_TOKEN, table_id: str = TABLE_ID) -> str:
    return f"{BASE_URL}/bitable/v1/apps/{app_token}/tables/{table_id}/records"


def fields_url(app_token: str = APP_TOKEN, table_id: str = TABLE_ID) -> str:
    return f"{BASE_URL}/bitable/v1/apps/{app_token}/tables/{table_id}/fields"


def token_body(token: str = "t-tenant-token", expire: int = 7200) -> dict[str, Any]:
    return {"code": 0, "msg": "ok", "tenant_access_token": token, "expire": expire}


def page(
    items: list[dict[str, Any]],
    *,
    has_more: bool = False,
    page_token: str | None = None,
) -> dict[str, Any]:
    data: dict[str, Any] = {"items": items, "has_more": has_more, "total": len(items)}
    if page_token is not None:
        data["page_token"] = page_token
    return {"code": 0, "msg": "success", "data": data}


def record(fields: dict[str, Any], record_id: str = "rec1") -> dict[str, Any]:
    return {"record_id": record_id, "fields": fields}


def field_defs(mapping: dict[str, str]) -> list[dict[str, Any]]:
    """Build field definitions from ``{name: field_id}``."""
    return [{"field_id": fid, "field_name": name, "type": 1} for name, fid in mapping.items()]


# Timesheet table as deployed: records keyed by field id.
TIMESHEET_FIELDS = {
    "日期 Date": "fldDate",
    "项目 Project": "fldProject",
    "开工时间 Start Time": "fldStart",
    "结束时间 End Time": "fldEnd",
    "工时": "fldHours",
    "人员姓名 NameText": "fldPerson",
}
