"""Environment-driven configuration.

All settings are read once at startup into a frozen :class:`Settings`.
Tests build their own instances instead of mutating ``os.environ``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from _constants import DEFAULT_SESSION_TTL_HOURS

__all__ = ["Settings", "TimesheetColumns", "env_flag"]

_TRUTHY = frozenset({"1", "true", "yes", "on"})

DEFAULT_BASE_URL = "https://open.larksuite.com/open-apis"


def env_flag(env: Mapping[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() in _TRUTHY


def _text(env: Mapping[str, str], name: str, default: str = "") -> str:
    return env.get(name, default).strip()


@dataclass(frozen=True)
class TimesheetColumns:
    """Human-readable column names of the timesheet table."""

    date: str = "日期 Date"
    project: str = "项目 Project"
    start_time: str = "开工时间 Start Time"
    end_time: str = "结束时间 End Time"
    hours: str = "工时"
    # Candidates in priority order; deployments name the person column differently.
    person: tuple[str, ...] = ("人员姓名 NameText", "人员 Person", "姓名")


@dataclass(frozen=True)
class Settings:
    app_id: str = ""
    app_secret: str = ""
    base_url: str = DEFAULT_BASE_URL
    app_token: str = ""
    table_id: str = ""
    columns: TimesheetColumns = TimesheetColumns()
    filter_mode: str = "local"
    timezone: str = "Asia/Shanghai"
    people_app_token: str = ""
    people_table_id: str = ""
    people_name_field: str = "姓名"
    people_phone_field: str = "手机号"
    session_secret: str = ""
    session_ttl_hours: float = DEFAULT_SESSION_TTL_HOURS
    auth_debug: bool = False
    sms_api_url: str = ""
    sms_api_key: str = ""
    sms_country_code: str = "86"

    @property
    def roster_configured(self) -> bool:
        return bool(self.people_app_token and self.people_table_id)

    def missing(self) -> list[str]:
        """Return the names of required variables that are unset."""
        required = {
            "LARK_APP_ID": self.app_id,
            "LARK_APP_SECRET": self.app_secret,
            "BITABLE_APP_TOKEN": self.app_token,
            "BITABLE_TABLE_ID": self.table_id,
        }
        return [name for name, value in required.items() if not value]

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if env is None else env

        person_field = _text(env, "TIMESHEET_PERSON_FIELD_NAME")
        columns = TimesheetColumns()
        if person_field:
            fallbacks = tuple(p for p in columns.person if p != person_field)
            columns = TimesheetColumns(person=(person_field, *fallbacks))

        filter_mode = _text(env, "TIMESHEET_FILTER_MODE", "local").lower()
        if filter_mode not in ("local", "remote"):
            raise ValueError(
                f"TIMESHEET_FILTER_MODE must be 'local' or 'remote', got {filter_mode!r}"
            )

        raw_ttl = _text(env, "SESSION_TTL_HOURS", str(DEFAULT_SESSION_TTL_HOURS))
        try:
            session_ttl_hours = float(raw_ttl)
        except ValueError as exc:
            raise ValueError(f"SESSION_TTL_HOURS must be a number, got {raw_ttl!r}") from exc
        if session_ttl_hours <= 0:
            raise ValueError("SESSION_TTL_HOURS must be > 0")

        return cls(
            app_id=_text(env, "LARK_APP_ID"),
            app_secret=_text(env, "LARK_APP_SECRET"),
            base_url=_text(env, "LARK_API_BASE_URL", DEFAULT_BASE_URL) or DEFAULT_BASE_URL,
            app_token=_text(env, "BITABLE_APP_TOKEN"),
            table_id=_text(env, "BITABLE_TABLE_ID"),
            columns=columns,
            filter_mode=filter_mode,
            timezone=_text(env, "TIMESHEET_TIMEZONE", "Asia/Shanghai") or "Asia/Shanghai",
            people_app_token=_text(env, "PEOPLE_APP_TOKEN"),
            people_table_id=_text(env, "PEOPLE_TABLE_ID"),
            people_name_field=_text(env, "PEOPLE_NAME_FIELD", "姓名") or "姓名",
            people_phone_field=_text(env, "PEOPLE_PHONE_FIELD", "手机号") or "手机号",
            session_secret=_text(env, "SESSION_SECRET"),
            session_ttl_hours=session_ttl_hours,
            auth_debug=env_flag(env, "AUTH_DEBUG"),
            sms_api_url=_text(env, "SMS_API_URL"),
            sms_api_key=_text(env, "SMS_API_KEY"),
            sms_country_code=_text(env, "SMS_COUNTRY_CODE", "86").lstrip("+") or "86",
        )
