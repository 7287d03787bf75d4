from __future__ import annotations

import datetime as dt
from typing import Optional

from pydantic import BaseModel


class ColorMapRead(BaseModel):
    colors: Optional[dict[str, str]] = None


class ReportTaskLine(BaseModel):
    title: str
    priority: str


class ReportCreatorGroup(BaseModel):
    label: str
    is_self: bool = False
    tasks: list[ReportTaskLine]


class ReportDay(BaseModel):
    date: dt.date
    groups: list[ReportCreatorGroup]


class WeeklyReportRead(BaseModel):
    week_start: dt.date
    week_end: dt.date
    total: int
    by_priority: dict[str, int]
    days: list[ReportDay]
    text: str
