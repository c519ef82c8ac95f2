"""
Parameter metadata for report forms.

``describe_parameters`` returns each declared parameter with what a form
needs to render it: a label and description, defaults for ``date`` and
``number`` inputs, and select options for the lookup types. Lookup options
are read from the local store through the template executor, so they pass
the same SELECT-only gates and table prefix rules as reports do.
"""

import logging
import time
from collections.abc import Callable
from datetime import date
from typing import Any, NamedTuple

from reportsql.engines.executor import TemplateExecutor
from reportsql.engines.sql.errors import ExecutorError, MissingParameterError
from reportsql.models import ReportParameter, ReportTemplate

_log = logging.getLogger(__name__)

LOOKUP_ROW_CAP = 1000

DEFAULT_NUMBER_MIN = 1
DEFAULT_NUMBER_VALUE = 10


def _always(_row: dict[str, Any]) -> bool:
    return True


class OptionLookup(NamedTuple):
    """Query for a lookup type and how to turn its rows into options."""

    sql: str
    label: Callable[[dict[str, Any], float], str]
    keep: Callable[[dict[str, Any]], bool] = _always


def _quiz_label(row: dict[str, Any], now: float) -> str:
    status = ""
    opens, closes = row.get("timeopen"), row.get("timeclose")
    if opens and closes:
        if now < opens:
            status = " [Not yet open]"
        elif now > closes:
            status = " [Closed]"
        else:
            status = " [Open]"
    return f"{row['coursename']} - {row['name']}{status}"


def _ucfirst(text: str) -> str:
    return text[:1].upper() + text[1:]


OPTION_LOOKUPS: dict[str, OptionLookup] = {
    # course 1 is the site front page
    "course_select": OptionLookup(
        "SELECT id, fullname FROM {course} WHERE visible = 1 ORDER BY fullname",
        lambda row, now: str(row["fullname"]),
        lambda row: int(row["id"]) > 1,
    ),
    # ids 1 and 2 are the guest and admin accounts
    "user_select": OptionLookup(
        "SELECT id, firstname, lastname, username FROM {user} "
        "WHERE deleted = 0 AND confirmed = 1 ORDER BY lastname, firstname LIMIT 200",
        lambda row, now: f"{row['firstname']} {row['lastname']} ({row['username']})",
        lambda row: int(row["id"]) > 2,
    ),
    "category_select": OptionLookup(
        "SELECT id, name, depth FROM {course_categories} ORDER BY name",
        lambda row, now: "- " * int(row["depth"] or 0) + str(row["name"]),
    ),
    "group_select": OptionLookup(
        "SELECT g.id, g.name, c.fullname AS coursename FROM {groups} g "
        "JOIN {course} c ON g.courseid = c.id ORDER BY c.fullname, g.name",
        lambda row, now: f"{row['coursename']} - {row['name']}",
    ),
    "role_select": OptionLookup(
        "SELECT id, name, shortname FROM {role} ORDER BY sortorder",
        lambda row, now: f"{row['name']} ({row['shortname']})",
    ),
    "module_select": OptionLookup(
        "SELECT id, name FROM {modules} WHERE visible = 1 ORDER BY name",
        lambda row, now: _ucfirst(str(row["name"])),
    ),
    "quiz_select": OptionLookup(
        "SELECT q.id, q.name, c.fullname AS coursename, q.timeopen, q.timeclose "
        "FROM {quiz} q JOIN {course} c ON q.course = c.id "
        "WHERE c.visible = 1 ORDER BY c.fullname, q.name",
        _quiz_label,
    ),
}


def default_label(name: str) -> str:
    """``course_id`` -> ``Course  ID``, ``courseid`` -> ``Course ID``."""
    text = name.replace("_", " ").replace("id", " ID")
    return " ".join(_ucfirst(word) for word in text.split(" "))


def load_options(
    param_type: str,
    *,
    executor: TemplateExecutor,
    now: float | None = None,
) -> list[dict[str, Any]]:
    """
    Options for a lookup type, as ``{"value", "label"}`` dicts.

    A lookup whose tables are missing yields no options rather than an error.
    """
    lookup = OPTION_LOOKUPS[param_type]
    current = time.time() if now is None else now
    try:
        result = executor.execute(lookup.sql, None, LOOKUP_ROW_CAP)
    except ExecutorError as e:
        _log.warning("Option lookup %s failed: %s", param_type, e)
        return []
    return [
        {"value": row["id"], "label": lookup.label(row, current)}
        for row in result.rows
        if lookup.keep(row)
    ]


def describe_parameter(
    param: ReportParameter,
    *,
    executor: TemplateExecutor,
    today: date | None = None,
    now: float | None = None,
) -> ReportParameter:
    data = param.model_dump()
    if param.type in OPTION_LOOKUPS:
        data["type"] = "select"
        data["options"] = load_options(param.type, executor=executor, now=now)
    elif param.type == "date":
        if param.default is None:
            data["default"] = (today or date.today()).isoformat()
    elif param.type == "number":
        if param.min is None:
            data["min"] = DEFAULT_NUMBER_MIN
        if param.default is None:
            data["default"] = DEFAULT_NUMBER_VALUE
    elif param.type != "select":
        data["type"] = "text"

    if not data.get("label"):
        data["label"] = default_label(param.name)
    if not data.get("description"):
        data["description"] = f"Enter the {data['label'].lower()}"
    return ReportParameter.model_validate(data)


def describe_parameters(
    report: ReportTemplate,
    *,
    executor: TemplateExecutor,
    today: date | None = None,
    now: float | None = None,
) -> list[ReportParameter]:
    return [
        describe_parameter(p, executor=executor, today=today, now=now)
        for p in report.parameters
    ]


def check_required_parameters(
    report: ReportTemplate, values: dict[str, Any]
) -> None:
    """Raise ``MissingParameterError`` for the first required parameter left blank."""
    for param in report.parameters:
        if not param.required:
            continue
        value = values.get(param.name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise MissingParameterError(
                param.name, f"Required parameter '{param.name}' is missing"
            )
