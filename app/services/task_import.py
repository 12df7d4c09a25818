"""
Spreadsheet task import.

The first sheet of an .xlsx workbook is read with its first row as the
header. Each following row becomes a task assigned to the chosen
department; an `Element` column groups tasks under elements of that
department, creating the missing ones. A workbook with any invalid row
imports nothing.
"""

import io
import logging
import re
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from zipfile import BadZipFile

from openpyxl import Workbook, load_workbook
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy.orm import Session

from app.models.user import User
from app.models.project import Project
from app.models.department import Department
from app.models.element import Element
from app.models.task import Task
from app.schemas.task import PRIORITY_VALUES
from app.utils.task_status import DONE, IN_PROGRESS, UNKNOWN, normalize_task_status

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

COLUMNS = [
    "Task Title",
    "Element",
    "Status",
    "Priority",
    "Start Date",
    "Due Date",
    "Description",
    "Estimated Cost",
    "Actual Cost",
]
COLUMN_WIDTHS = [30, 25, 15, 12, 15, 15, 40, 15, 15]

PROGRESS_BY_STATUS = {DONE: 100, IN_PROGRESS: 50}
MAX_REPORTED_ERRORS = 5

# Day zero of Excel's 1900 date system, after its phantom 29 February 1900
EXCEL_EPOCH = date(1899, 12, 30)
DATE_FORMATS = ("%Y-%m-%d", "%m-%d-%Y", "%m/%d/%Y", "%d %B %Y")


class TaskImportError(Exception):
    pass


def parse_sheet_date(value: Any) -> Optional[date]:
    """Cell value to a date: real dates, Excel serial numbers or common text formats"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return EXCEL_EPOCH + timedelta(days=int(value))
    text = str(value).strip()
    if not text:
        return None
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"'{text}' is not a date")


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _cost(value: Any, column: str) -> float:
    if value is None or (isinstance(value, str) and not value.strip()):
        return 0.0
    try:
        cost = float(str(value).replace(",", "").strip())
    except ValueError:
        raise ValueError(f"{column} must be a number") from None
    if cost < 0:
        raise ValueError(f"{column} cannot be negative")
    return cost


def parse_row(record: Dict[str, Any]) -> Dict[str, Any]:
    """Validate one sheet row and map it to task fields plus its element title"""
    title = _text(record.get("Task Title"))
    if not title:
        raise ValueError("Task title is required")

    status = "todo"
    raw_status = _text(record.get("Status"))
    if raw_status:
        status = normalize_task_status(raw_status)
        if status == UNKNOWN:
            raise ValueError(f"Status '{raw_status}' must be one of: todo, in_progress, done")

    priority = "medium"
    raw_priority = _text(record.get("Priority"))
    if raw_priority:
        priority = raw_priority.lower()
        if priority not in PRIORITY_VALUES:
            raise ValueError(f"Priority '{raw_priority}' must be one of: {', '.join(PRIORITY_VALUES)}")

    start_date = parse_sheet_date(record.get("Start Date"))
    due_date = parse_sheet_date(record.get("Due Date"))
    if start_date and due_date and due_date < start_date:
        raise ValueError("Due date cannot be before start date")

    return {
        "element": _text(record.get("Element")),
        "title": title[:500],
        "description": _text(record.get("Description")),
        "status": status,
        "priority": priority,
        "start_date": start_date,
        "due_date": due_date,
        "estimated_cost": _cost(record.get("Estimated Cost"), "Estimated Cost"),
        "actual_cost": _cost(record.get("Actual Cost"), "Actual Cost"),
        "progress_percentage": PROGRESS_BY_STATUS.get(status, 0),
    }


def read_rows(content: bytes) -> List[Tuple[int, Dict[str, Any]]]:
    """(sheet row number, {header: value}) for every non-blank row of the first sheet"""
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, BadZipFile, KeyError, OSError) as e:
        raise TaskImportError("The file is not a valid .xlsx workbook") from e

    try:
        rows = workbook.worksheets[0].iter_rows(values_only=True)
        header = next(rows, None)
        if header is None:
            raise TaskImportError("The Excel file is empty")
        names = [_text(cell) or "" for cell in header]
        if "Task Title" not in names:
            raise TaskImportError("The first row must contain a 'Task Title' column")

        records = []
        for number, values in enumerate(rows, start=2):
            if all(_text(value) is None for value in values):
                continue
            records.append((number, {name: value for name, value in zip(names, values) if name}))
    finally:
        workbook.close()

    if not records:
        raise TaskImportError("The Excel file is empty")
    return records


def import_tasks(db: Session, project: Project, department: Department, content: bytes, user: User) -> Tuple[int, int]:
    """Create the tasks of a workbook; returns (tasks imported, elements created)"""
    parsed = []
    errors = []
    for number, record in read_rows(content):
        try:
            parsed.append(parse_row(record))
        except ValueError as e:
            errors.append(f"Row {number}: {e}")
    if errors:
        message = "Validation errors:\n" + "\n".join(errors[:MAX_REPORTED_ERRORS])
        if len(errors) > MAX_REPORTED_ERRORS:
            message += f"\n... and {len(errors) - MAX_REPORTED_ERRORS} more errors"
        raise TaskImportError(message)

    elements = {
        element.title: element
        for element in db.query(Element).filter(Element.department_id == department.id).all()
    }
    created = 0
    for row in parsed:
        element_title = row.pop("element")
        element = None
        if element_title:
            element = elements.get(element_title)
            if element is None:
                element = Element(project_id=project.id, department_id=department.id, title=element_title)
                db.add(element)
                db.flush()
                elements[element_title] = element
                created += 1

        task = Task(
            project_id=project.id,
            assignee_department_id=department.id,
            element_id=element.id if element else None,
            created_by=user.id,
            **row,
        )
        if task.status == DONE:
            task.completed_at = datetime.utcnow()
        db.add(task)

    db.commit()
    logger.info(f"Imported {len(parsed)} tasks into department {department.id} ({created} new elements)")
    return len(parsed), created


def build_template(department_name: str, element_names: List[str]) -> bytes:
    """Workbook with an example tasks sheet and a reference sheet listing the department's elements"""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Tasks Template"
    sheet.append(COLUMNS)
    first = element_names[0] if element_names else "Element Name"
    second = element_names[1] if len(element_names) > 1 else first
    sheet.append(["Example Task 1", first, "todo", "high", "2025-01-15", "2025-01-31",
                  "Description of the task", 1000, 0])
    sheet.append(["Example Task 2", second, "in_progress", "medium", "2025-02-01", "2025-02-15",
                  "Another task description", 2500, 500])
    for index, width in enumerate(COLUMN_WIDTHS, start=1):
        sheet.column_dimensions[get_column_letter(index)].width = width

    reference = workbook.create_sheet("Reference")
    reference.append(["Information", "Value"])
    reference.append(["Department", department_name])
    reference.append(["Available Elements", len(element_names)])
    for name in element_names:
        reference.append([f"  • {name}", ""])
    reference.append(["Status values", "todo, in_progress, done"])
    reference.append(["Priority values", ", ".join(PRIORITY_VALUES)])
    reference.append(["Date format", "YYYY-MM-DD or MM-DD-YYYY"])
    reference.column_dimensions["A"].width = 30
    reference.column_dimensions["B"].width = 40

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def template_filename(department_name: str) -> str:
    slug = re.sub(r"[^a-z0-9]", "-", department_name.lower())
    return f"task-import-template-{slug}.xlsx"
