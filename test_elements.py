import io
from datetime import date, datetime

from openpyxl import Workbook, load_workbook

from app.models.department import Department
from app.models.element import Element
from app.models.task import Task
from app.services import task_import
from conftest import auth_headers


def create_element(client, user, project, title="Foundation", **fields):
    return client.post("/elements/", json={"project_id": project.id, "title": title, **fields}, headers=auth_headers(user))


def workbook_bytes(*rows, header=tuple(task_import.COLUMNS)):
    workbook = Workbook()
    sheet = workbook.active
    sheet.append(list(header))
    for row in rows:
        sheet.append(list(row))
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def import_sheet(client, user, project, department, content, name="tasks.xlsx"):
    return client.post(
        "/tasks/import",
        data={"project_id": str(project.id), "department_id": str(department.id)},
        files={"file": (name, content, task_import.XLSX_MEDIA_TYPE)},
        headers=auth_headers(user),
    )


def test_members_create_and_managers_edit_elements(client, db, manager, member, outsider, project, department):
    created = create_element(client, member, project, "  Foundation ", department_id=department.id, priority="HIGH")
    assert created.status_code == 201
    element = created.json()
    assert element["title"] == "Foundation"
    assert element["priority"] == "high"
    assert element["task_count"] == 0

    assert create_element(client, outsider, project).status_code == 403
    assert create_element(client, member, project, "   ").status_code == 422

    url = f"/elements/{element['id']}"
    assert client.put(url, json={"title": "Groundwork"}, headers=auth_headers(member)).status_code == 403
    renamed = client.put(url, json={"title": "Groundwork", "due_date": "2024-06-30"}, headers=auth_headers(manager))
    assert renamed.json()["title"] == "Groundwork"
    assert client.put(url, json={"title": None}, headers=auth_headers(manager)).status_code == 422

    listed = client.get(f"/elements/?project_id={project.id}&department_id={department.id}", headers=auth_headers(member)).json()
    assert [e["title"] for e in listed] == ["Groundwork"]


def test_element_department_must_belong_to_project(client, db, manager, project):
    other = client.post("/projects/", json={"name": "Other", "start_date": "2024-01-01"}, headers=auth_headers(manager)).json()
    foreign = Department(name="Elsewhere", project_id=other["id"])
    db.add(foreign)
    db.commit()
    assert create_element(client, manager, project, department_id=foreign.id).status_code == 400


def test_tasks_are_grouped_and_released_on_delete(client, db, manager, member, project):
    element = create_element(client, member, project).json()
    task = client.post("/tasks/", json={"project_id": project.id, "title": "Pour slab", "element_id": element["id"]}, headers=auth_headers(member))
    assert task.json()["element_id"] == element["id"]
    assert client.get(f"/elements/{element['id']}", headers=auth_headers(member)).json()["task_count"] == 1

    assert client.delete(f"/elements/{element['id']}", headers=auth_headers(member)).status_code == 403
    assert client.delete(f"/elements/{element['id']}", headers=auth_headers(manager)).status_code == 204

    db.expire_all()
    assert db.query(Element).count() == 0
    assert db.query(Task).one().element_id is None


def test_task_element_must_belong_to_project(client, db, manager, member, project):
    other = client.post("/projects/", json={"name": "Other", "start_date": "2024-01-01"}, headers=auth_headers(manager)).json()
    foreign = Element(project_id=other["id"], title="Not here")
    db.add(foreign)
    db.commit()
    response = client.post("/tasks/", json={"project_id": project.id, "title": "Pour slab", "element_id": foreign.id}, headers=auth_headers(member))
    assert response.status_code == 400


def test_import_creates_tasks_and_missing_elements(client, db, member, project, department):
    db.add(Element(project_id=project.id, department_id=department.id, title="Foundation"))
    db.commit()
    content = workbook_bytes(
        ("Dig trench", "Foundation", "In Progress", "High", "2024-03-01", "03-15-2024", "By hand", 1200, None),
        (None, None, None, None, None, None, None, None, None),
        ("Frame walls", "Structure", "done", None, datetime(2024, 4, 1), 45397, None, "2,500", 300),
        ("Order paint", None, None, None, None, None, None, None, None),
    )

    response = import_sheet(client, member, project, department, content)
    assert response.status_code == 201
    assert response.json() == {"imported": 3, "elements_created": 1, "message": "Successfully imported 3 tasks"}

    tasks = {t.title: t for t in db.query(Task).all()}
    elements = {e.title: e.id for e in db.query(Element).all()}
    assert set(elements) == {"Foundation", "Structure"}

    dig = tasks["Dig trench"]
    assert dig.status == "in_progress"
    assert dig.priority == "high"
    assert dig.progress_percentage == 50
    assert dig.due_date == date(2024, 3, 15)
    assert dig.element_id == elements["Foundation"]
    assert dig.assignee_department_id == department.id

    frame = tasks["Frame walls"]
    assert frame.start_date == date(2024, 4, 1)
    assert frame.due_date == date(2024, 4, 15)
    assert frame.estimated_cost == 2500
    assert frame.completed_at is not None
    assert frame.progress_percentage == 100

    paint = tasks["Order paint"]
    assert paint.status == "todo"
    assert paint.priority == "medium"
    assert paint.element_id is None


def test_import_with_invalid_rows_imports_nothing(client, db, member, project, department):
    content = workbook_bytes(
        ("Good row", None, "todo", "low", None, None, None, None, None),
        (None, "Orphan", "todo", None, None, None, None, None, None),
        ("Bad status", None, "blocked", None, None, None, None, None, None),
        ("Backwards", None, None, None, "2024-05-10", "2024-05-01", None, None, None),
        ("Bad cost", None, None, None, None, None, None, "lots", None),
    )

    response = import_sheet(client, member, project, department, content)
    assert response.status_code == 400
    assert response.json()["detail"].splitlines() == [
        "Validation errors:",
        "Row 3: Task title is required",
        "Row 4: Status 'blocked' must be one of: todo, in_progress, done",
        "Row 5: Due date cannot be before start date",
        "Row 6: Estimated Cost must be a number",
    ]
    assert db.query(Task).count() == 0
    assert db.query(Element).count() == 0


def test_import_rejects_unusable_files(client, member, outsider, project, department):
    assert import_sheet(client, member, project, department, b"title,status\n", name="tasks.csv").status_code == 400
    assert import_sheet(client, member, project, department, b"not a zip", name="tasks.xlsx").json()["detail"] == "The file is not a valid .xlsx workbook"
    assert import_sheet(client, member, project, department, workbook_bytes()).json()["detail"] == "The Excel file is empty"
    wrong_header = workbook_bytes(("Dig trench",), header=("Name",))
    assert "Task Title" in import_sheet(client, member, project, department, wrong_header).json()["detail"]
    assert import_sheet(client, outsider, project, department, workbook_bytes(("Dig trench",))).status_code == 403


def test_import_template_lists_department_elements(client, db, member, project, department):
    db.add_all([
        Element(project_id=project.id, department_id=department.id, title="Structure"),
        Element(project_id=project.id, department_id=department.id, title="Foundation"),
    ])
    db.commit()

    response = client.get(f"/tasks/import/template?department_id={department.id}", headers=auth_headers(member))
    assert response.status_code == 200
    assert 'filename="task-import-template-engineering.xlsx"' in response.headers["content-disposition"]

    workbook = load_workbook(io.BytesIO(response.content))
    assert workbook.sheetnames == ["Tasks Template", "Reference"]
    rows = list(workbook["Tasks Template"].iter_rows(values_only=True))
    assert list(rows[0]) == task_import.COLUMNS
    assert rows[1][1] == "Foundation"
    reference = [row[0] for row in workbook["Reference"].iter_rows(values_only=True)]
    assert "  • Foundation" in reference
    assert "  • Structure" in reference


def test_sheet_dates():
    assert task_import.parse_sheet_date(45292) == date(2024, 1, 1)
    assert task_import.parse_sheet_date("01-31-2024") == date(2024, 1, 31)
    assert task_import.parse_sheet_date(" ") is None
