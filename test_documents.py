from app.models.department import Department
from app.models.document import Document, DocumentAccess
from app.models.external_user import ExternalUserActivityLog
from app.models.notification import Notification
from app.services.file_storage import file_storage
from conftest import auth_headers


def create_folder(client, user, project, name, **fields):
    return client.post("/documents/folders", json={"project_id": project.id, "name": name, **fields}, headers=auth_headers(user))


def upload(client, user, project, name="plan.pdf", content=b"%PDF-1.4 plan", **form):
    data = {"project_id": str(project.id)}
    data.update({key: str(value) for key, value in form.items()})
    return client.post(
        "/documents/upload",
        data=data,
        files={"file": (name, content, "application/pdf")},
        headers=auth_headers(user),
    )


def test_folder_tree_and_breadcrumbs(client, member, project, department):
    root = create_folder(client, member, project, "Contracts", department_id=department.id).json()
    child = create_folder(client, member, project, "2024", parent_folder_id=root["id"]).json()
    assert child["department_id"] == department.id

    crumbs = client.get(f"/documents/folders/{child['id']}/breadcrumbs", headers=auth_headers(member)).json()
    assert crumbs == [
        {"id": None, "name": "Documents"},
        {"id": root["id"], "name": "Contracts"},
        {"id": child["id"], "name": "2024"},
    ]

    top = client.get(f"/documents/projects/{project.id}", headers=auth_headers(member)).json()
    assert [f["name"] for f in top["folders"]] == ["Contracts"]
    inside = client.get(f"/documents/projects/{project.id}?folder_id={root['id']}", headers=auth_headers(member)).json()
    assert [f["name"] for f in inside["folders"]] == ["2024"]


def test_folder_cannot_move_into_its_subtree(client, manager, project):
    root = create_folder(client, manager, project, "Root").json()
    child = create_folder(client, manager, project, "Child", parent_folder_id=root["id"]).json()
    grandchild = create_folder(client, manager, project, "Grandchild", parent_folder_id=child["id"]).json()

    for target in (root["id"], grandchild["id"]):
        response = client.put(f"/documents/folders/{root['id']}/move", json={"parent_folder_id": target}, headers=auth_headers(manager))
        assert response.status_code == 400

    moved = client.put(f"/documents/folders/{grandchild['id']}/move", json={"parent_folder_id": None}, headers=auth_headers(manager))
    assert moved.status_code == 200
    assert moved.json()["parent_folder_id"] is None


def test_member_cannot_rename_someone_elses_folder(client, manager, member, project):
    folder = create_folder(client, manager, project, "Board").json()
    assert client.put(f"/documents/folders/{folder['id']}", json={"name": "Mine"}, headers=auth_headers(member)).status_code == 403
    assert client.put(f"/documents/folders/{folder['id']}", json={"name": "Board Papers"}, headers=auth_headers(manager)).json()["name"] == "Board Papers"


def test_upload_download_and_delete(client, db, member, project):
    response = upload(client, member, project)
    assert response.status_code == 201
    document = response.json()
    assert document["name"] == "plan.pdf"
    assert document["uploader_name"] == "Team Member"
    assert document["file_url"].startswith(f"/uploads/{project.id}/root/")

    download = client.get(f"/documents/{document['id']}/download", headers=auth_headers(member))
    assert download.status_code == 200
    assert download.content == b"%PDF-1.4 plan"

    path = file_storage.path_for_url(document["file_url"])
    assert path.exists()
    assert client.delete(f"/documents/{document['id']}", headers=auth_headers(member)).status_code == 204
    assert not path.exists()


def test_blocked_extension_is_rejected(client, member, project):
    assert upload(client, member, project, name="setup.exe").status_code == 400


def test_duplicate_shares_nothing_with_source(client, member, project):
    folder = create_folder(client, member, project, "Drafts").json()
    original = upload(client, member, project, folder_id=folder["id"]).json()

    copy = client.post(f"/documents/{original['id']}/duplicate", json={}, headers=auth_headers(member))
    assert copy.status_code == 201
    assert copy.json()["name"] == "Copy of plan.pdf"
    assert copy.json()["folder_id"] == folder["id"]
    assert copy.json()["file_url"] != original["file_url"]

    to_root = client.post(f"/documents/{original['id']}/duplicate", json={"folder_id": None, "name": "Plan v2.pdf"}, headers=auth_headers(member)).json()
    assert to_root["folder_id"] is None
    assert to_root["name"] == "Plan v2.pdf"

    client.delete(f"/documents/{original['id']}", headers=auth_headers(member))
    assert file_storage.path_for_url(copy.json()["file_url"]).exists()


def test_deleting_folder_removes_contents(client, db, member, project):
    folder = create_folder(client, member, project, "Old").json()
    sub = create_folder(client, member, project, "Older", parent_folder_id=folder["id"]).json()
    document = upload(client, member, project, folder_id=sub["id"]).json()
    path = file_storage.path_for_url(document["file_url"])

    assert client.delete(f"/documents/folders/{folder['id']}", headers=auth_headers(member)).status_code == 204
    assert not path.exists()
    assert db.query(Document).count() == 0


def test_access_grant_notifies_and_is_audited(client, db, manager, outsider, project, sent_emails):
    document = upload(client, manager, project).json()

    assert client.get(f"/documents/{document['id']}", headers=auth_headers(outsider)).status_code == 403

    grant = client.post("/documents/access", json={"user_id": outsider.id, "document_id": document["id"]}, headers=auth_headers(manager))
    assert grant.status_code == 200
    assert grant.json()["permission"] == "view_only"
    assert [email["to"] for email in sent_emails] == [[outsider.email]]
    assert db.query(Notification).filter(Notification.user_id == outsider.id).count() == 1

    # Same permission again is not re-announced
    client.post("/documents/access", json={"user_id": outsider.id, "document_id": document["id"]}, headers=auth_headers(manager))
    assert len(sent_emails) == 1

    assert client.get(f"/documents/{document['id']}", headers=auth_headers(outsider)).status_code == 200
    assert client.get(f"/documents/{document['id']}/download", headers=auth_headers(outsider)).status_code == 403

    updated = client.put(f"/documents/access/{grant.json()['id']}", json={"permission": "download"}, headers=auth_headers(manager))
    assert updated.json()["permission"] == "download"
    assert client.get(f"/documents/{document['id']}/download", headers=auth_headers(outsider)).status_code == 200

    log = client.get(f"/documents/audit-log?document_id={document['id']}", headers=auth_headers(manager)).json()
    assert [entry["action"] for entry in log][:2] == ["access_updated", "access_granted"]

    assert client.delete(f"/documents/access/{grant.json()['id']}", headers=auth_headers(manager)).status_code == 204
    assert db.query(DocumentAccess).count() == 0


def test_folder_grant_covers_nested_documents(client, manager, outsider, project):
    folder = create_folder(client, manager, project, "Shared").json()
    document = upload(client, manager, project, folder_id=folder["id"]).json()
    client.post("/documents/access", json={"user_id": outsider.id, "folder_id": folder["id"], "permission": "download"}, headers=auth_headers(manager))

    assert client.get(f"/documents/{document['id']}/download", headers=auth_headers(outsider)).status_code == 200


def test_deleting_items_removes_their_grants(client, db, manager, outsider, project):
    headers = auth_headers(manager)
    old = upload(client, manager, project, name="old.pdf").json()
    client.post("/documents/access", json={"user_id": outsider.id, "document_id": old["id"], "permission": "download"}, headers=headers)
    assert client.delete(f"/documents/{old['id']}", headers=headers).status_code == 204
    assert db.query(DocumentAccess).count() == 0

    new = upload(client, manager, project, name="new.pdf").json()
    assert client.get(f"/documents/{new['id']}/download", headers=auth_headers(outsider)).status_code == 403

    folder = create_folder(client, manager, project, "Shared").json()
    upload(client, manager, project, name="inner.pdf", folder_id=folder["id"])
    link = client.post("/documents/links", json={"project_id": project.id, "title": "Wiki", "url": "https://wiki.example.com"}, headers=headers).json()
    client.post("/documents/access", json={"user_id": outsider.id, "folder_id": folder["id"]}, headers=headers)
    client.post("/documents/access", json={"user_id": outsider.id, "link_id": link["id"]}, headers=headers)
    assert db.query(DocumentAccess).count() == 2

    client.delete(f"/documents/links/{link['id']}", headers=headers)
    client.delete(f"/documents/folders/{folder['id']}", headers=headers)
    assert db.query(DocumentAccess).count() == 0


def test_access_grants_require_a_manager(client, member, outsider, project):
    document = upload(client, member, project).json()
    response = client.post("/documents/access", json={"user_id": outsider.id, "document_id": document["id"]}, headers=auth_headers(member))
    assert response.status_code == 403


def test_links(client, member, manager, project):
    bad = client.post("/documents/links", json={"project_id": project.id, "title": "Wiki", "url": "ftp://wiki"}, headers=auth_headers(member))
    assert bad.status_code == 422

    link = client.post(
        "/documents/links",
        json={"project_id": project.id, "title": "Wiki", "url": "https://wiki.example.com"},
        headers=auth_headers(member),
    )
    assert link.status_code == 201
    assert link.json()["creator_name"] == "Team Member"

    opened = client.get(f"/documents/links/{link.json()['id']}/open", headers=auth_headers(manager))
    assert opened.json()["url"] == "https://wiki.example.com"

    updated = client.put(f"/documents/links/{link.json()['id']}", json={"title": "Team wiki"}, headers=auth_headers(member))
    assert updated.json()["title"] == "Team wiki"
    assert client.delete(f"/documents/links/{link.json()['id']}", headers=auth_headers(member)).status_code == 204


def test_bulk_department_move(client, manager, project, department):
    first = upload(client, manager, project).json()
    second = upload(client, manager, project, name="budget.xlsx").json()
    link = client.post("/documents/links", json={"project_id": project.id, "title": "Board", "url": "https://board.example.com"}, headers=auth_headers(manager)).json()

    response = client.put(
        "/documents/bulk/department",
        json={"document_ids": [first["id"], second["id"]], "link_ids": [link["id"]], "department_id": department.id},
        headers=auth_headers(manager),
    )
    assert response.json() == {"moved_documents": 2, "moved_links": 1}

    listed = client.get(f"/documents/projects/{project.id}?department_id={department.id}", headers=auth_headers(manager)).json()
    assert len(listed["documents"]) == 2
    assert len(listed["links"]) == 1


def test_external_view_only_user_cannot_upload(client, make_external, department):
    guest, _ = make_external("guest@example.com", department)
    response = upload(client, guest, department.project, department_id=department.id)
    assert response.status_code == 403


def test_external_upload_is_logged_and_reported_to_leads(client, db, make_external, department, department_lead, sent_emails):
    guest, external = make_external("vendor@example.com", department, access_level="upload_edit")

    response = upload(client, guest, department.project, department_id=department.id)
    assert response.status_code == 201

    actions = [row.action for row in db.query(ExternalUserActivityLog).filter(ExternalUserActivityLog.external_user_id == external.id).all()]
    assert actions == ["document_upload"]
    assert [email["to"] for email in sent_emails] == [[department_lead.email]]
    assert sent_emails[0]["subject"].startswith("[Action needed] External User Activity")

    # upload_edit may not download
    assert client.get(f"/documents/{response.json()['id']}/download", headers=auth_headers(guest)).status_code == 403


def test_external_user_only_sees_their_department(client, db, manager, make_external, project, department):
    other = Department(name="Legal", project_id=project.id)
    db.add(other)
    db.commit()
    upload(client, manager, project, name="eng.pdf", department_id=department.id)
    upload(client, manager, project, name="legal.pdf", department_id=other.id)
    guest, _ = make_external("auditor@example.com", department, access_level="edit_download")

    listed = client.get(f"/documents/projects/{project.id}", headers=auth_headers(guest)).json()
    assert [d["name"] for d in listed["documents"]] == ["eng.pdf"]
