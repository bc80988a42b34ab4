from pathlib import Path

from studystack.models.activity import Activity
from studystack.models.resource import Resource

PDF_BYTES = b"%PDF-1.4\n1 0 obj <<>> endobj\ntrailer <<>>\n%%EOF\n"


def _upload(name="notes.pdf", content=PDF_BYTES, mime="application/pdf"):
    return {"file": (name, content, mime)}


def test_create_link_resource(client, contributor, create_resource):
    data = create_resource(contributor)

    assert data["resourceType"] == "LINK"
    assert data["isExternal"] is True
    assert data["url"] == "https://example.org/linear-algebra"
    assert data["filePath"] is None
    assert data["fileName"] is None
    assert data["fileSize"] is None
    assert data["mimeType"] is None
    assert data["tags"] == ["algebra", "lectures"]
    assert data["uploader"]["name"] == "Carl"
    assert data["version"] == 1


def test_create_file_resource_from_upload(client, contributor, form, settings):
    resp = client.post(
        "/api/resources",
        data=form(resourceType="pdf", url=None, tags=None),
        files=_upload(),
        headers=contributor,
    )
    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]

    assert data["resourceType"] == "PDF"
    assert data["isExternal"] is False
    assert data["url"] is None
    assert data["fileName"] == "notes.pdf"
    assert data["fileSize"] == len(PDF_BYTES)
    assert data["filePath"].startswith(data["uploaderId"] + "/")
    stored = Path(settings.UPLOAD_DIR) / settings.STORAGE_BUCKET / data["filePath"]
    assert stored.read_bytes() == PDF_BYTES


def test_create_records_contact_details_on_uploader(client, contributor, form):
    resp = client.post(
        "/api/resources",
        data=form(phone="+44 20 7946 0000", contactEmail="Carl.Office@Example.edu"),
        headers=contributor,
    )
    assert resp.status_code == 201
    uploader = resp.json()["data"]["uploader"]
    assert uploader["phone"] == "+44 20 7946 0000"
    assert uploader["contactEmail"] == "carl.office@example.edu"


def test_link_without_url_is_rejected(client, contributor, form):
    resp = client.post("/api/resources", data=form(url=None), headers=contributor)
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["message"] == "URL is required for LINK type resources."


def test_link_with_file_fields_is_rejected(client, contributor, form):
    resp = client.post("/api/resources", data=form(filePath="carl/notes.pdf"), headers=contributor)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid fields for LINK type resource."


def test_pyq_without_year_is_rejected(client, contributor, form):
    resp = client.post(
        "/api/resources",
        data=form(resourceType="PYQ", url=None, filePath="carl/maths-2023.pdf"),
        headers=contributor,
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "Year is required for PYQ resource type."


def test_pyq_with_year_is_created(client, contributor, create_resource, own_path):
    path = own_path(contributor, "maths-2023.pdf")
    data = create_resource(
        contributor, resourceType="PYQ", url=None, filePath=path, fileName="maths-2023.pdf", year="2023"
    )
    assert data["year"] == 2023
    assert data["filePath"] == path
    assert data["isExternal"] is False
    assert data["url"] is None


def test_file_type_without_file_is_rejected(client, contributor, form):
    resp = client.post("/api/resources", data=form(resourceType="DOCX", url=None), headers=contributor)
    assert resp.status_code == 400
    assert resp.json()["message"] == "File path is required for file-based resources."


def test_missing_required_fields_are_listed(client, contributor, form):
    resp = client.post("/api/resources", data=form(title=None, subject="  "), headers=contributor)
    assert resp.status_code == 400
    body = resp.json()
    assert body["message"] == "Missing required fields."
    assert body["error"]["details"]["fields"] == ["title", "subject"]


def test_unknown_resource_type_is_rejected(client, contributor, form):
    resp = client.post("/api/resources", data=form(resourceType="VIDEO"), headers=contributor)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


def test_too_many_tags_are_rejected(client, contributor, form):
    resp = client.post("/api/resources", data=form(tags="a,b,c,d,e,f"), headers=contributor)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Maximum 5 tags allowed"


def test_disallowed_upload_type_is_rejected(client, contributor, form):
    resp = client.post(
        "/api/resources",
        data=form(resourceType="OTHER", url=None, tags=None),
        files=_upload("run.exe", b"MZ", "application/x-msdownload"),
        headers=contributor,
    )
    assert resp.status_code == 415
    assert resp.json()["error"]["code"] == "FILE_TYPE_NOT_ALLOWED"


def test_oversized_upload_is_rejected(client, contributor, form):
    resp = client.post(
        "/api/resources",
        data=form(resourceType="PDF", url=None, tags=None),
        files=_upload(content=b"0" * (1024 * 1024 + 1)),
        headers=contributor,
    )
    assert resp.status_code == 413


def test_viewer_cannot_create(client, viewer, form):
    resp = client.post("/api/resources", data=form(), headers=viewer)
    assert resp.status_code == 403
    assert resp.json()["message"] == "Forbidden: Insufficient permissions."


def test_create_requires_authentication(client, form):
    resp = client.post("/api/resources", data=form())
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "AUTH_REQUIRED"


def test_invalid_token_is_rejected(client, form):
    resp = client.post("/api/resources", data=form(), headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "AUTH_INVALID_TOKEN"


def test_list_hides_private_and_paginates(client, contributor, create_resource):
    for i in range(3):
        create_resource(contributor, title=f"Public {i}")
    create_resource(contributor, title="Hidden notes", isPrivate="true")

    first = client.get("/api/resources", params={"page": 1, "limit": 2}).json()["data"]
    assert len(first["resources"]) == 2
    assert first["pagination"] == {
        "currentPage": 1,
        "totalPages": 2,
        "totalCount": 3,
        "limit": 2,
        "hasNextPage": True,
        "hasPrevPage": False,
    }

    second = client.get("/api/resources", params={"page": 2, "limit": 2}).json()["data"]
    assert len(second["resources"]) == 1
    assert second["pagination"]["hasNextPage"] is False
    assert second["pagination"]["hasPrevPage"] is True

    titles = [r["title"] for r in first["resources"] + second["resources"]]
    assert "Hidden notes" not in titles


def test_list_filters_are_case_insensitive(client, contributor, create_resource):
    create_resource(contributor, title="Optics", subject="Physics", semester="Fall", tags="light")
    create_resource(contributor, title="Limits", subject="mathematics", tags="quantum-leap")

    by_subject = client.get("/api/resources", params={"subject": "PHYSICS"}).json()["data"]["resources"]
    assert [r["title"] for r in by_subject] == ["Optics"]

    by_semester = client.get("/api/resources", params={"semester": "fall"}).json()["data"]["resources"]
    assert [r["title"] for r in by_semester] == ["Optics"]

    by_tag = client.get("/api/resources", params={"search": "QUANTUM"}).json()["data"]["resources"]
    assert [r["title"] for r in by_tag] == ["Limits"]

    by_type = client.get("/api/resources", params={"resourceType": "link"}).json()["data"]["resources"]
    assert len(by_type) == 2


def test_list_sort_by_title(client, contributor, create_resource):
    for title in ("Zoology primer", "Anatomy atlas", "Botany basics"):
        create_resource(contributor, title=title)

    rows = client.get("/api/resources", params={"sortBy": "title"}).json()["data"]["resources"]
    assert [r["title"] for r in rows] == ["Anatomy atlas", "Botany basics", "Zoology primer"]


def test_list_rejects_unknown_sort(client):
    resp = client.get("/api/resources", params={"sortBy": "random"})
    assert resp.status_code == 400


def test_popular_tags_ignore_private_resources(client, contributor, create_resource):
    create_resource(contributor, tags="exam,revision")
    create_resource(contributor, tags="exam")
    create_resource(contributor, tags="secret", isPrivate="true")

    tags = client.get("/api/resources/tags").json()["data"]["tags"]
    assert tags == [{"name": "exam", "count": 2}, {"name": "revision", "count": 1}]


def test_get_private_resource_anonymously_is_forbidden(client, contributor, create_resource, session_factory):
    rid = create_resource(contributor, isPrivate="true")["id"]

    resp = client.get(f"/api/resources/{rid}")
    assert resp.status_code == 403
    assert resp.json()["message"] == "This resource is private"

    with session_factory() as s:
        assert s.get(Resource, rid).views == 0


def test_get_private_resource_as_non_owner_is_forbidden(client, contributor, viewer, admin, create_resource):
    rid = create_resource(contributor, isPrivate="true")["id"]

    assert client.get(f"/api/resources/{rid}", headers=viewer).status_code == 403
    assert client.get(f"/api/resources/{rid}", headers=contributor).status_code == 200
    assert client.get(f"/api/resources/{rid}", headers=admin).status_code == 200


def test_get_counts_views_and_logs_activity(client, contributor, viewer, create_resource, session_factory):
    rid = create_resource(contributor)["id"]

    assert client.get(f"/api/resources/{rid}").json()["data"]["views"] == 1
    data = client.get(f"/api/resources/{rid}", headers=viewer).json()["data"]
    assert data["views"] == 2
    assert data["isBookmarked"] is False

    with session_factory() as s:
        actions = [a.action for a in s.query(Activity).filter(Activity.resource_id == rid)]
    assert sorted(actions) == ["UPLOAD", "VIEW"]


def test_get_missing_resource(client):
    resp = client.get("/api/resources/does-not-exist")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "RESOURCE_NOT_FOUND"


def test_my_resources_include_private(client, contributor, other_contributor, create_resource):
    create_resource(contributor, title="Mine public")
    create_resource(contributor, title="Mine private", isPrivate="true")
    create_resource(other_contributor, title="Theirs")

    data = client.get("/api/resources/my/resources", headers=contributor).json()["data"]
    assert sorted(r["title"] for r in data["resources"]) == ["Mine private", "Mine public"]
    assert data["pagination"]["totalCount"] == 2


def test_owner_updates_fields_and_replaces_tags(client, contributor, create_resource):
    rid = create_resource(contributor)["id"]

    resp = client.put(
        f"/api/resources/{rid}",
        json={"title": "Linear algebra, revised", "isPrivate": True, "tags": ["Matrices"]},
        headers=contributor,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["title"] == "Linear algebra, revised"
    assert data["isPrivate"] is True
    assert data["tags"] == ["matrices"]
    assert data["version"] == 2
    assert data["description"] == "Recorded lectures covering vector spaces and eigenvalues."


def test_update_cannot_drop_pyq_year(client, contributor, create_resource, own_path):
    path = own_path(contributor, "p.pdf")
    rid = create_resource(contributor, resourceType="PYQ", url=None, filePath=path, year="2022")["id"]

    resp = client.put(f"/api/resources/{rid}", json={"year": None}, headers=contributor)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Year is required for PYQ resource type."


def test_update_url_on_file_resource_is_rejected(client, contributor, create_resource, own_path):
    path = own_path(contributor, "p.pdf")
    rid = create_resource(contributor, resourceType="PDF", url=None, filePath=path)["id"]

    resp = client.put(f"/api/resources/{rid}", json={"url": "https://example.org"}, headers=contributor)
    assert resp.status_code == 400


def test_update_by_other_contributor_is_forbidden(client, contributor, other_contributor, create_resource):
    rid = create_resource(contributor)["id"]

    resp = client.put(f"/api/resources/{rid}", json={"title": "Hijacked"}, headers=other_contributor)
    assert resp.status_code == 403
    assert resp.json()["message"] == "You can only modify your own resources"


def test_admin_can_update_any_resource(client, contributor, admin, create_resource):
    rid = create_resource(contributor)["id"]

    resp = client.put(f"/api/resources/{rid}", json={"subject": "physics"}, headers=admin)
    assert resp.status_code == 200
    assert resp.json()["data"]["subject"] == "physics"


def test_viewer_cannot_delete(client, contributor, viewer, create_resource):
    rid = create_resource(contributor)["id"]

    resp = client.delete(f"/api/resources/{rid}", headers=viewer)
    assert resp.status_code == 403
    assert client.get(f"/api/resources/{rid}").status_code == 200


def test_delete_missing_resource(client, contributor):
    assert client.delete("/api/resources/nope", headers=contributor).status_code == 404


def test_owner_delete_cascades_and_removes_file(client, contributor, viewer, form, settings, session_factory):
    created = client.post(
        "/api/resources",
        data=form(resourceType="PDF", url=None),
        files=_upload(),
        headers=contributor,
    ).json()["data"]
    rid = created["id"]
    stored = Path(settings.UPLOAD_DIR) / settings.STORAGE_BUCKET / created["filePath"]
    client.post(f"/api/resources/{rid}/bookmark", headers=viewer)

    resp = client.delete(f"/api/resources/{rid}", headers=contributor)
    assert resp.status_code == 200
    assert resp.json()["data"] == {"id": rid, "fileRemoved": True}
    assert not stored.exists()
    assert client.get(f"/api/resources/{rid}").status_code == 404

    bookmarks = client.get("/api/users/bookmarks", headers=viewer).json()["data"]
    assert bookmarks["pagination"]["totalCount"] == 0
    with session_factory() as s:
        assert s.query(Activity).filter(Activity.resource_id == rid).count() == 0


def test_delete_survives_missing_blob(client, contributor, create_resource, own_path):
    path = own_path(contributor, "never-uploaded.pdf")
    rid = create_resource(contributor, resourceType="PDF", url=None, filePath=path)["id"]

    resp = client.delete(f"/api/resources/{rid}", headers=contributor)
    assert resp.status_code == 200
    assert resp.json()["data"]["fileRemoved"] is False


def test_bookmark_toggle_round_trip(client, contributor, viewer, create_resource):
    rid = create_resource(contributor)["id"]

    first = client.post(f"/api/resources/{rid}/bookmark", headers=viewer).json()["data"]
    assert first == {"bookmarked": True, "bookmarks": 1}
    assert client.get(f"/api/resources/{rid}", headers=viewer).json()["data"]["isBookmarked"] is True

    second = client.post(f"/api/resources/{rid}/bookmark", headers=viewer).json()["data"]
    assert second == {"bookmarked": False, "bookmarks": 0}


def test_bookmark_private_resource_of_other_user_is_forbidden(client, contributor, viewer, create_resource):
    rid = create_resource(contributor, isPrivate="true")["id"]
    assert client.post(f"/api/resources/{rid}/bookmark", headers=viewer).status_code == 403


def test_download_link_resource_returns_external_url(client, contributor, viewer, create_resource):
    rid = create_resource(contributor)["id"]

    resp = client.post(f"/api/resources/{rid}/download", headers=viewer)
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["downloadUrl"] == "https://example.org/linear-algebra"
    assert data["isExternal"] is True
    assert data["downloads"] == 1


def test_download_file_resource_returns_signed_url(client, contributor, viewer, form):
    rid = client.post(
        "/api/resources",
        data=form(resourceType="PDF", url=None),
        files=_upload(),
        headers=contributor,
    ).json()["data"]["id"]

    data = client.post(f"/api/resources/{rid}/download", headers=viewer).json()["data"]
    assert "/api/files/signed?" in data["downloadUrl"]
    assert data["fileName"] == "notes.pdf"

    fetched = client.get(data["downloadUrl"])
    assert fetched.status_code == 200
    assert fetched.content == PDF_BYTES


def test_signed_file_rejects_tampered_signature(client):
    resp = client.get("/api/files/signed", params={"path": "carl/x.pdf", "exp": 9999999999, "sig": "0" * 64})
    assert resp.status_code == 401


def test_download_private_resource_of_other_user_is_forbidden(client, contributor, viewer, create_resource):
    rid = create_resource(contributor, isPrivate="true")["id"]

    assert client.post(f"/api/resources/{rid}/download", headers=viewer).status_code == 403
    assert client.post(f"/api/resources/{rid}/download", headers=contributor).status_code == 200


def test_download_requires_authentication(client, contributor, create_resource):
    rid = create_resource(contributor)["id"]
    assert client.post(f"/api/resources/{rid}/download").status_code == 401


def test_responses_carry_request_id(client):
    resp = client.get("/api/resources", headers={"X-Request-ID": "trace-12345678"})
    assert resp.headers["X-Request-ID"] == "trace-12345678"
    assert resp.json()["request_id"] == "trace-12345678"


def test_file_path_outside_own_folder_is_rejected(client, contributor, other_contributor, form, settings):
    victim = client.post(
        "/api/resources",
        data=form(resourceType="PDF", url=None),
        files=_upload(),
        headers=contributor,
    ).json()["data"]
    stored = Path(settings.UPLOAD_DIR) / settings.STORAGE_BUCKET / victim["filePath"]

    resp = client.post(
        "/api/resources",
        data=form(resourceType="PDF", url=None, filePath=victim["filePath"]),
        headers=other_contributor,
    )
    assert resp.status_code == 400
    assert resp.json()["message"] == "File path must be inside your own upload folder."
    assert stored.read_bytes() == PDF_BYTES


def test_file_path_with_traversal_is_rejected(client, contributor, form, own_path):
    path = own_path(contributor, "../someone-else/notes.pdf")
    resp = client.post("/api/resources", data=form(resourceType="PDF", url=None, filePath=path), headers=contributor)
    assert resp.status_code == 400


def test_delete_keeps_blob_still_used_by_another_resource(client, contributor, form, settings):
    original = client.post(
        "/api/resources",
        data=form(resourceType="PDF", url=None),
        files=_upload(),
        headers=contributor,
    ).json()["data"]
    stored = Path(settings.UPLOAD_DIR) / settings.STORAGE_BUCKET / original["filePath"]
    copy = client.post(
        "/api/resources",
        data=form(resourceType="PDF", url=None, title="Same notes, second listing", filePath=original["filePath"]),
        headers=contributor,
    ).json()["data"]

    resp = client.delete(f"/api/resources/{copy['id']}", headers=contributor)
    assert resp.status_code == 200
    assert resp.json()["data"]["fileRemoved"] is None
    assert stored.read_bytes() == PDF_BYTES


def test_list_rejects_out_of_range_paging(client, contributor, create_resource):
    create_resource(contributor)

    assert client.get("/api/resources", params={"limit": 60}).status_code == 400
    assert client.get("/api/resources", params={"limit": 0}).status_code == 400
    assert client.get("/api/resources", params={"page": 0}).status_code == 400
    assert client.get("/api/resources/my/resources", params={"limit": 51}, headers=contributor).status_code == 400

    page = client.get("/api/resources", params={"limit": 50}).json()["data"]["pagination"]
    assert page["limit"] == 50
    assert page["hasNextPage"] is False


def test_over_long_title_is_rejected(client, contributor, form):
    resp = client.post("/api/resources", data=form(title="x" * 201), headers=contributor)
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
    assert resp.json()["error"]["details"]["errors"][0]["field"] == "title"


def test_invalid_contact_email_is_rejected(client, contributor, form):
    resp = client.post("/api/resources", data=form(contactEmail="carl@"), headers=contributor)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Invalid contact email"


def test_search_treats_wildcards_literally(client, contributor, create_resource):
    create_resource(contributor, title="Getting 100% on mechanics", tags=None)
    create_resource(contributor, title="Mechanics in 1000 problems", tags=None)
    create_resource(contributor, title="snake_case naming", tags=None)
    create_resource(contributor, title="snakeycase idioms", tags=None)

    percent = client.get("/api/resources", params={"search": "0%"}).json()["data"]["resources"]
    assert [r["title"] for r in percent] == ["Getting 100% on mechanics"]

    underscore = client.get("/api/resources", params={"search": "e_c"}).json()["data"]["resources"]
    assert [r["title"] for r in underscore] == ["snake_case naming"]
