from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

import main
from tests.helpers.asserts import api_call, assert_error

CSV_HEADER = "course_id,title,description,category,instructor,duration,price,rating,skill_level\n"


class TestCourseEndpoints:
    def test_create_requires_admin(self, client, course_data):
        response = client.post("/courses/", json=course_data("CS101"))
        assert_error(response, 401, "UNAUTHORIZED")

    def test_create_rejected_for_non_admin_role(self, client, admin_factory, course_data):
        viewer = admin_factory(email="viewer@test.com", role="viewer")
        login = client.post("/auth/login", json={"email": viewer.email, "password": "testpass123"})
        token = login.json()["data"]["token"]["access_token"]

        response = client.post("/courses/", json=course_data("CS101"), headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 403

    def test_create_and_read_course(self, client, admin_headers, course_data):
        response = api_call(client, "POST", "/courses/", headers=admin_headers, json=course_data("CS101"))
        assert response.status_code == 201
        assert response.json()["data"]["course_id"] == "CS101"

        first = client.get("/courses/CS101")
        assert first.status_code == 200
        assert first.headers["X-Cache"] == "MISS"
        assert first.json()["data"]["cached"] is False

        second = client.get("/courses/CS101")
        assert second.headers["X-Cache"] == "HIT"
        assert second.json()["data"]["cached"] is True
        assert second.json()["data"]["rating"] == 4.2

    def test_read_missing_course(self, client):
        error = assert_error(client.get("/courses/NOPE"), 404, "NOT_FOUND")
        assert "NOPE" in error["message"]

    def test_create_duplicate_course(self, client, admin_headers, course_data, course_factory):
        course_factory("CS101")
        response = client.post("/courses/", json=course_data("CS101"), headers=admin_headers)
        error = assert_error(response, 409, "CONFLICT")
        assert error["details"] == {"course_id": "CS101"}

    def test_create_with_reserved_course_id(self, client, admin_headers, course_data):
        response = client.post("/courses/", json=course_data("stats"), headers=admin_headers)
        fields = [e["field"] for e in assert_error(response, 422, "VALIDATION_ERROR")["field_errors"]]
        assert fields == ["course_id"]

    def test_create_with_invalid_rating(self, client, admin_headers, course_data):
        response = client.post("/courses/", json=course_data("CS101", rating=5.1), headers=admin_headers)
        fields = [e["field"] for e in assert_error(response, 422, "VALIDATION_ERROR")["field_errors"]]
        assert "rating" in fields

    def test_update_invalidates_cached_course(self, client, admin_headers, course_factory):
        course_factory("CS101", rating=4.2)
        client.get("/courses/CS101")
        assert client.get("/courses/CS101").headers["X-Cache"] == "HIT"

        api_call(client, "PUT", "/courses/CS101", headers=admin_headers, json={"rating": 3.0})

        response = client.get("/courses/CS101")
        assert response.headers["X-Cache"] == "MISS"
        assert response.json()["data"]["rating"] == 3.0

    def test_update_missing_course(self, client, admin_headers):
        response = client.put("/courses/NOPE", json={"rating": 3.0}, headers=admin_headers)
        assert response.status_code == 404

    def test_delete_course(self, client, admin_headers, course_factory):
        course_factory("CS101")
        client.get("/courses/CS101")

        api_call(client, "DELETE", "/courses/CS101", headers=admin_headers)

        assert client.get("/courses/CS101").status_code == 404
        assert client.delete("/courses/CS101", headers=admin_headers).status_code == 404

    def test_search_courses(self, client, course_factory):
        course_factory("CS101")
        course_factory("AR101", title="Renaissance Art", description="Painting and sculpture in Italy.", category="Art History")

        response = api_call(client, "GET", "/courses/search", params={"q": "computer", "category": "all"})
        assert response.status_code == 200
        data = response.json()["data"]
        assert [c["course_id"] for c in data["courses"]] == ["CS101"]
        assert data["pagination"]["total_courses"] == 1
        assert data["search_query"]["category"] is None
        assert response.headers["X-Cache"] == "MISS"

        again = client.get("/courses/search", params={"category": "all", "q": "Computer"})
        assert again.headers["X-Cache"] == "HIT"

    def test_search_with_invalid_min_rating(self, client):
        assert_error(client.get("/courses/search", params={"min_rating": 9}), 422, "VALIDATION_ERROR")

    def test_list_courses(self, client, course_factory):
        for i in range(3):
            course_factory(f"CS10{i}", category="Computer Science" if i else "Mathematics")

        response = client.get("/courses/", params={"category": "Computer Science", "limit": 1})
        data = response.json()["data"]
        assert response.status_code == 200
        assert len(data["courses"]) == 1
        assert data["pagination"]["total_courses"] == 2
        assert data["filters"] == {"category": "Computer Science"}

    def test_list_rejects_bad_page(self, client):
        response = client.get("/courses/", params={"page": 0})
        assert response.status_code == 422
        assert response.json()["error"]["field_errors"][0]["field"] == "page"

    def test_course_stats(self, client, course_factory):
        course_factory("CS101", rating=4.0)
        course_factory("CS102", rating=5.0, skill_level="advanced")

        response = client.get("/courses/stats")
        data = response.json()["data"]
        assert data["total_courses"] == 2
        assert data["average_rating"] == 4.5
        assert data["skill_level_count"] == {"beginner": 1, "advanced": 1}
        assert client.get("/courses/stats").headers["X-Cache"] == "HIT"

    def test_store_failure_is_reported_as_server_error(self, client, monkeypatch):
        def broken(db, course_id):
            raise OperationalError("SELECT", {}, Exception("database is down"))
        monkeypatch.setattr("app.crud.course.course.get_by_course_id", broken)

        with TestClient(main.app, raise_server_exceptions=False) as failing_client:
            response = failing_client.get("/courses/CS101")
        assert response.status_code == 500
        assert response.json()["error"]["code"] == "INTERNAL_SERVER_ERROR"


class TestCourseUpload:
    def _upload(self, client, headers, content, filename="courses.csv", content_type="text/csv"):
        return client.post("/courses/upload", headers=headers, files={"file": (filename, content, content_type)})

    def test_upload_courses(self, client, admin_headers, course_factory):
        course_factory("CS101")
        client.get("/courses/stats")
        content = (
            CSV_HEADER
            + "CS101,Intro to CS,Fundamentals of programming.,Computer Science,Ada,12 weeks,$499,4.5,beginner\n"
            + "CS102,Data Structures,Lists trees and graphs explained.,Computer Science,Alan,10 weeks,$399,4,intermediate\n"
            + "CS103,Algorithms,Sorting searching and complexity.,Computer Science,Don,8 weeks,$299,6,advanced\n"
        ).encode()

        response = self._upload(client, admin_headers, content)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["summary"] == {
            "total_rows": 3,
            "valid_courses": 2,
            "inserted_courses": 1,
            "duplicate_courses": 1,
            "error_rows": 1,
        }
        assert data["errors"][0]["row"] == 4
        assert data["duplicates"][0]["course_id"] == "CS101"

        stats = client.get("/courses/stats")
        assert stats.headers["X-Cache"] == "MISS"
        assert stats.json()["data"]["total_courses"] == 2

    def test_upload_requires_admin(self, client):
        response = self._upload(client, {}, CSV_HEADER.encode())
        assert response.status_code == 401

    def test_upload_rejects_non_csv(self, client, admin_headers):
        response = self._upload(client, admin_headers, b"{}", filename="courses.json", content_type="application/json")
        assert response.status_code == 400

    def test_upload_rejects_file_without_rows(self, client, admin_headers):
        response = self._upload(client, admin_headers, CSV_HEADER.encode())
        assert response.status_code == 400

    def test_upload_rejects_missing_columns(self, client, admin_headers):
        response = self._upload(client, admin_headers, b"course_id,title\nCS101,Intro\n")
        assert "description" in assert_error(response, 400, "BAD_REQUEST")["message"]

    def test_upload_rejects_oversized_file(self, client, admin_headers, monkeypatch):
        monkeypatch.setattr("app.endpoints.course.settings.MAX_UPLOAD_SIZE", 10)
        response = self._upload(client, admin_headers, (CSV_HEADER * 2).encode())
        assert response.status_code == 413
