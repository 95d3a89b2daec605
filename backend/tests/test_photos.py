"""
Photo gate tests.

Verifies:
- Type detection from magic bytes, not from the declared type
- Declared and detected types must agree
- Empty, truncated and oversized bodies are refused
- The per-ticket limit comes from store settings and holds under concurrent uploads
- Upload, download and delete through the API
"""

import io
import os

import pytest

from shopfloor.errors import Reason, Rejection
from shopfloor.extensions import db
from shopfloor.models import Ticket, TicketPhoto
from shopfloor.services import employee_service, photo_service, session_service, settings_service, ticket_service
from shopfloor.services.photo_service import MAX_PHOTO_BYTES, detect_image_type, validate_photo

from conftest import ADMIN_PIN, JPEG_BYTES, PNG_BYTES, STAFF_PIN, run_concurrently, ticket_payload


WEBP_BYTES = b"RIFF\x24\x00\x00\x00WEBPVP8 " + b"\x00" * 24


class TestDetection:

    @pytest.mark.parametrize("data,expected", [
        (JPEG_BYTES, "image/jpeg"),
        (PNG_BYTES, "image/png"),
        (WEBP_BYTES, "image/webp"),
        (b"GIF89a" + b"\x00" * 24, None),
        (b"RIFF\x24\x00\x00\x00WAVEfmt " + b"\x00" * 24, None),
        (b"\xff\xd8\xff", None),
    ])
    def test_detect(self, data, expected):
        assert detect_image_type(data) == expected


class TestValidation:

    def test_valid(self):
        assert validate_photo(PNG_BYTES, "image/png") == "image/png"

    def test_declared_type_parameters_are_ignored(self):
        assert validate_photo(JPEG_BYTES, "image/jpeg; charset=binary") == "image/jpeg"

    def test_mismatch(self):
        rejection = validate_photo(PNG_BYTES, "image/jpeg")
        assert rejection.reason is Reason.VALIDATION_FAILED

    def test_empty(self):
        assert validate_photo(b"", "image/png").reason is Reason.VALIDATION_FAILED

    def test_too_large(self):
        data = PNG_BYTES + b"\x00" * MAX_PHOTO_BYTES
        assert "maximum size" in validate_photo(data, "image/png").detail


class TestStorage:

    def test_stored_under_ticket_directory(self, app, db_session, staff_session, ticket):
        photo = photo_service.add_photo(staff_session.principal, ticket, PNG_BYTES, "image/png")
        assert not isinstance(photo, Rejection)
        assert photo.storage_key.startswith(f"tickets/{ticket.ticket_id}/")
        assert photo.storage_key.endswith(".png")

        path = photo_service.photo_path(photo)
        with open(path, "rb") as fh:
            assert fh.read() == PNG_BYTES

        assert photo_service.delete_photo(ticket, photo.photo_id) is None
        assert not os.path.exists(path)

    def test_limit_from_settings(self, db_session, staff_session, ticket):
        settings_service.update_settings({"max_photos_per_ticket": 1})
        principal = staff_session.principal
        first = photo_service.add_photo(principal, ticket, PNG_BYTES, "image/png")
        assert not isinstance(first, Rejection)

        folder = os.path.dirname(photo_service.photo_path(first))
        stored = set(os.listdir(folder))

        rejection = photo_service.add_photo(principal, ticket, JPEG_BYTES, "image/jpeg")
        assert rejection.reason is Reason.PHOTO_LIMIT
        assert db_session.query(TicketPhoto).count() == 1
        assert set(os.listdir(folder)) == stored

    def test_concurrent_uploads_respect_limit(self, file_app):
        with file_app.app_context():
            settings_service.set_admin_pin(ADMIN_PIN, complete_setup=True)
            settings_service.update_settings({"max_photos_per_ticket": 2})
            location = settings_service.create_location({"name": "Shelf A"})
            staff = employee_service.create_employee("Sam Staff", STAFF_PIN, "staff")
            principal = session_service.issue_employee_session(staff).principal
            ticket_id = ticket_service.create_ticket(principal, ticket_payload(location)).ticket_id

        def upload():
            ticket = db.session.get(Ticket, ticket_id)
            return photo_service.add_photo(principal, ticket, PNG_BYTES, "image/png")

        results = run_concurrently(file_app, lambda: not isinstance(upload(), Rejection), 6)

        assert results.count(True) == 2
        with file_app.app_context():
            photos = db.session.query(TicketPhoto).filter_by(ticket_id=ticket_id).all()
            assert len(photos) == 2
            stored = os.listdir(os.path.dirname(photo_service.photo_path(photos[0])))
            assert sorted(stored) == sorted(os.path.basename(p.storage_key) for p in photos)

    def test_delete_unknown_photo(self, db_session, staff_session, ticket):
        photo = photo_service.add_photo(staff_session.principal, ticket, PNG_BYTES, "image/png")
        assert photo_service.delete_photo(ticket, photo.photo_id + 1).reason is Reason.ENTITY_NOT_FOUND


def _upload(client, headers, ticket_id, data, filename, content_type):
    return client.post(
        f'/api/v1/tickets/{ticket_id}/photos',
        data={"file": (io.BytesIO(data), filename, content_type)},
        content_type='multipart/form-data',
        headers=headers,
    )


class TestPhotoApi:

    def test_upload_and_download(self, client, staff_headers, ticket):
        response = _upload(client, staff_headers, ticket.ticket_id, PNG_BYTES, "bench.png", "image/png")
        assert response.status_code == 201
        photo = response.get_json()["photo"]
        assert photo["content_type"] == "image/png"
        assert photo["size_bytes"] == len(PNG_BYTES)

        download = client.get(f'/api/v1/tickets/{ticket.ticket_id}/photos/{photo["photo_id"]}', headers=staff_headers)
        assert download.status_code == 200
        assert download.data == PNG_BYTES
        assert download.mimetype == "image/png"
        download.close()

        detail = client.get(f'/api/v1/tickets/{ticket.ticket_id}', headers=staff_headers).get_json()
        assert [p["photo_id"] for p in detail["ticket"]["photos"]] == [photo["photo_id"]]

    def test_non_owner_upload_is_forbidden(self, client, db_session, other_staff_headers, ticket):
        response = _upload(client, other_staff_headers, ticket.ticket_id, PNG_BYTES, "bench.png", "image/png")
        assert response.status_code == 403
        assert db_session.query(TicketPhoto).count() == 0

    def test_worker_may_upload(self, client, staff_headers, other_staff, other_staff_headers, ticket):
        client.post(
            f'/api/v1/tickets/{ticket.ticket_id}/worker',
            json={"employee_id": other_staff.employee_id},
            headers=staff_headers,
        )
        response = _upload(client, other_staff_headers, ticket.ticket_id, JPEG_BYTES, "a.jpg", "image/jpeg")
        assert response.status_code == 201
        assert response.get_json()["photo"]["uploaded_by"] == other_staff.employee_id

    def test_disguised_file_is_refused(self, client, staff_headers, ticket):
        response = _upload(client, staff_headers, ticket.ticket_id, b"#!/bin/sh\necho hi\n", "cat.png", "image/png")
        assert response.status_code == 400

    def test_missing_file_part(self, client, staff_headers, ticket):
        response = client.post(
            f'/api/v1/tickets/{ticket.ticket_id}/photos',
            data={},
            content_type='multipart/form-data',
            headers=staff_headers,
        )
        assert response.status_code == 400

    def test_limit_is_422(self, client, db_session, staff_headers, ticket):
        settings_service.update_settings({"max_photos_per_ticket": 0})
        response = _upload(client, staff_headers, ticket.ticket_id, PNG_BYTES, "a.png", "image/png")
        assert response.status_code == 422
        assert response.get_json()["error"]["code"] == "PHOTO_LIMIT"

    def test_delete_needs_admin(self, client, staff_headers, admin_employee_headers, ticket):
        photo = _upload(client, staff_headers, ticket.ticket_id, JPEG_BYTES, "a.jpg", "image/jpeg").get_json()["photo"]
        path = f'/api/v1/tickets/{ticket.ticket_id}/photos/{photo["photo_id"]}'

        assert client.delete(path, headers=staff_headers).status_code == 403
        assert client.delete(path, headers=admin_employee_headers).status_code == 200
        assert client.get(path, headers=staff_headers).status_code == 404
