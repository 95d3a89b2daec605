"""
Request gate tests.

Verifies:
- Every protected route refuses a request without a live session
- A token only works under its own header
- Staff get 403 on admin-only capabilities
- Only owners and admins change, annotate or photograph a ticket
- Not owning a ticket and lacking a permission look the same to the caller
- Denials are written to the security log
"""

import io

import pytest

from shopfloor.models import SecurityEvent, TicketNote, TicketPhoto

from conftest import PNG_BYTES, employee_headers


PROTECTED_ROUTES = [
    ('GET', '/api/v1/tickets'),
    ('POST', '/api/v1/tickets'),
    ('GET', '/api/v1/tickets/1'),
    ('PUT', '/api/v1/tickets/1'),
    ('POST', '/api/v1/tickets/1/status'),
    ('POST', '/api/v1/tickets/1/close'),
    ('POST', '/api/v1/tickets/1/notes'),
    ('POST', '/api/v1/tickets/1/photos'),
    ('DELETE', '/api/v1/tickets/1'),
    ('GET', '/api/v1/tickets/1/history'),
    ('GET', '/api/v1/employees'),
    ('POST', '/api/v1/employees'),
    ('GET', '/api/v1/employees/me'),
    ('GET', '/api/v1/settings'),
    ('PUT', '/api/v1/settings'),
    ('GET', '/api/v1/locations'),
    ('POST', '/api/v1/locations'),
    ('POST', '/api/v1/admin/change-pin'),
    ('DELETE', '/api/v1/admin/tickets/1'),
    ('GET', '/api/v1/admin/rate-limits'),
]


class TestSessionRequired:

    @pytest.mark.parametrize("method,path", PROTECTED_ROUTES)
    def test_no_session(self, client, store, method, path):
        response = client.open(path, method=method, json={})
        assert response.status_code == 401
        assert response.get_json()["error"]["code"] == "UNAUTHORIZED"

    @pytest.mark.parametrize("method,path", PROTECTED_ROUTES)
    def test_garbage_token(self, client, store, method, path):
        headers = {'X-Admin-Session': 'garbage', 'X-Employee-Session': 'garbage'}
        response = client.open(path, method=method, json={}, headers=headers)
        assert response.status_code == 401

    def test_employee_token_in_admin_header(self, client, staff_session):
        response = client.get('/api/v1/employees', headers={'X-Admin-Session': staff_session.token})
        assert response.status_code == 401

    def test_admin_token_in_employee_header(self, client, admin_session):
        response = client.get('/api/v1/tickets', headers=employee_headers(admin_session.token))
        assert response.status_code == 401

    def test_admin_role_employee_has_no_admin_session(self, client, admin_employee_session):
        response = client.get('/api/v1/settings', headers={'X-Admin-Session': admin_employee_session.token})
        assert response.status_code == 401


class TestRolePermissions:

    @pytest.mark.parametrize("method,path,body", [
        ('POST', '/api/v1/tickets/{id}/close', {"actual_amount": "10.00"}),
        ('DELETE', '/api/v1/tickets/{id}', None),
        ('POST', '/api/v1/tickets/{id}/restore', None),
        ('POST', '/api/v1/tickets/{id}/taken-in-by', {"employee_id": "x"}),
        ('DELETE', '/api/v1/tickets/{id}/photos/1', None),
    ])
    def test_staff_owner_cannot_use_admin_capabilities(self, client, staff_headers, ticket, method, path, body):
        response = client.open(path.format(id=ticket.ticket_id), method=method, json=body, headers=staff_headers)
        assert response.status_code == 403
        assert response.get_json()["error"]["code"] == "FORBIDDEN"

    def test_admin_employee_can_close_any_ticket(self, client, admin_employee_headers, ticket):
        client.post(
            f'/api/v1/tickets/{ticket.ticket_id}/status',
            json={"status": "ready_for_pickup"},
            headers=admin_employee_headers,
        )
        response = client.post(
            f'/api/v1/tickets/{ticket.ticket_id}/close',
            json={"actual_amount": "25.50"},
            headers=admin_employee_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["ticket"]["actual_amount"] == "25.50"


class TestOwnership:

    def test_non_owner_cannot_modify(self, client, other_staff_headers, ticket):
        response = client.put(
            f'/api/v1/tickets/{ticket.ticket_id}',
            json={"requested_work": "Something else"},
            headers=other_staff_headers,
        )
        assert response.status_code == 403

    def test_non_owner_can_view_but_not_document(self, client, db_session, other_staff_headers, ticket):
        assert client.get(f'/api/v1/tickets/{ticket.ticket_id}', headers=other_staff_headers).status_code == 200
        response = client.post(
            f'/api/v1/tickets/{ticket.ticket_id}/notes',
            json={"content": "Customer called"},
            headers=other_staff_headers,
        )
        assert response.status_code == 403
        assert response.get_json()["error"]["code"] == "FORBIDDEN"

        response = client.post(
            f'/api/v1/tickets/{ticket.ticket_id}/photos',
            data={"file": (io.BytesIO(PNG_BYTES), "bench.png", "image/png")},
            content_type='multipart/form-data',
            headers=other_staff_headers,
        )
        assert response.status_code == 403
        assert db_session.query(TicketNote).count() == 0
        assert db_session.query(TicketPhoto).count() == 0

    def test_worker_becomes_owner(self, client, staff_headers, other_staff, other_staff_headers, ticket):
        response = client.post(
            f'/api/v1/tickets/{ticket.ticket_id}/worker',
            json={"employee_id": other_staff.employee_id},
            headers=staff_headers,
        )
        assert response.status_code == 200

        response = client.post(
            f'/api/v1/tickets/{ticket.ticket_id}/status',
            json={"status": "in_progress"},
            headers=other_staff_headers,
        )
        assert response.status_code == 200

    def test_not_owner_and_no_permission_look_identical(self, client, staff_headers, other_staff_headers, ticket):
        not_owner = client.post(
            f'/api/v1/tickets/{ticket.ticket_id}/status',
            json={"status": "in_progress"},
            headers=other_staff_headers,
        )
        no_permission = client.post(
            f'/api/v1/tickets/{ticket.ticket_id}/close',
            json={"actual_amount": "10.00"},
            headers=staff_headers,
        )
        assert not_owner.status_code == no_permission.status_code == 403
        assert not_owner.get_json() == no_permission.get_json()

    def test_denials_are_logged(self, client, db_session, other_staff, other_staff_headers, ticket):
        client.put(
            f'/api/v1/tickets/{ticket.ticket_id}',
            json={"requested_work": "Something else"},
            headers=other_staff_headers,
        )
        event = db_session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").one()
        assert event.employee_id == other_staff.employee_id
        assert event.reason == "NOT_OWNER"
        assert event.action == "MODIFY_OWN_TICKET"


class TestMissingTickets:

    def test_unknown_ticket(self, client, staff_headers):
        response = client.get('/api/v1/tickets/424242', headers=staff_headers)
        assert response.status_code == 404
        assert response.get_json()["error"]["code"] == "NOT_FOUND"

    def test_permission_checked_before_lookup(self, client, staff_headers):
        response = client.delete('/api/v1/tickets/424242', headers=staff_headers)
        assert response.status_code == 403
