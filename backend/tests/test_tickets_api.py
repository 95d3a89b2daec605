"""
Ticket API tests.

Verifies:
- Intake assigns sequential friendly codes and records the first history row
- Field edits write one history row per changed field
- Closed tickets are read-only for staff
- Rush, notes, worker and intake reassignment
- Soft delete hides a ticket until it is restored
- Hard delete is refused once a ticket has history
"""

from shopfloor.models import TicketFieldHistory

from conftest import ticket_payload


def _create(client, headers, location, **overrides):
    return client.post('/api/v1/tickets', json=ticket_payload(location, **overrides), headers=headers)


class TestIntake:

    def test_create(self, client, staff, staff_headers, location):
        response = _create(client, staff_headers, location, quote_amount="80", is_rush=True)
        assert response.status_code == 201
        ticket = response.get_json()["ticket"]
        assert ticket["friendly_code"] == "JR-0001"
        assert ticket["status"] == "intake"
        assert ticket["taken_in_by"] == staff.employee_id
        assert ticket["worked_by"] is None
        assert ticket["quote_amount"] == "80.00"
        assert ticket["is_rush"] is True
        assert ticket["customer"]["name"] == "Casey Customer"

    def test_codes_are_sequential(self, client, staff_headers, location):
        first = _create(client, staff_headers, location).get_json()["ticket"]
        second = _create(client, staff_headers, location).get_json()["ticket"]
        assert (first["friendly_code"], second["friendly_code"]) == ("JR-0001", "JR-0002")

    def test_existing_customer(self, client, staff_headers, location):
        first = _create(client, staff_headers, location).get_json()["ticket"]
        payload = ticket_payload(location, customer_id=first["customer_id"])
        del payload["customer"]
        response = client.post('/api/v1/tickets', json=payload, headers=staff_headers)
        assert response.status_code == 201
        assert response.get_json()["ticket"]["customer_id"] == first["customer_id"]

    def test_missing_field(self, client, staff_headers, location):
        payload = ticket_payload(location)
        del payload["requested_work"]
        response = client.post('/api/v1/tickets', json=payload, headers=staff_headers)
        assert response.status_code == 400
        assert "requested_work" in response.get_json()["error"]["message"]

    def test_negative_quote(self, client, staff_headers, location):
        response = _create(client, staff_headers, location, quote_amount="-1")
        assert response.status_code == 400

    def test_inactive_location(self, client, staff_headers, location, admin_headers):
        client.put(f'/api/v1/locations/{location.location_id}', json={"is_active": False}, headers=admin_headers)
        response = _create(client, staff_headers, location)
        assert response.status_code == 400

    def test_intake_history(self, client, staff_headers, ticket):
        response = client.get(f'/api/v1/tickets/{ticket.ticket_id}/history', headers=staff_headers)
        assert response.status_code == 200
        history = response.get_json()["status_history"]
        assert [(h["from_status"], h["to_status"]) for h in history] == [(None, "intake")]


class TestListing:

    def test_rush_first(self, client, staff_headers, location):
        _create(client, staff_headers, location)
        rush = _create(client, staff_headers, location, is_rush=True).get_json()["ticket"]

        data = client.get('/api/v1/tickets', headers=staff_headers).get_json()
        assert data["total"] == 2
        assert data["tickets"][0]["ticket_id"] == rush["ticket_id"]

    def test_filters(self, client, staff_headers, other_staff_headers, location):
        _create(client, staff_headers, location)
        _create(client, other_staff_headers, location, customer={"name": "Robin Ring", "phone": "555-0199"})

        mine = client.get('/api/v1/tickets?mine=true', headers=other_staff_headers).get_json()
        assert mine["total"] == 1

        found = client.get('/api/v1/tickets?q=robin', headers=staff_headers).get_json()
        assert [t["customer"]["name"] for t in found["tickets"]] == ["Robin Ring"]

        assert client.get('/api/v1/tickets?status=closed', headers=staff_headers).get_json()["total"] == 0
        assert client.get('/api/v1/tickets?status=bogus', headers=staff_headers).status_code == 400

    def test_paging(self, client, staff_headers, location):
        for _ in range(3):
            _create(client, staff_headers, location)
        data = client.get('/api/v1/tickets?limit=2&offset=2', headers=staff_headers).get_json()
        assert data["count"] == 1
        assert data["total"] == 3
        assert data["limit"] == 2

    def test_limit_is_clamped(self, client, staff_headers, location):
        for _ in range(3):
            _create(client, staff_headers, location)

        data = client.get('/api/v1/tickets?limit=-1', headers=staff_headers).get_json()
        assert data["limit"] == 1
        assert data["count"] == 1

        data = client.get('/api/v1/tickets?limit=5000', headers=staff_headers).get_json()
        assert data["limit"] == 200
        assert data["count"] == 3


class TestEdits:

    def test_one_history_row_per_changed_field(self, client, db_session, staff_headers, ticket):
        response = client.put(
            f'/api/v1/tickets/{ticket.ticket_id}',
            json={"requested_work": "Replace battery and gasket", "item_type": "Watch", "quote_amount": "35.00"},
            headers=staff_headers,
        )
        assert response.status_code == 200

        rows = db_session.query(TicketFieldHistory).filter_by(ticket_id=ticket.ticket_id).all()
        assert sorted(r.field_name for r in rows) == ["quote_amount", "requested_work"]

    def test_status_is_not_writable_here(self, client, staff_headers, ticket):
        client.put(f'/api/v1/tickets/{ticket.ticket_id}', json={"status": "closed"}, headers=staff_headers)
        data = client.get(f'/api/v1/tickets/{ticket.ticket_id}', headers=staff_headers).get_json()
        assert data["ticket"]["status"] == "intake"

    def test_closed_ticket_is_read_only_for_staff(self, client, staff_headers, admin_employee_headers, ticket):
        path = f'/api/v1/tickets/{ticket.ticket_id}'
        client.post(f'{path}/status', json={"status": "ready_for_pickup"}, headers=staff_headers)
        assert client.post(f'{path}/close', json={"actual_amount": 40}, headers=admin_employee_headers).status_code == 200

        response = client.put(path, json={"condition_notes": "Now scratched more"}, headers=staff_headers)
        assert response.status_code == 409
        assert response.get_json()["error"]["code"] == "CONFLICT"

        response = client.put(path, json={"condition_notes": "Corrected"}, headers=admin_employee_headers)
        assert response.status_code == 200

    def test_status_moves(self, client, staff_headers, ticket):
        path = f'/api/v1/tickets/{ticket.ticket_id}/status'
        assert client.post(path, json={"status": "in_progress"}, headers=staff_headers).status_code == 200
        assert client.post(path, json={"status": "in_progress"}, headers=staff_headers).status_code == 409
        assert client.post(path, json={"status": "closed"}, headers=staff_headers).status_code == 409
        assert client.post(path, json={}, headers=staff_headers).status_code == 400


class TestRushNotesAndAssignment:

    def test_rush(self, client, db_session, staff_headers, ticket):
        path = f'/api/v1/tickets/{ticket.ticket_id}/rush'
        response = client.post(path, json={"is_rush": True}, headers=staff_headers)
        assert response.get_json()["ticket"]["is_rush"] is True
        client.post(path, json={"is_rush": True}, headers=staff_headers)

        rows = db_session.query(TicketFieldHistory).filter_by(ticket_id=ticket.ticket_id, field_name="is_rush").all()
        assert [(r.old_value, r.new_value) for r in rows] == [("false", "true")]

    def test_notes(self, client, staff, staff_headers, ticket):
        response = client.post(
            f'/api/v1/tickets/{ticket.ticket_id}/notes',
            json={"content": "Strap also worn"},
            headers=staff_headers,
        )
        assert response.status_code == 201
        assert response.get_json()["note"]["created_by"] == staff.employee_id

        assert client.post(
            f'/api/v1/tickets/{ticket.ticket_id}/notes', json={"content": "  "}, headers=staff_headers
        ).status_code == 400

    def test_worker_assign_and_clear(self, client, staff_headers, other_staff, ticket):
        path = f'/api/v1/tickets/{ticket.ticket_id}/worker'
        response = client.post(path, json={"employee_id": other_staff.employee_id}, headers=staff_headers)
        assert response.get_json()["ticket"]["worked_by"] == other_staff.employee_id

        response = client.post(path, json={"employee_id": None}, headers=staff_headers)
        assert response.get_json()["ticket"]["worked_by"] is None

    def test_worker_must_be_active(self, client, staff_headers, admin_headers, other_staff, ticket):
        client.post(f'/api/v1/employees/{other_staff.employee_id}/deactivate', headers=admin_headers)
        response = client.post(
            f'/api/v1/tickets/{ticket.ticket_id}/worker',
            json={"employee_id": other_staff.employee_id},
            headers=staff_headers,
        )
        assert response.status_code == 400

    def test_reassign_intake(self, client, admin_employee_headers, other_staff, ticket):
        response = client.post(
            f'/api/v1/tickets/{ticket.ticket_id}/taken-in-by',
            json={"employee_id": other_staff.employee_id},
            headers=admin_employee_headers,
        )
        assert response.status_code == 200
        assert response.get_json()["ticket"]["taken_in_by"] == other_staff.employee_id


class TestDeletion:

    def test_soft_delete_and_restore(self, client, staff_headers, admin_employee_headers, ticket):
        path = f'/api/v1/tickets/{ticket.ticket_id}'
        response = client.delete(path, headers=admin_employee_headers)
        assert response.status_code == 200
        assert response.get_json()["ticket"]["deleted_at"] is not None

        assert client.get(path, headers=staff_headers).status_code == 404
        assert client.get('/api/v1/tickets', headers=staff_headers).get_json()["total"] == 0

        response = client.post(f'{path}/restore', headers=admin_employee_headers)
        assert response.status_code == 200
        assert client.get(path, headers=staff_headers).status_code == 200

    def test_hard_delete_refused_with_history(self, client, admin_headers, ticket):
        response = client.delete(f'/api/v1/admin/tickets/{ticket.ticket_id}', headers=admin_headers)
        assert response.status_code == 409
        assert response.get_json()["error"]["code"] == "CONFLICT"

    def test_hard_delete_unknown(self, client, admin_headers):
        assert client.delete('/api/v1/admin/tickets/424242', headers=admin_headers).status_code == 404
