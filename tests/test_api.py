"""Tests for the HTTP API.

Tests cover:
- Full citizen flow: submit, verify, status, pay, publish, download
- Citizen token scoping and verification code errors
- Webhook signature checks and duplicate deliveries
- Operator listing, upload and token regeneration with jurisdiction checks
- Operator login and logout, and admin-only account management
- Error body format, X-Request-ID and validation errors
- Health endpoints
"""

import json
import uuid
from decimal import Decimal

import httpx
import pytest

from rdam.db.models.base import RequestState
from rdam.services.payments import SIGNATURE_HEADER, compute_signature
from tests.conftest import ADMIN_TOKEN, OPERATOR_PASSWORD, ROSARIO_TOKEN, SANTA_FE_TOKEN
from tests.fakes import T0, make_record, published_record

API = "/api/v1"
WEBHOOK_SECRET = "dev-secret"


def _bearer(token):
    return {"Authorization": f"Bearer {token}"}


def _webhook_body(order_ref, status_code="0", amount="1500.00"):
    return json.dumps(
        {
            "TransaccionComercioId": order_ref,
            "EstadoId": status_code,
            "Monto": amount,
            "TransaccionPlataformaId": "PP-1",
        }
    ).encode()


async def _post_webhook(client, body, secret=WEBHOOK_SECRET):
    return await client.post(
        f"{API}/webhooks/pluspagos",
        content=body,
        headers={
            "Content-Type": "application/json",
            SIGNATURE_HEADER: compute_signature(body, secret),
        },
    )


async def _submit(client, notifier, jurisdiction_id=1):
    """Submit a request and return (request_id, tramite_number, code)."""
    response = await client.post(
        f"{API}/solicitudes",
        json={
            "subject_id": "20123456789",
            "email": "ciudadano@example.com",
            "jurisdiction_id": jurisdiction_id,
        },
    )
    assert response.status_code == 201
    data = response.json()
    kind, tramite_number, code = notifier.calls[-1]
    assert kind == "verification_code"
    assert tramite_number == data["tramite_number"]
    return data["request_id"], data["tramite_number"], code


async def _verify(client, notifier, jurisdiction_id=1):
    """Submit and verify a request; return (request_id, tramite_number, token)."""
    request_id, tramite_number, code = await _submit(client, notifier, jurisdiction_id)
    response = await client.post(f"{API}/solicitudes/{request_id}/validar", json={"code": code})
    assert response.status_code == 200
    return request_id, tramite_number, response.json()["access_token"]


def _paid_record(repo, jurisdiction_id=1):
    record = make_record(
        state=RequestState.PAID,
        version=2,
        jurisdiction_id=jurisdiction_id,
        payment_order_ref="SIM-00000000000000AA",
        payment_amount=Decimal("1500.00"),
        paid_at=T0,
    )
    repo.add(record)
    return record


def _pdf_upload(pdf_bytes):
    return {"file": ("certificado.pdf", pdf_bytes, "application/pdf")}


# ---------------------------------------------------------------------------
# Citizen flow
# ---------------------------------------------------------------------------
class TestCitizenFlow:
    """End-to-end tests for the citizen journey."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, api_client, notifier, pdf_bytes):
        """Test a request from submission to certificate download."""
        request_id, tramite_number, token = await _verify(api_client, notifier)
        assert tramite_number == "RDAM-20260302-0001"

        status_response = await api_client.get(
            f"{API}/solicitudes/{tramite_number}", headers=_bearer(token)
        )
        assert status_response.status_code == 200
        assert status_response.json()["state"] == "pending"
        assert status_response.json()["jurisdiction"] == "Santa Fe"
        assert status_response.json()["download_link"] is None

        order = await api_client.post(
            f"{API}/solicitudes/{request_id}/pago", headers=_bearer(token)
        )
        assert order.status_code == 200
        order_data = order.json()
        assert order_data["order_ref"].startswith("SIM-")
        assert order_data["amount_cents"] == 150000
        assert order_data["simulated"] is True

        ack = await _post_webhook(api_client, _webhook_body(order_data["order_ref"]))
        assert ack.status_code == 200
        assert ack.json() == {"result": "applied"}

        published = await api_client.post(
            f"{API}/interno/solicitudes/{request_id}/certificado",
            files=_pdf_upload(pdf_bytes),
            headers=_bearer(SANTA_FE_TOKEN),
        )
        assert published.status_code == 200
        assert published.json()["state"] == "published"
        download_url = published.json()["download_url"]
        assert download_url.startswith("http://localhost:8000/api/v1/certificados/")

        download = await api_client.get(httpx.URL(download_url).path)
        assert download.status_code == 200
        assert download.content == pdf_bytes
        assert download.headers["content-type"] == "application/pdf"
        assert f"certificado-{tramite_number}.pdf" in download.headers["content-disposition"]

        final = await api_client.get(f"{API}/solicitudes/{tramite_number}", headers=_bearer(token))
        assert final.json()["state"] == "published"
        assert final.json()["download_link"] == download_url

        assert notifier.kinds() == [
            "verification_code",
            "payment_confirmed",
            "certificate_available",
        ]

    @pytest.mark.asyncio
    async def test_payment_order_is_reused(self, api_client, notifier):
        """Test asking twice for the payment order returns the same reference."""
        request_id, _, token = await _verify(api_client, notifier)

        first = await api_client.post(
            f"{API}/solicitudes/{request_id}/pago", headers=_bearer(token)
        )
        second = await api_client.post(
            f"{API}/solicitudes/{request_id}/pago", headers=_bearer(token)
        )

        assert first.json()["order_ref"] == second.json()["order_ref"]

    @pytest.mark.asyncio
    async def test_rejected_payment_expires_request(self, api_client, notifier, repo):
        """Test a rejected payment moves the request to EXPIRED."""
        request_id, _, token = await _verify(api_client, notifier)
        order = await api_client.post(
            f"{API}/solicitudes/{request_id}/pago", headers=_bearer(token)
        )

        ack = await _post_webhook(
            api_client, _webhook_body(order.json()["order_ref"], status_code="4")
        )

        assert ack.json() == {"result": "applied"}
        assert repo.current(uuid.UUID(request_id)).state is RequestState.EXPIRED
        assert notifier.kinds()[-1] == "request_expired"

    @pytest.mark.asyncio
    async def test_unknown_jurisdiction(self, api_client):
        """Test submitting to an unknown jurisdiction answers 404."""
        response = await api_client.post(
            f"{API}/solicitudes",
            json={"subject_id": "12345678", "email": "a@example.com", "jurisdiction_id": 99},
        )

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


# ---------------------------------------------------------------------------
# Citizen authentication
# ---------------------------------------------------------------------------
class TestCitizenAuthentication:
    """Tests for verification codes and citizen tokens."""

    @pytest.mark.asyncio
    async def test_wrong_code(self, api_client, notifier):
        """Test a wrong code answers 401 with the attempts left."""
        request_id, _, _ = await _submit(api_client, notifier)
        wrong = "000000"  # codes never start with zero

        response = await api_client.post(
            f"{API}/solicitudes/{request_id}/validar", json={"code": wrong}
        )

        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json()["detail"] == {"reason": "incorrect", "attempts_remaining": 2}

    @pytest.mark.asyncio
    async def test_attempts_exhausted(self, api_client, notifier):
        """Test the code stops working after three wrong attempts."""
        request_id, _, code = await _submit(api_client, notifier)
        wrong = "000000"  # codes never start with zero
        url = f"{API}/solicitudes/{request_id}/validar"

        for _ in range(3):
            await api_client.post(url, json={"code": wrong})
        response = await api_client.post(url, json={"code": code})

        assert response.status_code == 401
        assert response.json()["detail"]["reason"] == "attempts_exhausted"

    @pytest.mark.asyncio
    async def test_malformed_code(self, api_client, notifier):
        """Test a code that is not six digits fails validation."""
        request_id, _, _ = await _submit(api_client, notifier)

        response = await api_client.post(
            f"{API}/solicitudes/{request_id}/validar", json={"code": "12ab"}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_status_requires_token(self, api_client, notifier):
        """Test the status endpoint answers 401 without a bearer token."""
        _, tramite_number, _ = await _submit(api_client, notifier)

        response = await api_client.get(f"{API}/solicitudes/{tramite_number}")

        assert response.status_code == 401
        assert response.json()["error"] == "token_invalid"

    @pytest.mark.asyncio
    async def test_unknown_token(self, api_client, notifier):
        """Test an unknown citizen token answers 401."""
        _, tramite_number, _ = await _submit(api_client, notifier)

        response = await api_client.get(
            f"{API}/solicitudes/{tramite_number}", headers=_bearer("not-a-token")
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_token_for_other_request(self, api_client, notifier):
        """Test a token only opens the request it was issued for."""
        _, _, token = await _verify(api_client, notifier)
        other_id, other_tramite, _ = await _submit(api_client, notifier)

        status_response = await api_client.get(
            f"{API}/solicitudes/{other_tramite}", headers=_bearer(token)
        )
        payment = await api_client.post(
            f"{API}/solicitudes/{other_id}/pago", headers=_bearer(token)
        )

        assert status_response.status_code == 404
        assert payment.status_code == 404


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------
class TestWebhook:
    """Tests for the PlusPagos webhook endpoint."""

    @pytest.fixture
    def pending_with_order(self, repo):
        record = make_record(payment_order_ref="SIM-0123456789ABCDEF")
        repo.add(record)
        return record

    @pytest.mark.asyncio
    async def test_invalid_signature(self, api_client, repo, pending_with_order):
        """Test a body signed with the wrong secret is refused untouched."""
        body = _webhook_body(pending_with_order.payment_order_ref)

        response = await _post_webhook(api_client, body, secret="wrong-secret")

        assert response.status_code == 401
        assert repo.current(pending_with_order.request_id).state is RequestState.PENDING

    @pytest.mark.asyncio
    async def test_missing_signature(self, api_client, pending_with_order):
        """Test an unsigned body is refused."""
        response = await api_client.post(
            f"{API}/webhooks/pluspagos",
            content=_webhook_body(pending_with_order.payment_order_ref),
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_duplicate_delivery(self, api_client, notifier, pending_with_order):
        """Test a redelivered notification is acknowledged as a duplicate."""
        body = _webhook_body(pending_with_order.payment_order_ref)

        first = await _post_webhook(api_client, body)
        second = await _post_webhook(api_client, body)

        assert first.json() == {"result": "applied"}
        assert second.status_code == 200
        assert second.json() == {"result": "duplicate"}
        assert notifier.kinds() == ["payment_confirmed"]

    @pytest.mark.asyncio
    async def test_unknown_order(self, api_client):
        """Test a notification for an unknown order answers 404."""
        response = await _post_webhook(api_client, _webhook_body("SIM-FFFFFFFFFFFFFFFF"))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_malformed_body(self, api_client):
        """Test a signed body missing required fields answers 422."""
        body = json.dumps({"EstadoId": "0"}).encode()

        response = await _post_webhook(api_client, body)

        assert response.status_code == 422
        assert response.json()["error"] == "validation_error"


# ---------------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------------
class TestCertificateDownload:
    """Tests for the public download endpoint."""

    @pytest.mark.asyncio
    async def test_unknown_token(self, api_client):
        """Test an unknown download token answers 404."""
        response = await api_client.get(f"{API}/certificados/{'b' * 64}")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_expired_certificate(self, api_client, repo):
        """Test an expired certificate answers 410 Gone."""
        record = published_record(state=RequestState.PUBLISHED_EXPIRED, version=4)
        repo.add(record)

        response = await api_client.get(f"{API}/certificados/{record.download_token}")

        assert response.status_code == 410
        assert response.json()["error"] == "certificate_expired"


# ---------------------------------------------------------------------------
# Operator endpoints
# ---------------------------------------------------------------------------
class TestOperatorEndpoints:
    """Tests for the internal operator endpoints."""

    @pytest.mark.asyncio
    async def test_requires_operator_token(self, api_client):
        """Test internal endpoints refuse unknown tokens."""
        missing = await api_client.get(f"{API}/interno/solicitudes")
        unknown = await api_client.get(
            f"{API}/interno/solicitudes", headers=_bearer("unknown")
        )

        assert missing.status_code == 401
        assert unknown.status_code == 401

    @pytest.mark.asyncio
    async def test_list_scoped_to_jurisdiction(self, api_client, repo):
        """Test a restricted operator only sees their jurisdiction."""
        own = make_record(jurisdiction_id=1)
        other = make_record(jurisdiction_id=2, tramite_number="RDAM-20260302-0002")
        repo.add(own)
        repo.add(other)

        response = await api_client.get(
            f"{API}/interno/solicitudes", headers=_bearer(SANTA_FE_TOKEN)
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["request_id"] == str(own.request_id)

    @pytest.mark.asyncio
    async def test_list_other_jurisdiction_forbidden(self, api_client):
        """Test filtering on another jurisdiction answers 403."""
        response = await api_client.get(
            f"{API}/interno/solicitudes",
            params={"jurisdiction_id": 1},
            headers=_bearer(ROSARIO_TOKEN),
        )

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    @pytest.mark.asyncio
    async def test_admin_lists_everything(self, api_client, repo):
        """Test administrators see every jurisdiction."""
        repo.add(make_record(jurisdiction_id=1))
        repo.add(make_record(jurisdiction_id=3, tramite_number="RDAM-20260302-0002"))

        response = await api_client.get(
            f"{API}/interno/solicitudes",
            params={"size": 1},
            headers=_bearer(ADMIN_TOKEN),
        )

        data = response.json()
        assert data["total"] == 2
        assert len(data["items"]) == 1
        assert data["size"] == 1

    @pytest.mark.asyncio
    async def test_upload_other_jurisdiction(self, api_client, repo, pdf_bytes):
        """Test an operator cannot publish for another jurisdiction."""
        record = _paid_record(repo, jurisdiction_id=1)

        response = await api_client.post(
            f"{API}/interno/solicitudes/{record.request_id}/certificado",
            files=_pdf_upload(pdf_bytes),
            headers=_bearer(ROSARIO_TOKEN),
        )

        assert response.status_code == 403
        assert repo.current(record.request_id).state is RequestState.PAID

    @pytest.mark.asyncio
    async def test_upload_not_paid(self, api_client, repo, pdf_bytes):
        """Test publishing a pending request answers 400 with the states."""
        record = make_record()
        repo.add(record)

        response = await api_client.post(
            f"{API}/interno/solicitudes/{record.request_id}/certificado",
            files=_pdf_upload(pdf_bytes),
            headers=_bearer(ADMIN_TOKEN),
        )

        assert response.status_code == 400
        assert response.json()["detail"] == {
            "current_state": "pending",
            "expected_states": ["paid"],
        }

    @pytest.mark.asyncio
    async def test_upload_not_a_pdf(self, api_client, repo):
        """Test a non-PDF upload answers 415."""
        record = _paid_record(repo)

        response = await api_client.post(
            f"{API}/interno/solicitudes/{record.request_id}/certificado",
            files={"file": ("nota.txt", b"hello", "text/plain")},
            headers=_bearer(ADMIN_TOKEN),
        )

        assert response.status_code == 415

    @pytest.mark.asyncio
    async def test_regenerate_expired_link(self, api_client, repo):
        """Test regenerating the token of an expired certificate."""
        record = published_record(state=RequestState.PUBLISHED_EXPIRED, version=4)
        repo.add(record)

        response = await api_client.post(
            f"{API}/interno/solicitudes/{record.request_id}/certificado/regenerar-token",
            headers=_bearer(SANTA_FE_TOKEN),
        )

        assert response.status_code == 200
        new_url = response.json()["download_url"]
        assert not new_url.endswith(record.download_token)
        updated = repo.current(record.request_id)
        assert updated.state is RequestState.PUBLISHED_EXPIRED
        assert new_url.endswith(updated.download_token)

        old = await api_client.get(f"{API}/certificados/{record.download_token}")
        assert old.status_code == 404

    @pytest.mark.asyncio
    async def test_regenerate_pending(self, api_client, repo):
        """Test regenerating on a request without a certificate answers 400."""
        record = make_record()
        repo.add(record)

        response = await api_client.post(
            f"{API}/interno/solicitudes/{record.request_id}/certificado/regenerar-token",
            headers=_bearer(ADMIN_TOKEN),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_state"


# ---------------------------------------------------------------------------
# Operator login and administration
# ---------------------------------------------------------------------------
class TestOperatorLogin:
    """Tests for /auth/login and /auth/logout."""

    @pytest.mark.asyncio
    async def test_login_issues_usable_token(self, api_client, operator_store):
        """Test a login token authorizes the internal endpoints."""
        response = await api_client.post(
            f"{API}/auth/login",
            json={"username": "operador.sfe", "password": OPERATOR_PASSWORD},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["token_type"] == "Bearer"
        assert data["expires_in"] == 8 * 3600
        assert data["role"] == "operator"
        assert data["jurisdiction_id"] == 1

        listing = await api_client.get(
            f"{API}/interno/solicitudes", headers=_bearer(data["access_token"])
        )
        assert listing.status_code == 200
        assert operator_store.commits == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("username", "password"),
        [("operador.sfe", "incorrecta"), ("nadie", OPERATOR_PASSWORD)],
    )
    async def test_bad_credentials(self, api_client, username, password):
        """Test wrong passwords and unknown users get the same 401."""
        response = await api_client.post(
            f"{API}/auth/login", json={"username": username, "password": password}
        )

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_credentials"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_inactive_operator(self, api_client, operator_store, rosario_operator):
        """Test a deactivated operator cannot log in."""
        await operator_store.set_active(rosario_operator.operator_id, False)

        response = await api_client.post(
            f"{API}/auth/login",
            json={"username": "operador.ros", "password": OPERATOR_PASSWORD},
        )

        assert response.status_code == 403
        assert response.json()["error"] == "operator_inactive"

    @pytest.mark.asyncio
    async def test_logout_revokes_token(self, api_client):
        """Test the token stops working after logout."""
        response = await api_client.post(f"{API}/auth/logout", headers=_bearer(SANTA_FE_TOKEN))

        assert response.status_code == 200
        assert response.json() == {"success": True}
        after = await api_client.get(
            f"{API}/interno/solicitudes", headers=_bearer(SANTA_FE_TOKEN)
        )
        assert after.status_code == 401

    @pytest.mark.asyncio
    async def test_logout_requires_token(self, api_client):
        """Test logout without a session answers 401."""
        response = await api_client.post(f"{API}/auth/logout")

        assert response.status_code == 401


class TestOperatorAdministration:
    """Tests for /interno/operadores."""

    @pytest.mark.asyncio
    async def test_admin_creates_operator(self, api_client, operator_store):
        """Test an admin creates an operator who can then log in."""
        response = await api_client.post(
            f"{API}/interno/operadores",
            json={
                "username": "Nuevo.Operador@justicia.example",
                "password": "segura-456",
                "role": "operator",
                "jurisdiction_id": 3,
            },
            headers=_bearer(ADMIN_TOKEN),
        )

        assert response.status_code == 201
        data = response.json()
        assert data["username"] == "nuevo.operador@justicia.example"
        assert data["jurisdiction_id"] == 3
        assert data["is_active"] is True
        assert "password_hash" not in data

        login = await api_client.post(
            f"{API}/auth/login",
            json={"username": "nuevo.operador@justicia.example", "password": "segura-456"},
        )
        assert login.status_code == 200
        assert login.json()["jurisdiction_id"] == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("role", "jurisdiction_id"),
        [("operator", None), ("admin", 2), ("operator", 99)],
        ids=["operator-without-jurisdiction", "admin-with-jurisdiction", "unknown-jurisdiction"],
    )
    async def test_role_and_jurisdiction_rules(self, api_client, role, jurisdiction_id):
        """Test role and jurisdiction combinations that answer 400."""
        response = await api_client.post(
            f"{API}/interno/operadores",
            json={
                "username": "otro@justicia.example",
                "password": "segura-456",
                "role": role,
                "jurisdiction_id": jurisdiction_id,
            },
            headers=_bearer(ADMIN_TOKEN),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_operator"

    @pytest.mark.asyncio
    async def test_duplicate_username(self, api_client):
        """Test a taken username answers 409."""
        body = {
            "username": "repetido@justicia.example",
            "password": "segura-456",
            "role": "admin",
        }
        first = await api_client.post(
            f"{API}/interno/operadores", json=body, headers=_bearer(ADMIN_TOKEN)
        )
        second = await api_client.post(
            f"{API}/interno/operadores", json=body, headers=_bearer(ADMIN_TOKEN)
        )

        assert first.status_code == 201
        assert second.status_code == 409
        assert second.json()["error"] == "conflict"

    @pytest.mark.asyncio
    async def test_short_password_rejected(self, api_client):
        """Test passwords under eight characters fail validation."""
        response = await api_client.post(
            f"{API}/interno/operadores",
            json={"username": "corta@justicia.example", "password": "corta", "role": "admin"},
            headers=_bearer(ADMIN_TOKEN),
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_requires_admin(self, api_client):
        """Test a restricted operator cannot create operators."""
        response = await api_client.post(
            f"{API}/interno/operadores",
            json={
                "username": "otro@justicia.example",
                "password": "segura-456",
                "role": "operator",
                "jurisdiction_id": 1,
            },
            headers=_bearer(SANTA_FE_TOKEN),
        )

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    @pytest.mark.asyncio
    async def test_deactivation_ends_sessions(self, api_client, rosario_operator):
        """Test a deactivated operator's token is rejected at once."""
        response = await api_client.patch(
            f"{API}/interno/operadores/{rosario_operator.operator_id}/estado",
            json={"active": False},
            headers=_bearer(ADMIN_TOKEN),
        )

        assert response.status_code == 200
        assert response.json()["is_active"] is False
        after = await api_client.get(
            f"{API}/interno/solicitudes", headers=_bearer(ROSARIO_TOKEN)
        )
        assert after.status_code == 401

    @pytest.mark.asyncio
    async def test_reactivation(self, api_client, operator_store, rosario_operator):
        """Test a deactivated operator can be activated again."""
        await operator_store.set_active(rosario_operator.operator_id, False)

        response = await api_client.patch(
            f"{API}/interno/operadores/{rosario_operator.operator_id}/estado",
            json={"active": True},
            headers=_bearer(ADMIN_TOKEN),
        )

        assert response.status_code == 200
        assert response.json()["is_active"] is True

    @pytest.mark.asyncio
    async def test_admin_cannot_deactivate_self(self, api_client, admin):
        """Test self-deactivation answers 400."""
        response = await api_client.patch(
            f"{API}/interno/operadores/{admin.operator_id}/estado",
            json={"active": False},
            headers=_bearer(ADMIN_TOKEN),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_operator"

    @pytest.mark.asyncio
    async def test_unknown_operator(self, api_client):
        """Test an unknown operator id answers 404."""
        response = await api_client.patch(
            f"{API}/interno/operadores/{uuid.uuid4()}/estado",
            json={"active": False},
            headers=_bearer(ADMIN_TOKEN),
        )

        assert response.status_code == 404


# ---------------------------------------------------------------------------
# Cross-cutting behavior
# ---------------------------------------------------------------------------
class TestErrorFormat:
    """Tests for error bodies and request ids."""

    @pytest.mark.asyncio
    async def test_request_id_generated(self, api_client):
        """Test responses carry a generated X-Request-ID."""
        response = await api_client.get("/health")

        assert uuid.UUID(response.headers["x-request-id"])

    @pytest.mark.asyncio
    async def test_request_id_echoed_in_errors(self, api_client):
        """Test a client request id is echoed in the header and error body."""
        response = await api_client.get(
            f"{API}/certificados/{'c' * 64}", headers={"X-Request-ID": "trace-123"}
        )

        assert response.headers["x-request-id"] == "trace-123"
        body = response.json()
        assert body["request_id"] == "trace-123"
        assert set(body) >= {"error", "message", "request_id"}

    @pytest.mark.asyncio
    async def test_validation_error(self, api_client):
        """Test invalid bodies answer 422 with field errors."""
        response = await api_client.post(
            f"{API}/solicitudes",
            json={"subject_id": "abc", "email": "not-an-email", "jurisdiction_id": 1},
        )

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "validation_error"
        fields = {tuple(err["loc"])[-1] for err in body["detail"]["errors"]}
        assert {"subject_id", "email"} <= fields


class TestHealth:
    """Tests for the health endpoints."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path", ["/health", f"{API}/health"])
    async def test_health(self, api_client, path):
        """Test the liveness endpoint answers on both paths."""
        response = await api_client.get(path)

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
