"""Tests for appointment creation, listing and lifecycle calls."""

from datetime import date, time
import json

import pytest

from servilink_bot.dto import AppointmentStatus
from servilink_bot.flows.confirmation import AppointmentDraft
from servilink_bot.services import appointments as appt_svc
from servilink_bot.services.result import Err, ErrorKind, Ok

from conftest import TG_ID, no_http, ok


def _draft(price):
    return AppointmentDraft(
        request_id="s-9",
        contractor_id="42",
        client_id="c-1",
        service_date=date(2025, 8, 27),
        start=time(10, 0),
        end=time(12, 0),
        price=price,
        notes="Pierde agua la canilla",
        professional_name="Juan Pérez",
    )


class TestCreate:
    @pytest.mark.asyncio
    async def test_zero_price_books_without_payment(self, make_api):
        sent = []

        def handler(request):
            if request.method == "POST" and request.url.path == "/citas":
                sent.append(json.loads(request.content))
                return ok({"cita_id": 77}, status=201)
            return ok({
                "citas": [
                    {
                        "id": 77,
                        "solicitud_id": "s-9",
                        "contratista_id": 42,
                        "cliente_id": "c-1",
                        "fecha_servicio": "2025-08-27",
                        "hora_inicio": "10:00:00",
                        "hora_fin": "12:00:00",
                        "precio_acordado": 0,
                        "estado": "programada",
                    }
                ]
            })

        api = make_api(handler)
        res = await appt_svc.create_appointment(api, user_id=TG_ID, draft=_draft(0))
        assert isinstance(res, Ok)
        assert res.value.appointment_id == "77"
        assert res.value.payment_required is False
        assert sent[0]["precio_acordado"] == 0

        listed = await appt_svc.list_appointments(api, user_id=TG_ID, client_id="c-1")
        assert [(a.id, a.status) for a in listed.value] == [("77", AppointmentStatus.SCHEDULED)]
        assert listed.value[0].price == 0

    @pytest.mark.asyncio
    async def test_positive_price_requires_payment(self, make_api):
        api = make_api(lambda request: ok({"cita_id": "78"}))
        res = await appt_svc.create_appointment(api, user_id=TG_ID, draft=_draft(8000))
        assert res.value.payment_required is True
        assert res.value.amount == 8000

    @pytest.mark.asyncio
    async def test_missing_id_is_server_error(self, make_api):
        api = make_api(lambda request: ok({}))
        res = await appt_svc.create_appointment(api, user_id=TG_ID, draft=_draft(0))
        assert res == Err(ErrorKind.SERVER)


class TestQueries:
    @pytest.mark.asyncio
    async def test_list_sends_filters(self, make_api):
        seen = []

        def handler(request):
            seen.append(request)
            return ok({"citas": []})

        api = make_api(handler)
        res = await appt_svc.list_appointments(
            api, user_id=TG_ID, contractor_id="42", status=AppointmentStatus.CONFIRMED, limit=5
        )
        assert res == Ok([])
        params = seen[0].url.params
        assert params["contratista_id"] == "42"
        assert params["estado"] == "confirmada"
        assert params["limit"] == "5"
        assert "cliente_id" not in params

    @pytest.mark.asyncio
    async def test_get_maps_quoted_price_and_contractor_name(self, make_api):
        api = make_api(lambda request: ok({
            "cita": {
                "precio_acordado": "a_cotizar",
                "estado": "en_progreso",
                "contratista": {"id": 42, "nombre": "Juan", "apellido": "Pérez"},
            }
        }))
        res = await appt_svc.get_appointment(api, user_id=TG_ID, appointment_id="77")
        appointment = res.value
        assert appointment.id == "77"
        assert appointment.price is None
        assert appointment.status == AppointmentStatus.IN_PROGRESS
        assert appointment.contractor_id == "42"
        assert appointment.contractor_name == "Juan Pérez"


class TestLifecycle:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "call,path",
        [
            (appt_svc.confirm_appointment, "/citas/77/confirmar"),
            (appt_svc.start_service, "/citas/77/iniciar"),
            (appt_svc.complete_service, "/citas/77/completar"),
        ],
    )
    async def test_posts_to_action_path(self, make_api, call, path):
        seen = []

        def handler(request):
            seen.append(request)
            return ok({})

        api = make_api(handler)
        assert await call(api, user_id=TG_ID, appointment_id="77") == Ok(None)
        assert seen[0].method == "POST"
        assert seen[0].url.path == path

    @pytest.mark.asyncio
    async def test_complete_sends_final_notes(self, make_api):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return ok({})

        api = make_api(handler)
        await appt_svc.complete_service(api, user_id=TG_ID, appointment_id="77", notes="Listo")
        assert bodies == [{"notas_final": "Listo", "fotos_trabajo": []}]


class TestRating:
    @pytest.mark.asyncio
    async def test_out_of_range_score_never_hits_api(self, make_api):
        api = make_api(no_http)
        res = await appt_svc.rate_service(api, user_id=TG_ID, appointment_id="77", contractor_id="42", score=6)
        assert res.kind == ErrorKind.VALIDATION

    @pytest.mark.asyncio
    async def test_overall_score_fills_sub_scores(self, make_api):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return ok({}, status=201)

        api = make_api(handler)
        res = await appt_svc.rate_service(api, user_id=TG_ID, appointment_id="77", contractor_id="42", score=4)
        assert res == Ok(None)
        body = bodies[0]
        assert body["calificacion"] == 4
        assert {body[k] for k in ("puntualidad", "calidad_trabajo", "comunicacion", "limpieza")} == {4}
        assert body["evaluado_id"] == "42"
