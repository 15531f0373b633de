import asyncio
import json
from datetime import date

import httpx
import pytest

from mentorbot.app.utils.api import ApiClient, ApiError

BASE = "http://api.test/api/v1"


def _client(handler, cookies=None) -> ApiClient:
    return ApiClient(base_url=BASE, cookies=cookies, transport=httpx.MockTransport(handler))


def test_create_booking_posts_slots_and_parses_order():
    seen = {}

    def handler(request: httpx.Request):
        seen["method"] = request.method
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        seen["cookie"] = request.headers.get("cookie")
        return httpx.Response(201, json={
            "success": True,
            "order": {
                "orderId": "ord_1",
                "razorpayOrderId": "order_rp_1",
                "razorpayKeyId": "rzp_test",
                "amount": 20000,
                "currency": "INR",
                "mentor": {"name": "Asha Rao"},
            },
        })

    slots = [{"date": "2026-11-02", "startTime": "10:00", "endTime": "10:22", "sessionType": "video"}]
    order = asyncio.run(_client(handler, cookies={"token": "abc"}).create_booking("m1", slots))

    assert seen["method"] == "POST"
    assert seen["path"] == "/api/v1/booking/create"
    assert seen["body"] == {"mentorId": "m1", "slots": slots}
    assert seen["cookie"] == "token=abc"
    assert order.order_id == "ord_1"
    assert order.provider_order_id == "order_rp_1"
    assert order.amount == 20000
    assert order.mentor_name == "Asha Rao"


def test_error_status_carries_backend_message():
    def handler(request):
        return httpx.Response(409, json={"success": False, "message": "Slot already booked"})

    with pytest.raises(ApiError) as exc:
        asyncio.run(_client(handler).cancel_booking("ord_1"))

    assert exc.value.status == 409
    assert exc.value.message == "Slot already booked"


def test_error_status_without_body_gets_default_message():
    def handler(request):
        return httpx.Response(502, text="Bad gateway")

    with pytest.raises(ApiError) as exc:
        asyncio.run(_client(handler).get_active_mentors())

    assert exc.value.status == 502
    assert "502" in exc.value.message


def test_success_false_envelope_is_an_error():
    def handler(request):
        return httpx.Response(200, json={"success": False, "message": "Invalid signature"})

    with pytest.raises(ApiError) as exc:
        asyncio.run(_client(handler).get_meeting("mt1"))

    assert exc.value.message == "Invalid signature"


def test_transport_failure_has_no_status():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ApiError) as exc:
        asyncio.run(_client(handler).get_active_mentors())

    assert exc.value.status is None
    assert exc.value.message.startswith("Network error")


def test_calendar_query_and_parsing():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        seen["path"] = request.url.path
        return httpx.Response(200, json={
            "success": True,
            "slots": [{
                "date": "2026-11-02",
                "dayOfWeek": "Monday",
                "isBlocked": False,
                "availableSlots": [{"startTime": "10:00", "endTime": "10:30", "available": True}],
            }],
        })

    days = asyncio.run(_client(handler).get_calendar_slots("m1", date(2026, 11, 1), date(2026, 12, 31)))

    assert seen["path"] == "/api/v1/mentors/m1/slots/calendar"
    assert seen["params"] == {"startDate": "2026-11-01", "endDate": "2026-12-31"}
    assert days[0].date == date(2026, 11, 2)
    assert days[0].open_slots[0].label() == "10:00-10:30"


def test_active_mentors_flatten_nested_refs():
    def handler(request):
        return httpx.Response(200, json={"success": True, "data": [{
            "_id": "m1",
            "userRef": {"name": "Asha Rao", "avatar": "a.png"},
            "registrationRef": {
                "expertise": ["GST", "Audit"],
                "languages": ["English", "Hindi"],
                "qualification": ["Chartered Accountant"],
                "yearsOfExperience": 8,
            },
            "pricing": [{"type": "video", "price": 100}, {"type": "chat", "price": 0}],
            "isActive": True,
        }]})

    mentors = asyncio.run(_client(handler).get_active_mentors())

    mentor = mentors[0]
    assert mentor.name == "Asha Rao"
    assert mentor.title == "Chartered Accountant"
    assert mentor.specialization == "GST, Audit"
    assert mentor.pricing_table() == {"video": 100}


def test_user_bookings_page():
    seen = {}

    def handler(request):
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, json={
            "success": True,
            "bookings": [{
                "_id": "b1",
                "mentor": {"_id": "m1", "name": "Asha Rao"},
                "scheduledAt": "2026-11-02T10:00:00.000Z",
                "meetingType": "chat",
                "status": "Scheduled",
                "order": {"_id": "o1", "amount": 20000, "currency": "INR"},
            }],
            "pagination": {"page": 1, "limit": 10, "total": 1},
        })

    page = asyncio.run(_client(handler).get_user_bookings(status="Scheduled", limit=10, upcoming=True))

    assert seen["params"] == {"page": "1", "limit": "10", "status": "Scheduled", "upcoming": "true"}
    assert page.total == 1
    assert page.items[0].order.amount == 20000
    assert page.items[0].meeting_type.value == "chat"


def test_no_content_is_success():
    def handler(request):
        return httpx.Response(204)

    assert asyncio.run(_client(handler).logout()) is None


def test_with_cookies_keeps_endpoint():
    base = ApiClient(base_url=BASE + "/")
    bound = base.with_cookies({"token": "xyz"})

    assert bound.base_url == BASE
    assert bound.cookies == {"token": "xyz"}
    assert base.cookies == {}


def test_organizer_calls_send_expected_payloads():
    seen = []

    def handler(request):
        seen.append((request.method, request.url.path, json.loads(request.content or b"{}")))
        return httpx.Response(200, json={"success": True})

    client = _client(handler)

    async def scenario():
        await client.cancel_mentor_meeting("mt1", "Travelling")
        await client.update_pricing([{"type": "video", "price": 120}])
        await client.update_availability([{"day": "Monday", "slots": [{"startTime": "10:00", "endTime": "12:00"}]}])

    asyncio.run(scenario())

    assert seen == [
        ("POST", "/api/v1/meetings/mt1/cancel", {"reason": "Travelling"}),
        ("PUT", "/api/v1/mentor/dashboard/pricing", {"pricing": [{"type": "video", "price": 120}]}),
        ("PUT", "/api/v1/mentor/dashboard/availability", {
            "availability": [{"day": "Monday", "slots": [{"startTime": "10:00", "endTime": "12:00"}]}],
        }),
    ]


def test_mentor_with_null_price_and_social_link_parses():
    def handler(request):
        return httpx.Response(200, json={"success": True, "data": {
            "_id": "m1",
            "userRef": {"name": "Asha Rao"},
            "pricing": [{"type": "video", "price": 100}, {"type": "chat", "price": None}],
            "socials": {"linkedin": "https://linkedin.com/in/asha", "twitter": None},
        }})

    mentor = asyncio.run(_client(handler).get_mentor("m1"))

    assert mentor.pricing_table() == {"video": 100}
    assert mentor.socials["twitter"] is None


def test_booking_with_null_meeting_type_and_status_gets_defaults():
    def handler(request):
        return httpx.Response(200, json={"success": True, "meeting": {
            "_id": "mt1",
            "mentor": {"_id": "m1", "name": None},
            "scheduledAt": "2026-11-02T10:00:00Z",
            "meetingType": None,
            "status": None,
        }})

    meeting = asyncio.run(_client(handler).get_meeting("mt1"))

    assert meeting.meeting_type.value == "video"
    assert meeting.status == "Scheduled"
    assert meeting.mentor.name == ""


@pytest.mark.parametrize("call, body", [
    (lambda c: c.get_meeting("mt1"), {"success": True, "meeting": {"_id": "mt1"}}),
    (lambda c: c.get_user_bookings(), {"success": True, "bookings": [{"_id": "b1", "scheduledAt": "soon"}]}),
    (lambda c: c.create_booking("m1", []), {"success": True, "order": {"orderId": "ord_1"}}),
    (lambda c: c.get_active_mentors(), {"success": True, "data": [{"_id": "m1", "pricing": [{"price": 1}]}]}),
])
def test_malformed_payload_is_an_api_error(call, body):
    def handler(request):
        return httpx.Response(200, json=body)

    with pytest.raises(ApiError) as exc:
        asyncio.run(call(_client(handler)))

    assert exc.value.message.startswith("Malformed response")
