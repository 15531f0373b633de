"""
mentorbot/app/utils/api.py

HTTP client for the marketplace REST API.

Bot → API (cookie session)

Responses use the envelope {"success": bool, "message": str, ...payload}.
Failures are raised as ApiError; nothing is retried here.
"""

import logging
from contextlib import contextmanager
from datetime import date
from typing import Optional

import httpx
from pydantic import ValidationError

from mentorbot.app.config import settings
from mentorbot.app.schemas.bookings import Booking, BookingPage, PaymentOrder, PaymentResult
from mentorbot.app.schemas.mentors import Mentor
from mentorbot.app.schemas.slots import CalendarSlotDay, TimeSlot
from mentorbot.app.schemas.users import UserProfile

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Backend rejected a call or could not be reached."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


@contextmanager
def _parsing(method: str, path: str):
    """Payload did not match the expected shape: surfaced as ApiError."""
    try:
        yield
    except ValidationError as e:
        logger.error(f"API malformed response: {method} {path} -> {e.error_count()} errors")
        raise ApiError(f"Malformed response from {path}") from e


class ApiClient:
    """Async client for the marketplace API."""

    def __init__(
        self,
        base_url: str = settings.API_URL,
        cookies: Optional[dict] = None,
        timeout: Optional[float] = settings.API_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.cookies = dict(cookies or {})
        self.timeout = timeout
        self.transport = transport

    def with_cookies(self, cookies: dict) -> "ApiClient":
        """Same endpoint, different session credentials."""
        return ApiClient(self.base_url, cookies=cookies, timeout=self.timeout, transport=self.transport)

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        """Base HTTP request. Returns the decoded envelope."""
        url = f"{self.base_url}{path}"

        async with httpx.AsyncClient(
            timeout=self.timeout,
            cookies=self.cookies,
            transport=self.transport,
        ) as client:
            try:
                resp = await client.request(method, url, **kwargs)
            except httpx.HTTPError as e:
                logger.error(f"API request failed: {method} {path} -> {e}")
                raise ApiError(f"Network error: {e}") from e

        if resp.status_code == 204:
            return {"success": True}

        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {"data": body}

        if resp.status_code >= 400:
            logger.error(f"API error: {method} {path} -> {resp.status_code}")
            raise ApiError(
                body.get("message") or f"Request failed with status {resp.status_code}",
                status=resp.status_code,
            )

        if body.get("success") is False:
            logger.warning(f"API rejected: {method} {path} -> {body.get('message')}")
            raise ApiError(body.get("message") or "Request was not successful", status=resp.status_code)

        return body

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    async def get_my_profile(self) -> UserProfile:
        """GET /auth/me"""
        result = await self._request("GET", "/auth/me")
        with _parsing("GET", "/auth/me"):
            return UserProfile.model_validate(result.get("user") or result.get("data") or {})

    async def logout(self) -> None:
        """POST /auth/logout"""
        await self._request("POST", "/auth/logout")

    # ------------------------------------------------------------------
    # Mentors
    # ------------------------------------------------------------------

    async def get_active_mentors(self) -> list[Mentor]:
        """GET /mentor/all-active: active and approved mentors."""
        result = await self._request("GET", "/mentor/all-active")
        with _parsing("GET", "/mentor/all-active"):
            return [Mentor.from_api(m) for m in result.get("data") or []]

    async def get_mentor(self, mentor_id: str) -> Mentor:
        """GET /mentor/{id}"""
        result = await self._request("GET", f"/mentor/{mentor_id}")
        with _parsing("GET", f"/mentor/{mentor_id}"):
            return Mentor.from_api(result.get("data") or {})

    async def get_calendar_slots(
        self,
        mentor_id: str,
        start_date: date,
        end_date: date,
    ) -> list[CalendarSlotDay]:
        """GET /mentors/{id}/slots/calendar: bookable days in a range."""
        result = await self._request(
            "GET",
            f"/mentors/{mentor_id}/slots/calendar",
            params={"startDate": start_date.isoformat(), "endDate": end_date.isoformat()},
        )
        with _parsing("GET", f"/mentors/{mentor_id}/slots/calendar"):
            return [CalendarSlotDay.model_validate(d) for d in result.get("slots") or []]

    async def get_day_slots(self, mentor_id: str, day: date) -> list[TimeSlot]:
        """GET /mentors/{id}/slots: all ranges of one date, booked ones included."""
        result = await self._request(
            "GET",
            f"/mentors/{mentor_id}/slots",
            params={"date": day.isoformat()},
        )
        with _parsing("GET", f"/mentors/{mentor_id}/slots"):
            return [TimeSlot.model_validate(s) for s in result.get("slots") or []]

    # ------------------------------------------------------------------
    # Booking / payment
    # ------------------------------------------------------------------

    async def create_booking(self, mentor_id: str, slots: list[dict]) -> PaymentOrder:
        """POST /booking/create: reserves slots and opens a payment order."""
        result = await self._request(
            "POST",
            "/booking/create",
            json={"mentorId": mentor_id, "slots": slots},
        )
        with _parsing("POST", "/booking/create"):
            return PaymentOrder.from_api(result.get("order") or {})

    async def verify_payment(self, payment: PaymentResult) -> dict:
        """POST /booking/verify"""
        return await self._request("POST", "/booking/verify", json=payment.to_api())

    async def cancel_booking(self, order_id: str) -> dict:
        """POST /booking/cancel: releases a reserved, unpaid order."""
        return await self._request("POST", "/booking/cancel", json={"orderId": order_id})

    async def get_user_bookings(
        self,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
        upcoming: bool = False,
    ) -> BookingPage:
        """GET /booking/my-bookings"""
        return await self._get_booking_page("/booking/my-bookings", status, page, limit, upcoming)

    # ------------------------------------------------------------------
    # Meetings
    # ------------------------------------------------------------------

    async def get_mentor_meetings(
        self,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
        upcoming: bool = False,
    ) -> BookingPage:
        """GET /meetings/mentor: organizer's side of the bookings."""
        return await self._get_booking_page("/meetings/mentor", status, page, limit, upcoming)

    async def cancel_mentor_meeting(self, meeting_id: str, reason: str) -> dict:
        """POST /meetings/{id}/cancel: organizer cancel, backend refunds."""
        return await self._request("POST", f"/meetings/{meeting_id}/cancel", json={"reason": reason})

    async def get_meeting(self, meeting_id: str) -> Booking:
        """GET /meetings/{id}"""
        result = await self._request("GET", f"/meetings/{meeting_id}")
        with _parsing("GET", f"/meetings/{meeting_id}"):
            return Booking.model_validate(result.get("meeting") or {})

    async def get_join_credentials(self, meeting_id: str) -> dict:
        """GET /meetings/{id}/join"""
        return await self._request("GET", f"/meetings/{meeting_id}/join")

    async def record_join_event(self, meeting_id: str) -> dict:
        """POST /meetings/{id}/join-event"""
        return await self._request("POST", f"/meetings/{meeting_id}/join-event", json={})

    async def record_leave_event(self, meeting_id: str) -> dict:
        """POST /meetings/{id}/leave-event"""
        return await self._request("POST", f"/meetings/{meeting_id}/leave-event", json={})

    async def end_meeting(self, meeting_id: str) -> dict:
        """POST /meetings/{id}/end: organizer only."""
        return await self._request("POST", f"/meetings/{meeting_id}/end", json={})

    # ------------------------------------------------------------------
    # Mentor dashboard
    # ------------------------------------------------------------------

    async def get_dashboard_profile(self) -> dict:
        """GET /mentor/dashboard/profile"""
        result = await self._request("GET", "/mentor/dashboard/profile")
        return result.get("data") or {}

    async def update_pricing(self, pricing: list[dict]) -> dict:
        """PUT /mentor/dashboard/pricing: [{type, price}] per 15 minutes."""
        return await self._request("PUT", "/mentor/dashboard/pricing", json={"pricing": pricing})

    async def update_availability(self, availability: list[dict]) -> dict:
        """PUT /mentor/dashboard/availability: [{day, slots}]"""
        return await self._request(
            "PUT", "/mentor/dashboard/availability", json={"availability": availability}
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _get_booking_page(
        self,
        path: str,
        status: Optional[str],
        page: int,
        limit: int,
        upcoming: bool,
    ) -> BookingPage:
        params: dict = {"page": page, "limit": limit}
        if status:
            params["status"] = status
        if upcoming:
            params["upcoming"] = "true"

        result = await self._request("GET", path, params=params)
        items = result.get("bookings") or result.get("meetings") or []
        pagination = result.get("pagination") or {}
        with _parsing("GET", path):
            return BookingPage(
                items=[Booking.model_validate(b) for b in items],
                page=pagination.get("page", page),
                limit=pagination.get("limit", limit),
                total=pagination.get("total", len(items)),
            )


# Public client without session cookies
api = ApiClient()
