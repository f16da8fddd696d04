"""PostgREST-backed data layer.

Talks to the Postgres REST API that fronts the ``properties``, ``users``,
``viewing_appointments`` and ``viewing_time_slots`` tables. Double-booking
protection relies on an exclusion constraint on ``viewing_appointments``
(property, date, time range, active status); PostgREST reports a violation
as HTTP 409, which surfaces here as ``BookingConflictError``.

Short-ID lookup uses a UUID range query: a hex prefix ``ab12`` matches every
UUID between ``ab120000-...`` and ``ab12ffff-...``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional

import httpx

from viewings.errors import BookingConflictError, StoreError
from viewings.models import (
    AppointmentStatus,
    Contact,
    Property,
    ViewingAppointment,
    ViewingTimeSlot,
)

from .base import AppointmentStore, DirectoryStore

log = logging.getLogger("viewings.stores.postgrest")

_USER_COLUMNS = "id,name,phone_number,user_roles:role_id(role)"
_PROPERTY_DETAILS = (
    f"*,owner:users!owner_id({_USER_COLUMNS}),agent:users!agent_id({_USER_COLUMNS})"
)
_CONFLICT_CODES = {"23505", "23P01"}  # unique_violation, exclusion_violation
_UUID_TEMPLATE = "xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx"
_HEX = set("0123456789abcdef")


def uuid_prefix_bounds(prefix: str) -> tuple[str, str] | None:
    """Return the (lowest, highest) UUID strings that start with ``prefix``.

    Returns None when ``prefix`` cannot be the start of a canonical UUID.
    """
    prefix = prefix.lower()
    if not prefix or len(prefix) > len(_UUID_TEMPLATE):
        return None
    for ch, slot in zip(prefix, _UUID_TEMPLATE):
        if slot == "-" and ch != "-":
            return None
        if slot == "x" and ch not in _HEX:
            return None
    rest = _UUID_TEMPLATE[len(prefix):]
    return prefix + rest.replace("x", "0"), prefix + rest.replace("x", "f")


class PostgrestClient:
    """Thin async wrapper adding auth headers and error mapping."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def request(
        self,
        method: str,
        table: str,
        params: dict[str, str] | list[tuple[str, str]] | None = None,
        json: Any = None,
        prefer: str = "",
    ) -> list[dict]:
        headers = {"Prefer": prefer} if prefer else {}
        try:
            resp = await self._client.request(
                method, f"/{table}", params=params, json=json, headers=headers
            )
        except httpx.HTTPError as exc:
            raise StoreError(f"{method} /{table} failed: {exc}") from exc

        if resp.status_code == 409 or _error_code(resp) in _CONFLICT_CODES:
            raise BookingConflictError(resp.text)
        if resp.is_error:
            raise StoreError(f"{method} /{table} returned {resp.status_code}: {resp.text}")
        if not resp.content:
            return []
        data = resp.json()
        return data if isinstance(data, list) else [data]

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_code(resp: httpx.Response) -> str:
    if not resp.is_error:
        return ""
    try:
        body = resp.json()
    except ValueError:
        return ""
    return str(body.get("code", "")) if isinstance(body, dict) else ""


def _contact_from_row(row: dict | None) -> Optional[Contact]:
    if not row:
        return None
    role = (row.get("user_roles") or {}).get("role") or row.get("role") or "buyer"
    return Contact(
        id=str(row["id"]),
        name=row.get("name"),
        phone_number=row.get("phone_number") or "",
        role=role,
    )


def _property_from_row(row: dict) -> Property:
    return Property(
        id=str(row["id"]),
        address=row.get("address") or "",
        property_type=row.get("property_type") or "",
        price=row.get("price"),
        owner=_contact_from_row(row.get("owner")),
        agent=_contact_from_row(row.get("agent")),
        availability=row.get("availability") or None,
    )


def _appointment_to_row(appointment: ViewingAppointment) -> dict:
    return appointment.model_dump(mode="json")


class PostgrestDirectory(DirectoryStore):
    def __init__(self, client: PostgrestClient) -> None:
        self._client = client

    async def get_property_with_details(self, property_id: str) -> Optional[Property]:
        rows = await self._client.request(
            "GET", "properties", params={"id": f"eq.{property_id}", "select": _PROPERTY_DETAILS}
        )
        return _property_from_row(rows[0]) if rows else None

    async def find_property(self, property_id: str) -> Optional[Property]:
        rows = await self._client.request(
            "GET", "properties", params={"id": f"eq.{property_id}", "select": "*"}
        )
        return _property_from_row(rows[0]) if rows else None

    async def find_user(self, user_id: str) -> Optional[Contact]:
        rows = await self._client.request(
            "GET", "users", params={"id": f"eq.{user_id}", "select": _USER_COLUMNS}
        )
        return _contact_from_row(rows[0]) if rows else None


class PostgrestAppointmentStore(AppointmentStore):
    TABLE = "viewing_appointments"

    def __init__(self, client: PostgrestClient) -> None:
        self._client = client

    async def create(self, appointment: ViewingAppointment) -> ViewingAppointment:
        rows = await self._client.request(
            "POST", self.TABLE,
            json=_appointment_to_row(appointment),
            prefer="return=representation",
        )
        created = ViewingAppointment.model_validate(rows[0]) if rows else appointment
        log.info(
            "Appointment %s created for property %s on %s (%s)",
            created.id, created.property_id, created.appointment_date, created.status.value,
        )
        return created

    async def get(self, appointment_id: str) -> Optional[ViewingAppointment]:
        rows = await self._client.request(
            "GET", self.TABLE, params={"id": f"eq.{appointment_id}"}
        )
        return ViewingAppointment.model_validate(rows[0]) if rows else None

    async def find_by_prefix(self, prefix: str) -> list[ViewingAppointment]:
        bounds = uuid_prefix_bounds(prefix)
        if bounds is None:
            return []
        low, high = bounds
        rows = await self._client.request(
            "GET", self.TABLE,
            params=[("id", f"gte.{low}"), ("id", f"lte.{high}"), ("limit", "10")],
        )
        return [ViewingAppointment.model_validate(r) for r in rows]

    async def list_active(self, property_id: str, day: date) -> list[ViewingAppointment]:
        rows = await self._client.request(
            "GET", self.TABLE,
            params={
                "property_id": f"eq.{property_id}",
                "appointment_date": f"eq.{day.isoformat()}",
                "status": "in.(pending_owner_approval,confirmed)",
                "order": "start_time.asc",
            },
        )
        return [ViewingAppointment.model_validate(r) for r in rows]

    async def list_for_user(
        self,
        user_id: str,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> list[ViewingAppointment]:
        params = [("user_id", f"eq.{user_id}")] + _date_window(from_date, to_date)
        params.append(("order", "appointment_date.asc,start_time.asc"))
        rows = await self._client.request("GET", self.TABLE, params=params)
        return [ViewingAppointment.model_validate(r) for r in rows]

    async def transition(
        self,
        appointment_id: str,
        from_statuses: Iterable[AppointmentStatus],
        to_status: AppointmentStatus,
    ) -> Optional[ViewingAppointment]:
        allowed = ",".join(s.value for s in from_statuses)
        rows = await self._client.request(
            "PATCH", self.TABLE,
            params={"id": f"eq.{appointment_id}", "status": f"in.({allowed})"},
            json={"status": to_status.value, "updated_at": datetime.now(tz=timezone.utc).isoformat()},
            prefer="return=representation",
        )
        return ViewingAppointment.model_validate(rows[0]) if rows else None

    async def list_pending_older_than(self, cutoff: datetime) -> list[ViewingAppointment]:
        rows = await self._client.request(
            "GET", self.TABLE,
            params={
                "status": "eq.pending_owner_approval",
                "created_at": f"lt.{cutoff.isoformat()}",
            },
        )
        return [ViewingAppointment.model_validate(r) for r in rows]

    async def list_time_slots(self) -> list[ViewingTimeSlot]:
        rows = await self._client.request(
            "GET", "viewing_time_slots", params={"order": "start_time.asc"}
        )
        return [ViewingTimeSlot.model_validate(r) for r in rows]

    async def list_all(
        self,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> list[ViewingAppointment]:
        params = _date_window(from_date, to_date)
        params.append(("order", "appointment_date.asc,start_time.asc"))
        rows = await self._client.request("GET", self.TABLE, params=params)
        return [ViewingAppointment.model_validate(r) for r in rows]


def _date_window(from_date: Optional[date], to_date: Optional[date]) -> list[tuple[str, str]]:
    params: list[tuple[str, str]] = []
    if from_date:
        params.append(("appointment_date", f"gte.{from_date.isoformat()}"))
    if to_date:
        params.append(("appointment_date", f"lte.{to_date.isoformat()}"))
    return params
