"""
Matrix client-server API as an application service.

Requests are made with the appservice token and puppet virtual identities
through the user_id query parameter. requests is blocking, so every call runs
in a worker thread.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional
from urllib.parse import quote
from uuid import uuid4

import requests

from review_bridge.adapters.base import RoomIntent, TransportError
from review_bridge.infra.logging_config import get_logger

logger = get_logger("matrix")

CLIENT_API = "/_matrix/client/v3"
TIMEOUT_SECONDS = 30


class MatrixRoomIntent(RoomIntent):
    def __init__(
        self,
        homeserver_url: str,
        as_token: str,
        bot_user_id: str,
        timeout: int = TIMEOUT_SECONDS,
    ) -> None:
        self._base_url = homeserver_url.rstrip("/") + CLIENT_API
        self._as_token = as_token
        self.bot_user_id = bot_user_id
        self._timeout = timeout
        self._joined: set[tuple[str, str]] = set()
        self._registered: set[str] = set()

    def _request(
        self,
        method: str,
        path: str,
        *,
        user_id: Optional[str] = None,
        json: Optional[dict[str, Any]] = None,
        ok_errcodes: tuple[str, ...] = (),
    ) -> dict[str, Any]:
        params = {"user_id": user_id} if user_id else None
        headers = {"Authorization": f"Bearer {self._as_token}"}
        url = f"{self._base_url}{path}"
        try:
            resp = requests.request(
                method,
                url,
                params=params,
                headers=headers,
                json=json,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        try:
            data = resp.json() if resp.content else {}
        except ValueError:
            data = {}
        if resp.status_code >= 400:
            errcode = data.get("errcode") if isinstance(data, dict) else None
            if errcode and errcode in ok_errcodes:
                return data
            raise TransportError(
                f"{method} {path} returned HTTP {resp.status_code}: "
                f"{errcode or (resp.text[:200] if resp.text else 'no body')}"
            )
        return data if isinstance(data, dict) else {}

    async def _call(self, *args: Any, **kwargs: Any) -> dict[str, Any]:
        return await asyncio.to_thread(self._request, *args, **kwargs)

    async def ensure_identity(self, identity_key: str, display_name: Optional[str] = None) -> None:
        if identity_key in self._registered or identity_key == self.bot_user_id:
            return
        localpart = identity_key[1:].split(":", 1)[0]
        await self._call(
            "POST",
            "/register",
            json={"type": "m.login.application_service", "username": localpart},
            ok_errcodes=("M_USER_IN_USE",),
        )
        if display_name:
            await self._call(
                "PUT",
                f"/profile/{quote(identity_key)}/displayname",
                user_id=identity_key,
                json={"displayname": display_name},
            )
        self._registered.add(identity_key)
        logger.info("Registered virtual identity %s", identity_key)

    async def join_room(self, room_id: str, sender: Optional[str] = None) -> None:
        user_id = sender or self.bot_user_id
        if (room_id, user_id) in self._joined:
            return
        await self._call("POST", f"/join/{quote(room_id)}", user_id=user_id, json={})
        self._joined.add((room_id, user_id))

    async def send_message(
        self, room_id: str, content: dict[str, Any], sender: Optional[str] = None
    ) -> str:
        txn_id = uuid4().hex
        data = await self._call(
            "PUT",
            f"/rooms/{quote(room_id)}/send/m.room.message/{txn_id}",
            user_id=sender or self.bot_user_id,
            json=content,
        )
        event_id = data.get("event_id")
        if not event_id:
            raise TransportError(f"send to {room_id} returned no event id")
        return event_id

    async def get_profile(self, identity_key: str) -> dict[str, Any]:
        return await self._call(
            "GET",
            f"/profile/{quote(identity_key)}",
            ok_errcodes=("M_NOT_FOUND",),
        )
