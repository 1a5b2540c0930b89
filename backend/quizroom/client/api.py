"""Blocking JSON transport for the rooms HTTP surface.

Every call either returns the decoded JSON body or raises: a RoomError
subclass when the server rejected the request, NetworkFailure when the
request was lost (connection error, timeout, 5xx without an error code,
unreadable body).
"""

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from typing import Optional

from quizroom.services.rooms.errors import ERRORS_BY_CODE, NetworkFailure, error_from_payload

logger = logging.getLogger(__name__)


class RoomsClient:
    def __init__(self, base_url: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    def _request(self, method: str, path: str, payload: Optional[dict] = None,
                 params: Optional[dict] = None):
        url = f'{self.base_url}/api/rooms{path}'
        if params:
            query = {k: v for k, v in params.items() if v is not None}
            if query:
                url = f'{url}?{urllib.parse.urlencode(query)}'
        data = json.dumps(payload).encode('utf-8') if payload is not None else None
        req = urllib.request.Request(url, data=data, method=method)
        req.add_header('Accept', 'application/json')
        if data is not None:
            req.add_header('Content-Type', 'application/json')

        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                body = resp.read()
        except urllib.error.HTTPError as exc:
            raise self._rejected(exc) from exc
        except (urllib.error.URLError, OSError) as exc:
            logger.warning(f"[fetch-failed] {method} {url}: {exc}")
            raise NetworkFailure(str(exc)) from exc

        try:
            return json.loads(body.decode('utf-8')) if body else {}
        except ValueError as exc:
            raise NetworkFailure(f'Unreadable response from {url}') from exc

    @staticmethod
    def _rejected(exc: urllib.error.HTTPError) -> Exception:
        try:
            payload = json.loads(exc.read().decode('utf-8'))
        except (ValueError, OSError):
            payload = None
        if isinstance(payload, dict) and payload.get('code') in ERRORS_BY_CODE:
            return error_from_payload(payload)
        if exc.code >= 500 or not isinstance(payload, dict):
            return NetworkFailure(f'HTTP {exc.code}')
        return error_from_payload(payload)

    # ---- reads ----

    def fetch_rooms(self, status: Optional[str] = None):
        return self._request('GET', '', params={'status': status})

    def fetch_room(self, room_code: str):
        return self._request('GET', f'/{room_code}')

    def fetch_state(self, room_code: str, player_id: Optional[str] = None):
        return self._request('GET', f'/{room_code}/state', params={'playerId': player_id})

    # ---- mutations ----

    def create(self, host_name: str, config: Optional[dict] = None, password: Optional[str] = None,
               player_id: Optional[str] = None, avatar_id: Optional[int] = None):
        return self._request('POST', '/create', {
            'hostName': host_name,
            'config': config or {},
            'password': password,
            'playerId': player_id,
            'avatarId': avatar_id,
        })

    def join(self, room_code: str, name: str, password: Optional[str] = None,
             player_id: Optional[str] = None, avatar_id: Optional[int] = None):
        return self._request('POST', '/join', {
            'roomCode': room_code,
            'name': name,
            'password': password,
            'playerId': player_id,
            'avatarId': avatar_id,
        })

    def start(self, room_code: str, player_id: str):
        return self._request('POST', f'/{room_code}/start', {'playerId': player_id})

    def leave(self, room_code: str, player_id: str):
        return self._request('POST', f'/{room_code}/leave', {'playerId': player_id})

    def submit_answer(self, room_code: str, player_id: str, question_id: str, selected_option_index: int):
        return self._request('POST', '/answer', {
            'playerId': player_id,
            'roomCode': room_code,
            'questionId': question_id,
            'selectedOptionIndex': selected_option_index,
        })
