from __future__ import annotations

import os
import sys
import time
import uuid
from typing import Any, Dict, List, Optional

import requests

API_BASE_URL = os.getenv("API_BASE_URL", "http://bedwatch-api:5000").rstrip("/")


class ApiError(RuntimeError):
    def __init__(self, status_code: int, detail: str, code: str | None = None):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail
        self.code = code


class ApiClient:
    def __init__(self, base_url: str = API_BASE_URL, session_id: Optional[str] = None, timeout: float = 8.0):
        self.base_url = base_url.rstrip("/")
        self.session_id = session_id or uuid.uuid4().hex
        self.timeout = timeout

    def _req(self, method: str, path: str, *, params: Optional[Dict[str, Any]] = None,
             json_body: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            r = requests.request(method, url, headers={"Accept": "application/json"}, params=params,
                                 json=json_body, timeout=self.timeout)
        except requests.RequestException as e:
            raise ApiError(0, f"API unreachable: {e}") from e

        if not r.ok:
            detail, code = r.text, None
            try:
                body = r.json()
                detail = body.get("detail") or body.get("title") or r.text
                code = body.get("code")
            except ValueError:
                pass
            raise ApiError(r.status_code, (detail or "").strip() or "Request failed", code)

        if not r.content:
            return None
        return r.json()

    def health(self) -> Dict[str, Any]:
        return self._req("GET", "/v1/health")

    def post_reading(self, room: str, bed: str, weight: float) -> Dict[str, Any]:
        return self._req("POST", "/v1/readings", json_body={"room": room, "bed": bed, "weight": weight})

    def recent_readings(self, limit: int = 10, room: Optional[str] = None, bed: Optional[str] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"limit": limit}
        if room: params["room"] = room
        if bed: params["bed"] = bed
        return self._req("GET", "/v1/readings", params=params)

    def upsert_patient(self, room: str, bed: str, **fields: Any) -> Dict[str, Any]:
        return self._req("POST", "/v1/patients", json_body={"room": room, "bed": bed, **fields})

    def patient(self, room: str, bed: str) -> Optional[Dict[str, Any]]:
        """Patient record, or None when the bed has no patient assigned."""
        try:
            return self._req("GET", f"/v1/patients/{room}/{bed}")
        except ApiError as e:
            if e.status_code == 404:
                return None
            raise

    def patient_count(self) -> int:
        return self._req("GET", "/v1/patients/count")["count"]

    def room_count(self) -> int:
        return self._req("GET", "/v1/rooms/count")["count"]

    def current_alert(self) -> Dict[str, Any]:
        return self._req("GET", "/v1/alerts/current", params={"session": self.session_id})


def watch(client: ApiClient, interval: float = 2.0, iterations: Optional[int] = None, out=sys.stdout) -> int:
    """Poll the alert endpoint and print each alert the server tells us to raise."""
    raised = 0
    i = 0
    while iterations is None or i < iterations:
        i += 1
        try:
            res = client.current_alert()
        except ApiError as e:
            print(f"alert poll failed: {e}", file=out)
        else:
            if res.get("raise_alert") and res.get("alert"):
                a = res["alert"]
                raised += 1
                print(f"CRITICAL room={a['room']} bed={a['bed']} weight={a['weight']} at {a['timestamp']}", file=out)
        if iterations is None or i < iterations:
            time.sleep(interval)
    return raised


def main() -> None:
    interval = float(os.getenv("WATCH_INTERVAL_SECONDS", "2"))
    print(f"Watching {API_BASE_URL} for critical weight alerts.")
    watch(ApiClient(), interval=interval)

if __name__ == "__main__":
    main()
