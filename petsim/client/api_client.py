import logging
import os
from typing import Any, Dict, List, Optional

import requests

from ..core.errors import ApiError, NotFound, TransientNetworkFailure


class GameApiClient:
    """HTTP client for the game server's /api routes."""

    def __init__(self, api_base: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """
        Send one request and decode its JSON body.

        Raises:
            TransientNetworkFailure: Connection refused, DNS failure or timeout.
            NotFound: The server answered 404.
            ApiError: Any other error status or a non-JSON body.
        """
        url = f"{self.api_base}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            raise TransientNetworkFailure(f"{method} {url} failed: {e}") from e

        if response.status_code == 404:
            raise NotFound(self._error_message(response) or f"{path} not found")
        if response.status_code >= 400:
            message = self._error_message(response)
            logging.error(f"HTTP error {response.status_code} from {method} {url}: {message}")
            raise ApiError(response.status_code, message)

        try:
            return response.json()
        except ValueError as e:
            raise ApiError(response.status_code, f"Response from {url} is not JSON") from e

    @staticmethod
    def _error_message(response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, dict):
            return str(body.get("message") or body.get("detail") or "")
        return ""

    # ========== GAME ==========

    def load_game(self, player_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/game/{player_id}")

    def save_game(self, player_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/game/{player_id}", json=data)

    def get_history(self, player_id: str) -> List[Dict[str, Any]]:
        return self._request("GET", f"/history/{player_id}")

    # ========== CLANS ==========

    def list_clans(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/clans")

    def create_clan(self, name: str, player_id: str, player_name: str) -> Dict[str, Any]:
        body = self._request("POST", "/clans", json={"name": name, "playerId": player_id, "playerName": player_name})
        return body["clan"]

    def join_clan(self, clan_id: str, player_id: str, player_name: str) -> Dict[str, Any]:
        body = self._request("POST", f"/clans/{clan_id}/join", json={"playerId": player_id, "playerName": player_name})
        return body["clan"]

    # ========== TRADES ==========

    def list_trades(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/trades")

    def post_trade(self, draft: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/trades", json=draft)["trade"]

    def set_trade_status(self, trade_id: str, status: str) -> Dict[str, Any]:
        return self._request("POST", f"/trades/{trade_id}/status", json={"status": status})["trade"]

    # ========== UPLOADS ==========

    def upload_image(self, file_path: str) -> Dict[str, Any]:
        """Upload an image file as the multipart `image` field."""
        with open(file_path, "rb") as f:
            return self._request("POST", "/upload", files={"image": (os.path.basename(file_path), f)})
