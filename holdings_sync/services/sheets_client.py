from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx
from loguru import logger

from holdings_sync.core.errors import SetupFailure
from holdings_sync.core.settings import Settings, settings as default_settings

# formula text is evaluated by the store, not stored literally
VALUE_INPUT_OPTION = "USER_ENTERED"


def a1(sheet: str, ref: str) -> str:
    """'Holdings Detail', 'A1:K1' -> "'Holdings Detail'!A1:K1". Always quoted."""
    escaped = sheet.replace("'", "''")
    return f"'{escaped}'!{ref}"


class SheetsClient:
    """
    Minimal async wrapper over the spreadsheet values API.
    Every method is one remote call; errors surface as httpx.HTTPError.
    """
    def __init__(self, spreadsheet_id: str, client: httpx.AsyncClient):
        self.spreadsheet_id = spreadsheet_id
        self.client = client

    def _url(self, range_: Optional[str] = None, action: str = "") -> str:
        base = f"spreadsheets/{self.spreadsheet_id}/values"
        if range_ is None:
            return f"{base}{action}"
        return f"{base}/{quote(range_, safe='')}{action}"

    async def _request(self, method: str, url: str, **kwargs) -> Dict[str, Any]:
        resp = await self.client.request(method, url, **kwargs)
        resp.raise_for_status()
        if not resp.content:
            return {}
        return resp.json()

    async def get(self, range_: str) -> List[List[Any]]:
        data = await self._request("GET", self._url(range_))
        # the API omits "values" entirely for an empty range
        return data.get("values") or []

    async def update(self, range_: str, values: List[List[Any]]) -> Dict[str, Any]:
        return await self._request(
            "PUT", self._url(range_),
            params={"valueInputOption": VALUE_INPUT_OPTION},
            json={"range": range_, "majorDimension": "ROWS", "values": values},
        )

    async def append(self, range_: str, values: List[List[Any]]) -> Dict[str, Any]:
        return await self._request(
            "POST", self._url(range_, ":append"),
            params={"valueInputOption": VALUE_INPUT_OPTION, "insertDataOption": "INSERT_ROWS"},
            json={"range": range_, "majorDimension": "ROWS", "values": values},
        )

    async def clear(self, range_: str) -> Dict[str, Any]:
        return await self._request("POST", self._url(range_, ":clear"), json={})

    async def batch_update(self, data: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await self._request(
            "POST", self._url(action=":batchUpdate"),
            json={"valueInputOption": VALUE_INPUT_OPTION, "data": data},
        )

    async def aclose(self) -> None:
        await self.client.aclose()


def open_client(cfg: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None) -> SheetsClient:
    """
    Builds the authorized session. Missing credentials are logged as a
    SetupFailure but do not raise: the client is still returned and each
    remote call then fails on its own.
    """
    cfg = cfg or default_settings
    headers = {"Accept": "application/json"}
    try:
        if not cfg.spreadsheet_id:
            raise SetupFailure("GOOGLE_SHEET_ID missing")
        if not cfg.access_token:
            raise SetupFailure("GOOGLE_SHEETS_TOKEN missing")
        headers["Authorization"] = f"Bearer {cfg.access_token}"
        logger.info("Spreadsheet API session initialized")
    except SetupFailure as e:
        logger.error(f"Error setting up spreadsheet session: {e}")

    client = httpx.AsyncClient(
        base_url=cfg.api_base.rstrip("/") + "/",
        headers=headers,
        timeout=cfg.http_timeout_s,
        transport=transport,
    )
    return SheetsClient(cfg.spreadsheet_id, client)
