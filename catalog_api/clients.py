# catalog_api/clients.py
"""Thin async wrappers around the third-party HTTP APIs.

Each call is a single GET; anything other than a 2xx JSON answer is raised
as :class:`UpstreamError`. The ``httpx.AsyncClient`` is a FastAPI dependency
so tests can swap in an ``httpx.MockTransport``.
"""
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx
import structlog
from fastapi import Depends

from .config import Settings, get_settings
from .errors import UpstreamError

logger = structlog.get_logger(__name__)

CEP_FIELDS = ("cep", "logradouro", "complemento", "bairro", "localidade", "uf", "ibge", "gia", "ddd", "siafi")


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    settings = get_settings()
    async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
        yield client


class ExternalApiClient:
    def __init__(self, http: httpx.AsyncClient, settings: Settings):
        self.http = http
        self.settings = settings

    async def _get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            resp = await self.http.get(url, params=params)
        except httpx.HTTPError as e:
            raise UpstreamError(f"GET {url} failed: {e.__class__.__name__}") from e

        if resp.status_code // 100 != 2:
            # Avoid dumping huge bodies; include a small snippet.
            raise UpstreamError(
                f"GET {url} answered {resp.status_code}: {resp.text[:200]}",
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise UpstreamError(f"GET {url} returned invalid JSON") from e

    async def get_address_by_cep(self, cep: str) -> Optional[Dict[str, str]]:
        """ViaCEP lookup; ``None`` when the postal code does not exist."""
        data = await self._get_json(f"{self.settings.cep_api_url.rstrip('/')}/{cep}/json/")
        if not isinstance(data, dict):
            raise UpstreamError("ViaCEP returned an unexpected payload")
        # ViaCEP answers 200 with {"erro": true} (or "true") for unknown codes
        if data.get("erro") in (True, "true"):
            return None
        return {field: str(data.get(field) or "") for field in CEP_FIELDS}

    async def get_exchange_rates(self, base_currency: str) -> Dict[str, Any]:
        data = await self._get_json(f"{self.settings.currency_api_url.rstrip('/')}/{base_currency}")
        rates = data.get("rates") if isinstance(data, dict) else None
        if not isinstance(rates, dict):
            raise UpstreamError("Exchange rate API returned no rates")
        return {
            "base": data.get("base", base_currency),
            "date": data.get("date", ""),
            "rates": rates,
        }

    async def get_random_users(self, count: int) -> List[Dict[str, Any]]:
        data = await self._get_json(self.settings.random_user_api_url, params={"results": count})
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise UpstreamError("Random user API returned no results")
        return [_shape_random_user(raw) for raw in results]

    async def get_geolocation(self, ip: str) -> Any:
        return await self._get_json(f"{self.settings.geolocation_api_url.rstrip('/')}/{ip}")

    async def get_bitcoin_price(self) -> Any:
        return await self._get_json(self.settings.bitcoin_price_url)

    async def get_country(self, name: str) -> Any:
        return await self._get_json(f"{self.settings.country_api_url.rstrip('/')}/{name}")


def _shape_random_user(raw: Dict[str, Any]) -> Dict[str, Any]:
    name = raw.get("name") or {}
    location = raw.get("location") or {}
    street = location.get("street") or {}
    picture = raw.get("picture") or {}
    return {
        "gender": raw.get("gender", ""),
        "name": {
            "title": name.get("title", ""),
            "first": name.get("first", ""),
            "last": name.get("last", ""),
        },
        "location": {
            "street": {"number": street.get("number", 0), "name": street.get("name", "")},
            "city": location.get("city", ""),
            "state": location.get("state", ""),
            "country": location.get("country", ""),
            # randomuser.me sends numeric postcodes for some countries
            "postcode": str(location.get("postcode", "")),
        },
        "email": raw.get("email", ""),
        "picture": {
            "large": picture.get("large", ""),
            "medium": picture.get("medium", ""),
            "thumbnail": picture.get("thumbnail", ""),
        },
    }


def get_external_client(
    http: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> ExternalApiClient:
    return ExternalApiClient(http, settings)
