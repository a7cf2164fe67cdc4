# catalog_api/external.py
import ipaddress
from typing import Awaitable, Optional, TypeVar

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from .clients import ExternalApiClient, get_external_client
from .errors import UpstreamError

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/external", tags=["external"])

T = TypeVar("T")

VALID_CURRENCIES = ("USD", "EUR", "BRL", "GBP", "JPY", "CAD", "AUD")
FALLBACK_IP = "8.8.8.8"


def _public_ip(host: Optional[str]) -> Optional[str]:
    """The host when it is a public IP address, else None."""
    try:
        addr = ipaddress.ip_address(host or "")
    except ValueError:
        return None
    if addr.is_loopback or addr.is_private:
        return None
    return host


async def _upstream(call: Awaitable[T], not_found: str) -> T:
    """Await an upstream call, mapping failures to client-facing errors.

    Upstream failures become 404 with ``not_found``; anything else becomes a
    generic 400. Exception text goes to the log only.
    """
    try:
        return await call
    except UpstreamError as e:
        logger.warning("upstream_request_failed", error=str(e), upstream_status=e.status_code)
        raise HTTPException(status_code=404, detail=not_found) from e
    except Exception as e:
        logger.exception("upstream_unexpected_error")
        raise HTTPException(
            status_code=400,
            detail="Unexpected error while contacting the external service",
        ) from e


# 📮 Адрес по CEP (ViaCEP)
@router.get("/cep/{cep}", response_model=dict)
async def address_by_cep(cep: str, client: ExternalApiClient = Depends(get_external_client)):
    if len(cep) != 8 or not cep.isdigit():
        raise HTTPException(status_code=400, detail="CEP must contain exactly 8 digits")

    address = await _upstream(client.get_address_by_cep(cep), "CEP not found or lookup failed")
    if address is None:
        raise HTTPException(status_code=404, detail="CEP not found")
    return address


# 💱 Курсы валют
@router.get("/exchange-rates", response_model=dict)
async def exchange_rates(
    base_currency: str = Query("USD", alias="baseCurrency"),
    client: ExternalApiClient = Depends(get_external_client),
):
    base = base_currency.upper()
    if base not in VALID_CURRENCIES:
        raise HTTPException(
            status_code=400,
            detail="Invalid base currency. Valid currencies: " + ", ".join(VALID_CURRENCIES),
        )
    return await _upstream(client.get_exchange_rates(base), "Exchange rates are unavailable")


@router.get("/convert", response_model=dict)
async def convert_currency(
    amount: float = 0,
    from_currency: str = Query("USD", alias="from"),
    to_currency: str = Query("BRL", alias="to"),
    client: ExternalApiClient = Depends(get_external_client),
):
    if amount <= 0:
        raise HTTPException(status_code=400, detail="Amount must be greater than zero")

    source, target = from_currency.upper(), to_currency.upper()
    rates = await _upstream(client.get_exchange_rates(source), "Exchange rate unavailable or currency not supported")
    rate = rates["rates"].get(target)
    if rate is None:
        raise HTTPException(status_code=404, detail="Exchange rate unavailable or currency not supported")

    return {
        "original_amount": amount,
        "from_currency": source,
        "to_currency": target,
        "exchange_rate": rate,
        "converted_amount": round(amount * float(rate), 2),
        "date": rates["date"],
    }


@router.get("/random-users", response_model=list)
async def random_users(count: int = 5, client: ExternalApiClient = Depends(get_external_client)):
    if count < 1 or count > 50:
        raise HTTPException(status_code=400, detail="count must be between 1 and 50")
    return await _upstream(client.get_random_users(count), "Random users are unavailable")


@router.get("/geolocation")
async def geolocation(
    request: Request,
    ip: Optional[str] = None,
    client: ExternalApiClient = Depends(get_external_client),
):
    if not ip:
        # локальный запуск: подставляем публичный адрес
        ip = _public_ip(request.client.host if request.client else None) or FALLBACK_IP
    return await _upstream(client.get_geolocation(ip), "Geolocation lookup failed")


@router.get("/bitcoin-price")
async def bitcoin_price(client: ExternalApiClient = Depends(get_external_client)):
    return await _upstream(client.get_bitcoin_price(), "Bitcoin price is unavailable")


@router.get("/country/{name}")
async def country_info(name: str, client: ExternalApiClient = Depends(get_external_client)):
    return await _upstream(client.get_country(name), "Country not found")
