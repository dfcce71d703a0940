"""Tests for the OVHcloud adapter."""

import hashlib

import httpx
import pytest

from pricetracker.config import Settings
from pricetracker.ingest.base import AdapterConfigurationError
from pricetracker.ingest.http_client import AuthenticationError
from pricetracker.ingest.providers.ovh import (
    OVHAdapter,
    availability_to_stock,
    better_availability,
    parse_invoice_name,
    parse_storage_addon,
)
from pricetracker.normalize.processor import ProductNormalizer


def _plan(plan_code, product, invoice_name="SCALE-a1 | EPYC 9254", price=100_000_000_000):
    return {
        "planCode": plan_code,
        "product": product,
        "invoiceName": invoice_name,
        "addonFamilies": [
            {"name": "memory", "default": "ram-384g-ecc-4800-26scaleamd01", "addons": []},
            {"name": "storage", "default": "softraid-2x1920nvme-pcie-gen5", "addons": []},
        ],
        "pricings": [
            {"intervalUnit": "month", "capacities": ["installation"], "commitment": 0,
             "mode": "default", "price": 1},
            {"intervalUnit": "month", "capacities": ["renew"], "commitment": 12,
             "mode": "default", "price": 1},
            {"intervalUnit": "month", "capacities": ["renew"], "commitment": 0,
             "mode": "default", "price": price},
        ],
    }


CATALOG = {
    "plans": [
        _plan("26scaleamd01-sgp", "26scaleamd01", invoice_name="SCALE-a1-SGP | EPYC 9254"),
        _plan("26scaleamd01", "26scaleamd01"),
        _plan("26sk10", "26sk10", invoice_name="KS-1 | Intel Atom"),
    ]
}

AVAILABILITIES = [
    {"datacenters": [
        {"datacenter": "bhs", "availability": "unavailable"},
        {"datacenter": "vin", "availability": "72H"},
    ]},
    {"datacenters": [{"datacenter": "bhs", "availability": "1H-low"}]},
]


def _adapter(test_settings, regions, handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OVHAdapter(config=test_settings, regions=regions, client=client)


def _handler(availability_status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/order/catalog/public/baremetalServers"):
            return httpx.Response(200, json=CATALOG)
        if request.url.path.endswith("/dedicated/server/datacenter/availabilities"):
            if availability_status != 200:
                return httpx.Response(availability_status)
            assert request.url.params["server"] == "26scaleamd01"
            return httpx.Response(200, json=AVAILABILITIES)
        return httpx.Response(404)

    return handler


def test_availability_helpers():
    assert better_availability("72H", "1H-low") == "1H-low"
    assert better_availability("24H", "24H") == "24H"
    assert availability_to_stock("unavailable").in_stock is False
    assert availability_to_stock("1H-high").quantity == 10
    assert availability_to_stock("480H").in_stock is True


def test_parse_invoice_name():
    assert parse_invoice_name("SCALE-a1 | AMD EPYC 9135") == ("SCALE-a1", "AMD EPYC 9135")
    assert parse_invoice_name("ADVANCE-1") == ("ADVANCE-1", "Unknown CPU")


def test_parse_storage_addon():
    summary = parse_storage_addon("softraid-2x1920nvme-pcie-gen5")
    assert summary.description == "2x 1.92TB NVMe SSD"
    assert summary.total_tb == pytest.approx(3.84)
    assert parse_storage_addon("noraid-0").total_tb == 0.0


def test_signature(test_settings, regions):
    adapter = OVHAdapter(config=test_settings, regions=regions)
    url = "https://ca.api.ovh.com/1.0/dedicated/server"
    expected = hashlib.sha1(
        f"app-secret+consumer-key+GET+{url}++1700000000".encode()
    ).hexdigest()
    assert adapter.sign("GET", url, "", 1700000000) == f"$1${expected}"


@pytest.mark.asyncio
async def test_signed_headers_are_sent(test_settings, regions):
    seen = []

    def handler(request):
        seen.append(request)
        return _handler()(request)

    adapter = _adapter(test_settings, regions, handler)
    await adapter.fetch_catalog()
    await adapter.close()

    request = seen[0]
    timestamp = int(request.headers["X-Ovh-Timestamp"])
    assert request.headers["X-Ovh-Application"] == "app-key"
    assert request.headers["X-Ovh-Signature"] == adapter.sign("GET", str(request.url), "", timestamp)


@pytest.mark.asyncio
async def test_fetch_catalog_one_entry_per_datacenter(test_settings, regions):
    adapter = _adapter(test_settings, regions, _handler())
    entries = await adapter.fetch_catalog()
    await adapter.close()

    by_dc = {e.payload["datacenter"]: e for e in entries}
    assert set(by_dc) == {"bhs", "vin"}
    # Best availability per datacenter wins
    assert by_dc["bhs"].payload["availability"] == "1H-low"
    # The base plan is used, not the regional duplicate
    assert by_dc["bhs"].payload["plan"]["planCode"] == "26scaleamd01"


@pytest.mark.asyncio
async def test_normalized_entry(test_settings, regions):
    adapter = _adapter(test_settings, regions, _handler())
    entries = await adapter.fetch_catalog()
    await adapter.close()

    entry = next(e for e in entries if e.payload["datacenter"] == "bhs")
    product = ProductNormalizer().normalize(adapter, entry)

    assert product.name == "SCALE-A1 (26scaleamd01)"
    assert product.cpu == "AMD EPYC 9254"
    assert product.cpu_cores == 24
    assert product.ram_gb == 384
    assert product.storage_total_tb == pytest.approx(3.84)
    assert product.network_gbps == 25
    # 1000 CAD at 0.74, whole dollars
    assert product.price_usd == 740.0
    assert product.city.code == "ovh-bhs"
    assert product.city.country == "Canada"
    assert product.in_stock is True
    assert product.quantity == 3


@pytest.mark.asyncio
async def test_failed_availability_is_a_unit_failure(test_settings, regions):
    adapter = _adapter(test_settings, regions, _handler(availability_status=503))
    entries = await adapter.fetch_catalog()
    await adapter.close()

    assert entries == []
    assert adapter.failed_units == ["availability:26scaleamd01"]


@pytest.mark.asyncio
async def test_rejected_credentials_abort(test_settings, regions):
    adapter = _adapter(test_settings, regions, lambda request: httpx.Response(403))
    with pytest.raises(AuthenticationError):
        await adapter.fetch_catalog()
    await adapter.close()


def test_missing_credentials(regions):
    adapter = OVHAdapter(config=Settings(ovh_app_key=""), regions=regions)
    with pytest.raises(AdapterConfigurationError):
        adapter.validate_config()


@pytest.mark.asyncio
async def test_malformed_availability_only_costs_its_server(test_settings, regions):
    catalog = {"plans": CATALOG["plans"] + [_plan("26scaleamd02", "26scaleamd02")]}

    def handler(request):
        if request.url.path.endswith("/order/catalog/public/baremetalServers"):
            return httpx.Response(200, json=catalog)
        if request.url.params["server"] == "26scaleamd01":
            return httpx.Response(200, json=[{"datacenters": [{"availability": "1H-low"}]}])
        return httpx.Response(200, json=AVAILABILITIES)

    adapter = _adapter(test_settings, regions, handler)
    entries = await adapter.fetch_catalog()
    await adapter.close()

    assert adapter.failed_units == ["availability:26scaleamd01"]
    assert {e.payload["product"] for e in entries} == {"26scaleamd02"}
    assert {e.payload["datacenter"] for e in entries} == {"bhs", "vin"}
