"""Tests for ownership registry clients."""

import json

import httpx
import pytest

from drain.address import normalize_address
from drain.errors import RegistryError
from drain.registry import AptosRegistryClient, LocalOwnershipRegistry, MSAFE_MODULES_ACCOUNT


OWNER = normalize_address("0x1234")
WALLET_A = normalize_address("0xaaaa")
WALLET_B = normalize_address("0xbbbb")
PENDING = normalize_address("0xcccc")


class TestLocalOwnershipRegistry:
    def test_register_and_lookup(self, tmp_path):
        registry = LocalOwnershipRegistry(tmp_path / "registry.json")
        registry.register(OWNER, WALLET_A)
        registry.register(OWNER, WALLET_B)
        registry.register(OWNER, PENDING, pending=True)

        assert registry.owned_by(OWNER) == {WALLET_A, WALLET_B}
        pendings, owned = registry.get_owned_wallets(OWNER)
        assert pendings == [PENDING]
        assert owned == [WALLET_A, WALLET_B]

    def test_unknown_owner_owns_nothing(self, tmp_path):
        registry = LocalOwnershipRegistry(tmp_path / "registry.json")
        assert registry.owned_by(OWNER) == set()

    def test_confirming_pending_moves_wallet(self, tmp_path):
        registry = LocalOwnershipRegistry(tmp_path / "registry.json")
        registry.register(OWNER, PENDING, pending=True)
        registry.register(OWNER, PENDING)
        assert registry.get_owned_wallets(OWNER) == ([], [PENDING])

    def test_unregister(self, tmp_path):
        registry = LocalOwnershipRegistry(tmp_path / "registry.json")
        registry.register(OWNER, WALLET_A)
        registry.unregister(OWNER, WALLET_A)
        assert registry.owned_by(OWNER) == set()

    def test_state_persists(self, tmp_path):
        LocalOwnershipRegistry(tmp_path / "registry.json").register("0x1234", "0xaaaa")
        assert LocalOwnershipRegistry(tmp_path / "registry.json").owned_by(OWNER) == {WALLET_A}


def table_map(handle, length):
    return {"data": {"inner": {"handle": handle}, "length": str(length)}}


def make_client(handler):
    http = httpx.Client(
        transport=httpx.MockTransport(handler),
        base_url="https://fullnode.test/v1",
    )
    return AptosRegistryClient(http=http)


class TestAptosRegistryClient:
    def test_reads_owned_and_pending_tables(self):
        tables = {
            "0x111": [WALLET_A, "0xbbbb"],
            "0x222": [PENDING],
        }
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path))
            if request.method == "GET":
                return httpx.Response(
                    200,
                    json={
                        "type": f"{MSAFE_MODULES_ACCOUNT}::registry::OwnerMomentumSafes",
                        "data": {
                            "msafes": table_map("0x111", 2),
                            "pendings": table_map("0x222", 1),
                        },
                    },
                )
            body = json.loads(request.content)
            assert body["key_type"] == "u64"
            assert body["value_type"].endswith("::table_map::Element<address, bool>")
            handle = request.url.path.split("/")[-2]
            return httpx.Response(200, json={"key": tables[handle][int(body["key"])], "value": True})

        with make_client(handler) as client:
            pendings, owned = client.get_owned_wallets("0x1234")

        assert owned == [WALLET_A, WALLET_B]
        assert pendings == [PENDING]
        assert seen[0] == (
            "GET",
            f"/v1/accounts/{OWNER}/resource/{MSAFE_MODULES_ACCOUNT}::registry::OwnerMomentumSafes",
        )
        assert ("POST", "/v1/tables/0x111/item") in seen

    def test_owned_by_excludes_pending(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(
                    200,
                    json={"data": {"msafes": table_map("0x111", 0), "pendings": table_map("0x222", 1)}},
                )
            return httpx.Response(200, json={"key": PENDING, "value": True})

        client = make_client(handler)
        assert client.owned_by(OWNER) == set()

    def test_unregistered_owner(self):
        client = make_client(lambda request: httpx.Response(404, json={"error_code": "resource_not_found"}))
        assert client.get_owned_wallets(OWNER) == ([], [])

    def test_server_error(self):
        client = make_client(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(RegistryError, match="500"):
            client.owned_by(OWNER)

    def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        with pytest.raises(RegistryError, match="Registry request failed"):
            client.owned_by(OWNER)

    def test_table_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(
                    200,
                    json={"data": {"msafes": table_map("0x111", 1), "pendings": table_map("0x222", 0)}},
                )
            return httpx.Response(400, json={"message": "bad table"})

        client = make_client(handler)
        with pytest.raises(RegistryError, match="0x111"):
            client.owned_by(OWNER)

    def test_owned_by_does_not_read_pending_table(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(
                    200,
                    json={"data": {"msafes": table_map("0x111", 1), "pendings": table_map("0x222", 1)}},
                )
            if request.url.path.endswith("/tables/0x222/item"):
                return httpx.Response(500, json={"message": "pending table unavailable"})
            return httpx.Response(200, json={"key": WALLET_A, "value": True})

        client = make_client(handler)
        assert client.owned_by(OWNER) == {WALLET_A}
        with pytest.raises(RegistryError, match="0x222"):
            client.get_owned_wallets(OWNER)
