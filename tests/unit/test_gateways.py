"""
Тесты для Gateways: Token-Issuance, Trade-Routing, Access Gate

Coverage:
- InMemoryBank: factory denom, mint / burn, send, snapshot / restore
- InMemoryRouter: регистрация пулов, failure ack, многошаговый маршрут
- AccessGate: pinned factory
"""

import pytest

from pcl_pool.core.domain import (
    Asset,
    AssetInfo,
    BankSend,
    BurnRequest,
    Coin,
    CreateDenomRequest,
    Env,
    MintRequest,
    Response,
    RouteStep,
    RouteSwapRequest,
)
from pcl_pool.core.errors import GatewayError, Unauthorized
from pcl_pool.gateways import AccessGate, InMemoryBank, InMemoryRouter

LP_DENOM = "factory/pool1/share"


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def bank():
    bank = InMemoryBank()
    bank.fund("alice", [Coin(denom="uosmo", amount=1000)])
    return bank


@pytest.fixture
def factory_bank(bank):
    ack = bank.create_denom(
        CreateDenomRequest(correlation_id=1, creator="pool1", subdenom="share")
    )
    assert ack.success
    return bank


def _fixed_rate_pool(address, out_denom, rate):
    """Sudo handler, отдающий rate * token_in в out_denom."""

    def sudo(env, msg):
        body = msg["swap_exact_amount_in"]
        amount = int(body["token_in"]["amount"]) * rate
        return Response(
            action="swap",
            messages=(
                BankSend(
                    to_address=body["sender"], amount=(Coin(denom=out_denom, amount=amount),)
                ),
            ),
            data={"token_out_amount": str(amount)},
        )

    return sudo


# =============================================================================
# TOKEN-ISSUANCE
# =============================================================================


class TestInMemoryBank:
    """Bank + token factory."""

    def test_create_denom(self, factory_bank):
        assert factory_bank.denom_exists(LP_DENOM)
        assert factory_bank.supply(LP_DENOM) == 0

    def test_create_denom_twice(self, factory_bank):
        ack = factory_bank.create_denom(
            CreateDenomRequest(correlation_id=2, creator="pool1", subdenom="share")
        )

        assert not ack.success
        assert "already exists" in ack.error

    def test_mint_and_burn(self, factory_bank):
        factory_bank.mint(
            MintRequest(correlation_id=2, denom=LP_DENOM, amount=100, recipient="alice")
        )
        ack = factory_bank.burn(
            BurnRequest(correlation_id=3, denom=LP_DENOM, amount=40, owner="alice")
        )

        assert ack.success
        assert ack.amount == 40
        assert factory_bank.balance("alice", LP_DENOM) == 60
        assert factory_bank.supply(LP_DENOM) == 60

    def test_mint_non_factory_denom(self, bank):
        ack = bank.mint(MintRequest(correlation_id=1, denom="uosmo", amount=1, recipient="alice"))

        assert not ack.success
        assert bank.supply("uosmo") == 1000

    def test_burn_over_balance(self, factory_bank):
        ack = factory_bank.burn(
            BurnRequest(correlation_id=2, denom=LP_DENOM, amount=1, owner="alice")
        )

        assert not ack.success
        assert ack.correlation_id == 2

    def test_send(self, bank):
        bank.send("alice", "bob", [Coin(denom="uosmo", amount=300)])

        assert bank.balance("alice", "uosmo") == 700
        assert bank.balances_of("bob") == {"uosmo": 300}

    def test_send_insufficient_funds(self, bank):
        with pytest.raises(GatewayError) as exc_info:
            bank.send("alice", "bob", [Coin(denom="uosmo", amount=1001)])

        assert exc_info.value.details["actual"] == 1000
        assert bank.balance("bob", "uosmo") == 0

    def test_snapshot_restore(self, bank):
        snapshot = bank.snapshot()
        bank.send("alice", "bob", [Coin(denom="uosmo", amount=300)])

        bank.restore(snapshot)

        assert bank.balance("alice", "uosmo") == 1000
        assert bank.balances_of("bob") == {}

    def test_unknown_denom(self, bank):
        assert not bank.denom_exists("uatom")


# =============================================================================
# TRADE-ROUTING
# =============================================================================


class TestInMemoryRouter:
    """Routing модуль."""

    @pytest.fixture
    def router(self, bank):
        bank.fund("pool1", [Coin(denom="uusd", amount=10_000)])
        bank.fund("pool2", [Coin(denom="uatom", amount=10_000)])
        router = InMemoryRouter(bank)
        router.register_pool("pool1", _fixed_rate_pool("pool1", "uusd", 2))
        router.register_pool("pool2", _fixed_rate_pool("pool2", "uatom", 3))
        return router

    @staticmethod
    def _request(route, amount=100):
        return RouteSwapRequest(
            correlation_id=1,
            sender="alice",
            offer=Asset(info=AssetInfo.native("uosmo"), amount=amount),
            route=tuple(RouteStep(**step) for step in route),
            recipient="alice",
        )

    def test_register_assigns_ids(self, router):
        assert router.pool_address(1) == "pool1"
        assert router.pool_address(2) == "pool2"
        assert router.pool_address(3) is None

    def test_register_duplicate_id(self, router):
        with pytest.raises(GatewayError):
            router.register_pool("pool3", _fixed_rate_pool("pool3", "uusd", 1), pool_id=1)

    def test_multi_step_route(self, router, bank):
        request = self._request(
            [
                {"pool_id": 1, "token_out_denom": "uusd"},
                {"pool_id": 2, "token_out_denom": "uatom"},
            ]
        )

        ack = router.route_swap(Env(block_time=0), request)

        assert ack.success
        assert ack.return_asset.amount == 600
        # Отправитель не является пулом маршрута
        assert ack.pool_fill is None
        assert bank.balance("alice", "uatom") == 600
        assert bank.balance("alice", "uosmo") == 900

    def test_origin_pool_fill(self, bank):
        bank.fund("pool1", [Coin(denom="uusd", amount=10_000), Coin(denom="uosmo", amount=100)])
        router = InMemoryRouter(bank)
        router.register_pool("pool1", _fixed_rate_pool("pool1", "uusd", 2))
        request = RouteSwapRequest(
            correlation_id=5,
            sender="pool1",
            offer=Asset(info=AssetInfo.native("uosmo"), amount=100),
            route=(RouteStep(pool_id=1, token_out_denom="uusd"),),
            recipient="alice",
        )

        ack = router.route_swap(Env(block_time=0), request)

        assert ack.pool_fill.amount == 200
        assert ack.correlation_id == 5

    def test_unknown_pool(self, router):
        ack = router.route_swap(
            Env(block_time=0), self._request([{"pool_id": 9, "token_out_denom": "uusd"}])
        )

        assert not ack.success
        assert "Unknown pool ids" in ack.error

    def test_insufficient_offer(self, router):
        ack = router.route_swap(
            Env(block_time=0),
            self._request([{"pool_id": 1, "token_out_denom": "uusd"}], amount=5000),
        )

        assert not ack.success
        assert "Insufficient funds" in ack.error


# =============================================================================
# ACCESS GATE
# =============================================================================


class TestAccessGate:
    """Pinned factory."""

    def test_factory_is_authorized(self):
        gate = AccessGate("factory")

        assert gate.is_authorized_instantiator("factory")
        gate.assert_factory("factory")

    def test_other_caller(self):
        gate = AccessGate("factory")

        assert not gate.is_authorized_instantiator("mallory")
        with pytest.raises(Unauthorized) as exc_info:
            gate.assert_factory("mallory")

        assert exc_info.value.details == {"sender": "mallory"}
