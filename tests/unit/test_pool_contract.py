"""
Тесты для Pool Contract: instantiate, queries, update_config, circuit breaker

Coverage:
- Instantiate: pinned factory, пара native активов, init_params, LP denomination
- set_pool_id: только factory и только один раз
- Queries: pool / share / simulation / spot_price / observe / cumulative_prices,
  ни один запрос не пишет в storage
- update_config: params, promote / stop ramp'а amp и gamma, maker fee
- Ownership: propose / drop / claim, TTL предложения
- track_asset_balances: история резервов и asset_balance_at
- Circuit breaker: InvariantViolation → PoolHalted до resume owner'ом
"""

from decimal import Decimal

import pytest

from pcl_pool.core.domain.assets import Coin
from pcl_pool.core.errors import (
    IncorrectPoolParam,
    InsufficientLiquidity,
    InvalidAsset,
    InvalidNumberOfAssets,
    InvalidParameters,
    InvariantViolation,
    PoolHalted,
    Unauthorized,
)
from pcl_pool.core.math.numerical_safeguards import is_close
from pcl_pool.ledger.pool_ledger import LedgerConfig
from pcl_pool.settlement.ownership import MAX_PROPOSAL_TTL

OSMO = "uosmo"
USD = "uusd"
OWNER = "owner"
PROVIDER = "provider"
TRADER = "trader"
NEW_OWNER = "new_owner"

DAY = 86400
SWAP_AMOUNT = 1_000000

# Сравнение 60-значной математики с 28-значным контекстом тестов
REL_TOL = Decimal("1e-20")


# =============================================================================
# HELPERS
# =============================================================================


def _info(denom):
    return {"native_token": {"denom": denom}}


def _asset(denom, amount):
    return {"info": _info(denom), "amount": str(amount)}


def _swap(host, contract, amount=SWAP_AMOUNT, denom=OSMO, sender=TRADER):
    return host.execute(
        contract.address,
        sender,
        {"swap": {"offer_asset": _asset(denom, amount)}},
        funds=[Coin(denom=denom, amount=amount)],
    )


def _provide(host, contract, amount0, amount1, sender=PROVIDER):
    return host.execute(
        contract.address,
        sender,
        {"provide_liquidity": {"assets": [_asset(OSMO, amount0), _asset(USD, amount1)]}},
        funds=[Coin(denom=OSMO, amount=amount0), Coin(denom=USD, amount=amount1)],
    )


def _update_config(host, contract, params, sender=OWNER):
    return host.execute(contract.address, sender, {"update_config": {"params": params}})


def _promote(host, contract, next_amp, next_gamma, future_time):
    return _update_config(
        host,
        contract,
        {
            "promote": {
                "next_amp": next_amp,
                "next_gamma": next_gamma,
                "future_time": future_time,
            }
        },
    )


# =============================================================================
# INSTANTIATE
# =============================================================================


class TestInstantiate:
    """Инстанциация пула pinned factory."""

    def test_create_pool(self, host, empty_pool):
        config = host.query(empty_pool.address, {"config": {}})

        assert config["lp_denom"] == "factory/contract1/astroport/share"
        assert config["pool_id"] == 1
        assert config["owner"] == OWNER
        assert config["precisions"] == [6, 6]
        assert config["halted"] is False
        assert host.bank.denom_exists(config["lp_denom"])

    def test_not_factory(self, host, instantiate_msg):
        with pytest.raises(Unauthorized):
            host.instantiate_pool(TRADER, instantiate_msg())

    def test_token_asset(self, host, instantiate_msg):
        msg = instantiate_msg()
        msg["asset_infos"][1] = {"token": {"contract_addr": "osmo1token"}}

        with pytest.raises(InvalidAsset):
            host.instantiate_pool(host.factory_addr, msg)

    def test_three_assets(self, host, instantiate_msg):
        msg = instantiate_msg()
        msg["asset_infos"].append(_info("uatom"))

        with pytest.raises(InvalidNumberOfAssets):
            host.instantiate_pool(host.factory_addr, msg)

    def test_doubling_assets(self, host, instantiate_msg):
        msg = instantiate_msg()
        msg["asset_infos"][1] = _info(OSMO)

        with pytest.raises(InvalidAsset, match="Doubling"):
            host.instantiate_pool(host.factory_addr, msg)

    def test_unknown_denom(self, host, instantiate_msg):
        msg = instantiate_msg()
        msg["asset_infos"][1] = _info("uatom")

        with pytest.raises(InvalidAsset, match="does not exist"):
            host.instantiate_pool(host.factory_addr, msg)

    @pytest.mark.parametrize(
        "init_params,error",
        [
            ({"gamma": "0.03"}, IncorrectPoolParam),
            ({"amp": "0.01"}, IncorrectPoolParam),
            ({"price_scale": "0"}, InvalidParameters),
            ({"mid_fee": "0.004"}, InvalidParameters),
        ],
    )
    def test_invalid_init_params(self, host, instantiate_msg, init_params, error):
        with pytest.raises(error):
            host.instantiate_pool(host.factory_addr, instantiate_msg(**init_params))

    def test_instantiate_twice(self, host, empty_pool, instantiate_msg):
        with pytest.raises(InvalidParameters, match="already instantiated"):
            empty_pool.instantiate(host.env(), host.factory_addr, instantiate_msg())

    def test_invalid_message(self, host):
        with pytest.raises(InvalidParameters):
            host.instantiate_pool(host.factory_addr, {"asset_infos": []})


class TestSetPoolId:
    def test_set_twice(self, host, empty_pool):
        with pytest.raises(InvalidParameters, match="already set"):
            host.execute(empty_pool.address, host.factory_addr, {"set_pool_id": {"pool_id": 7}})

    def test_not_factory(self, host, empty_pool):
        with pytest.raises(Unauthorized):
            host.execute(empty_pool.address, TRADER, {"set_pool_id": {"pool_id": 7}})

    def test_swap_on_empty_pool(self, host, empty_pool):
        with pytest.raises(InsufficientLiquidity):
            _swap(host, empty_pool)


# =============================================================================
# QUERIES
# =============================================================================


class TestQueries:
    """Read-only entry points."""

    def test_pool(self, host, pool):
        response = host.query(pool.address, {"pool": {}})

        assert response["total_share"] == "1000000000"
        assert [a["amount"] for a in response["assets"]] == ["1000000000", "1000000000"]

    def test_share(self, host, pool):
        response = host.query(pool.address, {"share": {"amount": "100000000"}})

        assert [a["amount"] for a in response] == ["100000000", "100000000"]

    def test_total_pool_liquidity(self, host, pool):
        response = host.query(pool.address, {"total_pool_liquidity": {}})

        assert response["total_pool_liquidity"] == [
            {"denom": OSMO, "amount": "1000000000"},
            {"denom": USD, "amount": "1000000000"},
        ]

    def test_compute_d_and_lp_price(self, host, pool):
        d = Decimal(host.query(pool.address, {"compute_d": {}})["d"])
        lp_price = Decimal(host.query(pool.address, {"lp_price": {}})["lp_price"])

        assert is_close(d, Decimal(2000), rel_tol=REL_TOL)
        assert is_close(lp_price, Decimal(2), rel_tol=REL_TOL)

    def test_swap_fee(self, host, pool):
        fee = Decimal(host.query(pool.address, {"swap_fee": {}})["swap_fee"])

        assert is_close(fee, Decimal("0.003"), rel_tol=REL_TOL)

    def test_spot_price(self, host, pool):
        response = host.query(
            pool.address, {"spot_price": {"quote_asset_denom": USD, "base_asset_denom": OSMO}}
        )

        assert is_close(Decimal(response["spot_price"]), Decimal(1), rel_tol=REL_TOL)

    def test_spot_price_same_denom(self, host, pool):
        with pytest.raises(InvalidAsset):
            host.query(
                pool.address,
                {"spot_price": {"quote_asset_denom": USD, "base_asset_denom": USD}},
            )

    def test_spot_price_follows_swaps(self, host, pool):
        _swap(host, pool, amount=10_000000)

        response = host.query(
            pool.address, {"spot_price": {"quote_asset_denom": OSMO, "base_asset_denom": USD}}
        )

        assert Decimal(response["spot_price"]) > 1

    def test_reverse_simulation_same_asset(self, host, pool):
        with pytest.raises(InvalidAsset):
            host.query(
                pool.address,
                {
                    "reverse_simulation": {
                        "ask_asset": _asset(USD, 100),
                        "offer_asset_info": _info(USD),
                    }
                },
            )

    def test_cumulative_prices(self, host, pool):
        host.next_block(100)

        response = host.query(pool.address, {"cumulative_prices": {}})

        assert response["last_updated"] == host.block_time
        (_, _, price0), (_, _, price1) = response["cumulative_prices"]
        assert Decimal(price0) > 0
        assert Decimal(price1) > 0

    def test_observe(self, host, pool):
        with pytest.raises(InvalidParameters, match="empty"):
            host.query(pool.address, {"observe": {"seconds_ago": 0}})

        _swap(host, pool)
        response = host.query(pool.address, {"observe": {"seconds_ago": 0}})

        assert Decimal(response["price"]) > 0

    def test_queries_are_read_only(self, host, pool):
        host.next_block(100)
        before = pool.storage.snapshot()

        for msg in (
            {"config": {}},
            {"pool": {}},
            {"cumulative_prices": {}},
            {"simulation": {"offer_asset": _asset(OSMO, 100)}},
            {"reverse_simulation": {"ask_asset": _asset(USD, 100)}},
            {"lp_price": {}},
        ):
            host.query(pool.address, msg)

        assert pool.storage.snapshot() == before

    def test_invalid_query(self, host, pool):
        with pytest.raises(InvalidParameters):
            host.query(pool.address, {"pool": {}, "config": {}})


# =============================================================================
# UPDATE CONFIG
# =============================================================================


class TestUpdateParams:
    """update_config {"update": ...}"""

    def test_owner_updates_fee(self, host, pool):
        _update_config(host, pool, {"update": {"mid_fee": "0.002"}})

        params = host.query(pool.address, {"config": {}})["params"]
        assert Decimal(params["mid_fee"]) == Decimal("0.002")
        assert Decimal(params["out_fee"]) == Decimal("0.003")

    def test_not_owner(self, host, pool):
        with pytest.raises(Unauthorized):
            _update_config(host, pool, {"update": {"mid_fee": "0.002"}}, sender=TRADER)

    def test_out_of_bounds(self, host, pool):
        with pytest.raises(IncorrectPoolParam):
            _update_config(host, pool, {"update": {"out_fee": "0.5"}})

    def test_maker_fee(self, host, pool):
        _update_config(
            host,
            pool,
            {"update": {"maker_fee_share": "0.5", "fee_address": "collector"}},
        )

        response = _swap(host, pool)

        maker_fee = int(response.attribute("maker_fee_amount"))
        return_amount = int(response.data["return_amount"])
        assert maker_fee > 0
        assert host.balance("collector", USD) == maker_fee
        assert pool.ledger.read().reserves[1] == 1000_000000 - return_amount - maker_fee


class TestAmpGammaRamp:
    """update_config promote / stop_changing_amp_gamma."""

    def test_too_soon(self, host, pool):
        with pytest.raises(InvalidParameters, match="once per day"):
            _promote(host, pool, "44", "0.02", host.block_time + DAY)

    def test_too_short(self, host, pool):
        host.next_block(DAY)

        with pytest.raises(InvalidParameters, match="at least a day"):
            _promote(host, pool, "44", "0.02", host.block_time + 100)

    def test_change_too_large(self, host, pool):
        host.next_block(DAY)

        with pytest.raises(InvalidParameters, match="more than"):
            _promote(host, pool, "50", "0.02", host.block_time + DAY)

    def test_gamma_out_of_bounds(self, host, pool):
        host.next_block(DAY)

        with pytest.raises(IncorrectPoolParam):
            _promote(host, pool, "40", "0.03", host.block_time + DAY)

    def test_ramp_and_stop(self, host, pool):
        host.next_block(DAY)
        _promote(host, pool, "44", "0.02", host.block_time + DAY)

        host.next_block(DAY // 2)
        assert Decimal(host.query(pool.address, {"config": {}})["amp"]) == 42

        # Свап посреди ramp'а
        _swap(host, pool)

        _update_config(host, pool, {"stop_changing_amp_gamma": {}})
        host.next_block(DAY)

        config = host.query(pool.address, {"config": {}})
        assert Decimal(config["amp"]) == 42
        assert Decimal(config["gamma"]) == Decimal("0.02")


# =============================================================================
# OWNERSHIP
# =============================================================================


class TestOwnershipTransfer:
    """propose_new_owner / drop_ownership_proposal / claim_ownership."""

    @staticmethod
    def _propose(host, contract, owner=NEW_OWNER, expires_in=DAY, sender=OWNER):
        return host.execute(
            contract.address,
            sender,
            {"propose_new_owner": {"owner": owner, "expires_in": expires_in}},
        )

    @staticmethod
    def _claim(host, contract, sender=NEW_OWNER):
        return host.execute(contract.address, sender, {"claim_ownership": {}})

    def test_propose_and_claim(self, host, pool):
        response = self._propose(host, pool)
        assert response.attribute("ttl") == str(host.block_time + DAY)

        host.next_block()
        self._claim(host, pool)

        assert host.query(pool.address, {"config": {}})["owner"] == NEW_OWNER
        assert pool.ownership.proposal() is None
        with pytest.raises(Unauthorized):
            _update_config(host, pool, {"update": {"mid_fee": "0.002"}})
        _update_config(host, pool, {"update": {"mid_fee": "0.002"}}, sender=NEW_OWNER)

    def test_propose_not_owner(self, host, pool):
        with pytest.raises(Unauthorized):
            self._propose(host, pool, sender=TRADER)

    def test_propose_same_owner(self, host, pool):
        with pytest.raises(InvalidParameters, match="cannot be same"):
            self._propose(host, pool, owner=OWNER)

    def test_expires_in_too_long(self, host, pool):
        with pytest.raises(InvalidParameters, match="expires_in"):
            self._propose(host, pool, expires_in=MAX_PROPOSAL_TTL + 1)

    def test_claim_without_proposal(self, host, pool):
        with pytest.raises(InvalidParameters, match="Ownership proposal not found"):
            self._claim(host, pool)

    def test_claim_by_other_address(self, host, pool):
        self._propose(host, pool)

        with pytest.raises(Unauthorized):
            self._claim(host, pool, sender=TRADER)

        assert pool.ledger.load_config().owner == OWNER

    def test_claim_expired(self, host, pool):
        self._propose(host, pool, expires_in=100)
        host.next_block(101)

        with pytest.raises(InvalidParameters, match="expired"):
            self._claim(host, pool)

    def test_new_proposal_replaces_previous(self, host, pool):
        self._propose(host, pool)
        self._propose(host, pool, owner="other")

        with pytest.raises(Unauthorized):
            self._claim(host, pool)
        self._claim(host, pool, sender="other")

        assert pool.ledger.load_config().owner == "other"

    def test_drop(self, host, pool):
        self._propose(host, pool)

        with pytest.raises(Unauthorized):
            host.execute(pool.address, TRADER, {"drop_ownership_proposal": {}})
        host.execute(pool.address, OWNER, {"drop_ownership_proposal": {}})

        with pytest.raises(InvalidParameters, match="not found"):
            self._claim(host, pool)

    def test_invalid_message(self, host, pool):
        with pytest.raises(InvalidParameters):
            host.execute(pool.address, OWNER, {"propose_new_owner": {"owner": NEW_OWNER}})


# =============================================================================
# ASSET BALANCES TRACKING
# =============================================================================


class TestAssetBalanceTracking:
    """track_asset_balances и query asset_balance_at."""

    @staticmethod
    def _balance_at(host, contract, denom, block_height):
        return host.query(
            contract.address,
            {"asset_balance_at": {"asset_info": _info(denom), "block_height": block_height}},
        )["balance"]

    @pytest.fixture
    def tracked_pool(self, host, instantiate_msg):
        return host.create_pool(instantiate_msg(track_asset_balances=True))

    def test_disabled_by_default(self, host, pool):
        assert host.query(pool.address, {"config": {}})["params"]["track_asset_balances"] is False
        assert self._balance_at(host, pool, OSMO, host.block_height + 1) is None

    def test_zero_balances_at_instantiate(self, host, tracked_pool):
        created_at = host.block_height

        assert self._balance_at(host, tracked_pool, OSMO, created_at) is None
        assert self._balance_at(host, tracked_pool, OSMO, created_at + 1) == "0"
        assert self._balance_at(host, tracked_pool, USD, created_at + 1) == "0"

    def test_every_reserve_change_is_recorded(self, host, tracked_pool):
        host.next_block()
        provided_at = host.block_height
        _provide(host, tracked_pool, 1000_000000, 1000_000000)
        host.next_block()
        swapped_at = host.block_height
        response = _swap(host, tracked_pool)
        host.next_block()
        withdrawn_at = host.block_height
        host.execute(
            tracked_pool.address, PROVIDER, {"withdraw_liquidity": {"amount": "100000000"}}
        )
        return_amount = int(response.data["return_amount"])

        assert self._balance_at(host, tracked_pool, OSMO, provided_at) == "0"
        assert self._balance_at(host, tracked_pool, OSMO, provided_at + 1) == "1000000000"
        assert self._balance_at(host, tracked_pool, OSMO, swapped_at + 1) == str(
            1000_000000 + SWAP_AMOUNT
        )
        assert self._balance_at(host, tracked_pool, USD, swapped_at + 1) == str(
            1000_000000 - return_amount
        )
        reserves = tracked_pool.ledger.read().reserves
        assert self._balance_at(host, tracked_pool, USD, withdrawn_at + 1) == str(reserves[1])

    def test_sudo_swap_is_recorded(self, host, tracked_pool):
        host.next_block()
        _provide(host, tracked_pool, 1000_000000, 1000_000000)
        host.next_block()
        host.sudo(
            tracked_pool.address,
            {
                "swap_exact_amount_in": {
                    "sender": TRADER,
                    "token_in": {"denom": OSMO, "amount": str(SWAP_AMOUNT)},
                    "token_out_denom": USD,
                    "token_out_min_amount": "1",
                }
            },
            funds=[Coin(denom=OSMO, amount=SWAP_AMOUNT)],
        )

        assert self._balance_at(host, tracked_pool, OSMO, host.block_height + 1) == str(
            1000_000000 + SWAP_AMOUNT
        )

    def test_enable_on_existing_pool(self, host, pool):
        with pytest.raises(Unauthorized):
            _update_config(host, pool, {"enable_asset_balances_tracking": {}}, sender=TRADER)

        _update_config(host, pool, {"enable_asset_balances_tracking": {}})
        enabled_at = host.block_height

        assert self._balance_at(host, pool, OSMO, enabled_at) is None
        assert self._balance_at(host, pool, OSMO, enabled_at + 1) == "1000000000"
        assert pool.ledger.load_config().params.track_asset_balances is True

    def test_enable_twice(self, host, tracked_pool):
        with pytest.raises(InvalidParameters, match="already enabled"):
            _update_config(host, tracked_pool, {"enable_asset_balances_tracking": {}})

    def test_asset_outside_pair(self, host, tracked_pool):
        with pytest.raises(InvalidAsset):
            self._balance_at(host, tracked_pool, "uatom", host.block_height + 1)

    def test_param_update_keeps_tracking(self, host, tracked_pool):
        _update_config(host, tracked_pool, {"update": {"mid_fee": "0.002"}})

        assert tracked_pool.ledger.load_config().params.track_asset_balances is True


# =============================================================================
# CIRCUIT BREAKER
# =============================================================================


class TestCircuitBreaker:
    """Остановка пула после InvariantViolation."""

    @pytest.fixture
    def halted_pool(self, host, pool):
        pool.ledger.config = LedgerConfig(invariant_tolerance=Decimal("-1"))
        with pytest.raises(InvariantViolation):
            _swap(host, pool)
        pool.ledger.config = LedgerConfig()
        return pool

    def test_invariant_violation_rolls_back_and_halts(self, host, halted_pool):
        assert halted_pool.breaker.is_open()
        assert halted_pool.ledger.read().reserves == (1000_000000, 1000_000000)
        assert halted_pool.breaker.status()["reason"] == "Commit would decrease the pool invariant"
        assert host.balance(TRADER, OSMO) == 1_000_000_000000

    def test_execute_is_halted(self, host, halted_pool):
        with pytest.raises(PoolHalted):
            _swap(host, halted_pool)

    def test_sudo_is_halted(self, host, halted_pool):
        with pytest.raises(PoolHalted):
            host.sudo(
                halted_pool.address,
                {
                    "swap_exact_amount_in": {
                        "sender": TRADER,
                        "token_in": {"denom": OSMO, "amount": "100"},
                        "token_out_denom": USD,
                        "token_out_min_amount": "1",
                    }
                },
                funds=[Coin(denom=OSMO, amount=100)],
            )

    def test_queries_still_work(self, host, halted_pool):
        assert host.query(halted_pool.address, {"config": {}})["halted"] is True
        assert host.query(halted_pool.address, {"pool": {}})["total_share"] == "1000000000"

    def test_param_update_is_halted(self, host, halted_pool):
        with pytest.raises(PoolHalted):
            _update_config(host, halted_pool, {"update": {"mid_fee": "0.002"}})

    def test_resume(self, host, halted_pool):
        with pytest.raises(Unauthorized):
            _update_config(host, halted_pool, {"resume": {}}, sender=TRADER)

        _update_config(host, halted_pool, {"resume": {}})

        assert not halted_pool.breaker.is_open()
        _swap(host, halted_pool)

    def test_ownership_transfer_while_halted(self, host, halted_pool):
        host.execute(
            halted_pool.address,
            OWNER,
            {"propose_new_owner": {"owner": NEW_OWNER, "expires_in": DAY}},
        )
        host.execute(halted_pool.address, NEW_OWNER, {"claim_ownership": {}})

        _update_config(host, halted_pool, {"resume": {}}, sender=NEW_OWNER)

        assert not halted_pool.breaker.is_open()
