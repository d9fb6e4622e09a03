"""
Pool Contract — entry points пула

- instantiate: только pinned factory; пара native активов; LP denomination
  создаётся через Token-Issuance Gateway
- execute: provide_liquidity / withdraw_liquidity / swap / update_config / set_pool_id,
  двухшаговая передача owner'а (propose_new_owner / drop_ownership_proposal /
  claim_ownership)
- sudo: hooks Trade-Routing модуля (swap_exact_amount_in / swap_exact_amount_out)
- query: read-only запросы (см. PoolQueries)

Каждое входящее сообщение сначала валидируется по JSON Schema, затем
разбирается в pydantic модели и передаётся Settlement State Machine.
Пока circuit breaker открыт, execute / sudo отвечают PoolHalted; снять его
может только owner через update_config {"params": {"resume": {}}}.
Передача owner'а доступна и при открытом breaker.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence

from pcl_pool.core.contracts.validators import (
    validate_execute_msg,
    validate_instantiate_msg,
    validate_query_msg,
    validate_sudo_msg,
)
from pcl_pool.core.domain.assets import Asset, AssetInfo, Coin
from pcl_pool.core.domain.messages import Response, RouteStep
from pcl_pool.core.domain.pool_config import ConcentratedPoolParams, PoolConfig
from pcl_pool.core.domain.pool_state import (
    AmpGamma,
    OracleAccumulators,
    PoolState,
    PriceState,
)
from pcl_pool.core.domain.transaction import Env
from pcl_pool.core.errors import (
    InvalidAsset,
    InvalidNumberOfAssets,
    InvalidParameters,
    Unauthorized,
)
from pcl_pool.gateways.access_gate import AccessGate
from pcl_pool.gateways.token_issuance import TokenIssuanceGateway
from pcl_pool.gateways.trade_routing import TradeRoutingGateway
from pcl_pool.ledger.pool_ledger import LedgerConfig, PoolLedger
from pcl_pool.ledger.storage import KeyValueStore
from pcl_pool.queries import PoolQueries
from pcl_pool.settlement.circuit_breaker import CircuitBreaker
from pcl_pool.settlement.ownership import OwnershipTransfer
from pcl_pool.settlement.state_machine import SettlementStateMachine

logger = logging.getLogger(__name__)

DEFAULT_PRECISION = 6

OWNERSHIP_ACTIONS = ("propose_new_owner", "drop_ownership_proposal", "claim_ownership")


def _decimal_opt(value: Optional[str]) -> Optional[Decimal]:
    return Decimal(value) if value is not None else None


def _int_opt(value: Optional[str]) -> Optional[int]:
    return int(value) if value is not None else None


def _split(msg: Dict[str, Any]) -> tuple[str, Dict[str, Any]]:
    """Единственный ключ верхнего уровня сообщения и его тело."""
    ((action, payload),) = msg.items()
    return action, payload


class PoolContract:
    """Контракт одного пула поверх своего KeyValueStore."""

    def __init__(
        self,
        address: str,
        storage: KeyValueStore,
        issuance: TokenIssuanceGateway,
        router: TradeRoutingGateway,
        access_gate: AccessGate,
        ledger_config: Optional[LedgerConfig] = None,
    ):
        self.address = address
        self.storage = storage
        self.issuance = issuance
        self.access_gate = access_gate
        self.ledger = PoolLedger(storage, ledger_config)
        self.breaker = CircuitBreaker(storage)
        self.ownership = OwnershipTransfer(self.ledger)
        self.settlement = SettlementStateMachine(self.ledger, issuance, router)
        self.queries = PoolQueries(self.ledger, issuance, self.breaker)

    # =========================================================================
    # INSTANTIATE
    # =========================================================================

    def instantiate(self, env: Env, sender: str, msg: Dict[str, Any]) -> Response:
        """
        Raises:
            Unauthorized: sender не pinned factory
            InvalidNumberOfAssets: активов не 2
            InvalidAsset: contract-token актив или несуществующая denomination
            InvalidParameters / IncorrectPoolParam: некорректные init_params
        """
        validate_instantiate_msg(msg)
        self.access_gate.assert_factory(sender)
        if self.ledger.has_config():
            raise InvalidParameters("Pool is already instantiated")

        asset_infos = [AssetInfo.from_msg(info) for info in msg["asset_infos"]]
        if len(asset_infos) != 2:
            raise InvalidNumberOfAssets(len(asset_infos))
        for info in asset_infos:
            if not self.issuance.denom_exists(info.denom):
                raise InvalidAsset(f"Denom {info.denom} does not exist", asset=info.denom)

        init_params = ConcentratedPoolParams(**msg["init_params"])
        config = PoolConfig(
            contract_addr=self.address,
            factory_addr=self.access_gate.factory_addr,
            owner=msg.get("owner", sender),
            asset_infos=tuple(asset_infos),
            precisions=tuple(msg.get("precisions", (DEFAULT_PRECISION, DEFAULT_PRECISION))),
            params=init_params.to_pool_params(),
        )

        now = env.block_time
        state = PoolState(
            amp_gamma=AmpGamma(
                initial_amp=init_params.amp,
                initial_gamma=init_params.gamma,
                future_amp=init_params.amp,
                future_gamma=init_params.gamma,
                initial_time=now,
                future_time=now,
            ),
            price_state=PriceState.initial(init_params.price_scale, now),
            accumulators=OracleAccumulators(last_updated=now),
            last_updated=now,
        )
        self.ledger.save_config(config)
        self.ledger.init_state(state)
        if config.params.track_asset_balances:
            self.ledger.record_balances(env.block_height, state.reserves)

        lp_denom = self.settlement.create_lp_denom(env, sender)
        logger.info("Pool %s instantiated: %s / %s", self.address, *config.denoms)
        return Response(
            action="instantiate",
            attributes={"contract_addr": self.address, "lp_denom": lp_denom},
        )

    # =========================================================================
    # EXECUTE
    # =========================================================================

    def execute(
        self,
        env: Env,
        sender: str,
        msg: Dict[str, Any],
        funds: Sequence[Coin] = (),
    ) -> Response:
        validate_execute_msg(msg)
        action, payload = _split(msg)

        if action == "update_config":
            return self._update_config(env, sender, payload["params"])
        if action in OWNERSHIP_ACTIONS:
            return self._transfer_ownership(env, sender, action, payload)
        self.breaker.ensure_closed()

        if action == "provide_liquidity":
            return self.settlement.provide_liquidity(
                env,
                sender,
                [Asset.from_msg(asset) for asset in payload["assets"]],
                funds=funds,
                slippage_tolerance=_decimal_opt(payload.get("slippage_tolerance")),
                min_share=_int_opt(payload.get("min_share")),
                receiver=payload.get("receiver"),
            )
        if action == "withdraw_liquidity":
            min_assets = payload.get("min_assets")
            return self.settlement.withdraw_liquidity(
                env,
                sender,
                int(payload["amount"]),
                assets=[Asset.from_msg(asset) for asset in payload.get("assets", [])],
                min_assets=(
                    [Asset.from_msg(asset) for asset in min_assets]
                    if min_assets is not None
                    else None
                ),
            )
        if action == "swap":
            ask_info = payload.get("ask_asset_info")
            route = payload.get("route")
            return self.settlement.swap(
                env,
                sender,
                Asset.from_msg(payload["offer_asset"]),
                funds=funds,
                ask_info=AssetInfo.from_msg(ask_info) if ask_info is not None else None,
                belief_price=_decimal_opt(payload.get("belief_price")),
                max_spread=_decimal_opt(payload.get("max_spread")),
                min_return=_int_opt(payload.get("min_return")),
                to=payload.get("to"),
                route=[RouteStep(**step) for step in route] if route is not None else None,
            )
        return self._set_pool_id(sender, payload["pool_id"])

    def _set_pool_id(self, sender: str, pool_id: int) -> Response:
        """Pool id в Trade-Routing модуле: только factory, только один раз."""
        config = self.ledger.load_config()
        if sender != config.factory_addr:
            raise Unauthorized(sender)
        if config.pool_id is not None:
            raise InvalidParameters("Pool id is already set", pool_id=config.pool_id)
        self.ledger.save_config(config.model_copy(update={"pool_id": pool_id}))
        return Response(action="set_pool_id", attributes={"pool_id": str(pool_id)})

    def _transfer_ownership(
        self, env: Env, sender: str, action: str, payload: Dict[str, Any]
    ) -> Response:
        if action == "propose_new_owner":
            proposal = self.ownership.propose(
                env.block_time, sender, payload["owner"], payload["expires_in"]
            )
            return Response(
                action="propose_new_owner",
                attributes={"new_owner": proposal.owner, "ttl": str(proposal.ttl)},
            )
        if action == "drop_ownership_proposal":
            self.ownership.drop(sender)
            return Response(action="drop_ownership_proposal")
        new_owner = self.ownership.claim(env.block_time, sender)
        return Response(action="claim_ownership", attributes={"new_owner": new_owner})

    def _update_config(self, env: Env, sender: str, params: Dict[str, Any]) -> Response:
        """
        Raises:
            Unauthorized: sender не owner
            PoolHalted: breaker открыт, а запрос не resume
        """
        config = self.ledger.load_config()
        if sender != config.owner:
            raise Unauthorized(sender)

        kind, body = _split(params)
        if kind == "resume":
            self.breaker.close()
            return Response(action="resume")

        self.breaker.ensure_closed()
        if kind == "update":
            self.settlement.update_params(env, body)
            return Response(action="update_params")
        if kind == "promote":
            amp_gamma = self.settlement.promote_amp_gamma(
                env,
                Decimal(body["next_amp"]),
                Decimal(body["next_gamma"]),
                body["future_time"],
            )
            return Response(
                action="promote_params",
                attributes={"future_time": str(amp_gamma.future_time)},
            )
        if kind == "enable_asset_balances_tracking":
            self.settlement.enable_asset_balances_tracking(env)
            return Response(action="enable_asset_balances_tracking")
        self.settlement.stop_changing_amp_gamma(env)
        return Response(action="stop_changing_amp_gamma")

    # =========================================================================
    # SUDO
    # =========================================================================

    def sudo(self, env: Env, msg: Dict[str, Any]) -> Response:
        validate_sudo_msg(msg)
        self.breaker.ensure_closed()
        action, payload = _split(msg)

        if action == "swap_exact_amount_in":
            return self.settlement.swap_exact_amount_in(
                env,
                payload["sender"],
                Coin.from_msg(payload["token_in"]),
                payload["token_out_denom"],
                int(payload["token_out_min_amount"]),
                correlation_id=payload.get("correlation_id"),
            )
        return self.settlement.swap_exact_amount_out(
            env,
            payload["sender"],
            payload["token_in_denom"],
            int(payload["token_in_max_amount"]),
            Coin.from_msg(payload["token_out"]),
        )

    # =========================================================================
    # QUERY
    # =========================================================================

    def query(self, env: Env, msg: Dict[str, Any]) -> Any:
        validate_query_msg(msg)
        action, payload = _split(msg)
        now = env.block_time
        queries = self.queries

        if action == "config":
            return queries.config(now)
        if action == "pool":
            return queries.pool()
        if action == "share":
            return queries.share(int(payload["amount"]))
        if action == "simulation":
            ask_info = payload.get("ask_asset_info")
            return queries.simulation(
                now,
                Asset.from_msg(payload["offer_asset"]),
                AssetInfo.from_msg(ask_info) if ask_info is not None else None,
            )
        if action == "reverse_simulation":
            offer_info = payload.get("offer_asset_info")
            return queries.reverse_simulation(
                now,
                Asset.from_msg(payload["ask_asset"]),
                AssetInfo.from_msg(offer_info) if offer_info is not None else None,
            )
        if action == "cumulative_prices":
            return queries.cumulative_prices(now)
        if action == "compute_d":
            return queries.compute_d(now)
        if action == "lp_price":
            return queries.lp_price(now)
        if action == "observe":
            return queries.observe(now, payload["seconds_ago"])
        if action == "spot_price":
            return queries.spot_price(
                payload["quote_asset_denom"], payload["base_asset_denom"]
            )
        if action == "asset_balance_at":
            return queries.asset_balance_at(
                AssetInfo.from_msg(payload["asset_info"]), payload["block_height"]
            )
        if action == "total_pool_liquidity":
            return queries.total_pool_liquidity()
        return queries.swap_fee()
