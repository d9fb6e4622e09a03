"""
Settlement State Machine — provide / withdraw / swap и reconciliation ack'ов

Фазы (на одну top-level операцию):
    IDLE → AWAITING_GATEWAY_ACK → IDLE

Каждый deferred вызов Gateway:
1. registry.open(...) — PendingOperation с correlation_id и расчётными amounts
2. вызов Gateway (фаза AWAITING_GATEWAY_ACK)
3. registry.close(ack.correlation_id) — сверка ack с записанными amounts
4. commit в Pool Ledger только после успешной сверки

Любая ошибка пробрасывается: host откатывает транзакцию целиком, поэтому
ни частичный commit, ни PendingOperation после abort'а не наблюдаемы.

Routed swap: Trade-Routing Gateway вызывает sudo hook swap_exact_amount_in
с correlation_id; hook исполняет internal swap и записывает fill в
PendingOperation. Reconciliation сравнивает fill из ack с записанным.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Final, Iterator, Optional, Sequence

from pcl_pool.core.domain.assets import Asset, AssetInfo, Coin
from pcl_pool.core.domain.messages import (
    BankSend,
    BurnRequest,
    CreateDenomRequest,
    GatewayAck,
    MintRequest,
    OperationKind,
    PendingOperation,
    Response,
    RouteStep,
    RouteSwapAck,
    RouteSwapRequest,
    SwapParams,
)
from pcl_pool.core.domain.pool_config import PoolConfig, PoolParams, check_param_bounds
from pcl_pool.core.domain.pool_state import AmpGamma, PoolState
from pcl_pool.core.domain.transaction import Env
from pcl_pool.core.errors import (
    GatewayError,
    InvalidAsset,
    InvalidNumberOfAssets,
    InvalidParameters,
    SlippageExceeded,
)
from pcl_pool.core.math.numerical_safeguards import (
    LP_TOKEN_PRECISION,
    MATH_CONTEXT,
    MIN_TRADE_SIZE,
    ONE,
    ZERO,
    abs_diff,
    ceil_to_units,
    floor_to_units,
    to_decimal,
)
from pcl_pool.core.math.swap_math import (
    MAX_ALLOWED_SLIPPAGE,
    assert_max_spread,
    before_swap_check,
    compute_offer_amount,
    compute_swap,
)
from pcl_pool.gateways.token_issuance import TokenIssuanceGateway
from pcl_pool.gateways.trade_routing import TradeRoutingGateway
from pcl_pool.ledger.pool_ledger import PoolLedger, virtual_price
from pcl_pool.liquidity.accounting import (
    check_min_assets,
    shares_to_burn,
    shares_to_mint,
)
from pcl_pool.settlement.price_oracle import (
    accumulate_prices,
    record_observation,
    refresh_profit,
    update_price,
)

logger = logging.getLogger(__name__)

# Subdenom LP denomination: factory/<contract>/astroport/share
LP_SUBDENOM: Final[str] = "astroport/share"

# Минимальный интервал между изменениями amp/gamma и минимальная длительность ramp'а
MIN_AMP_CHANGING_TIME: Final[int] = 86400

# Максимальное относительное изменение amp/gamma за один promote
MAX_AMP_GAMMA_CHANGE: Final[Decimal] = Decimal("0.1")


class SettlementPhase(str, Enum):
    """Фаза Settlement State Machine."""

    IDLE = "IDLE"
    AWAITING_GATEWAY_ACK = "AWAITING_GATEWAY_ACK"


@dataclass(frozen=True)
class SwapOutcome:
    """Результат закоммиченного internal свапа (base units)."""

    offer_ind: int
    ask_ind: int
    offer_amount: int
    return_amount: int
    spread_amount: int
    commission_amount: int
    maker_fee_amount: int
    messages: tuple[BankSend, ...]


def _coins(denoms: Sequence[str], amounts: Sequence[int]) -> tuple[Coin, ...]:
    return tuple(
        Coin(denom=denom, amount=amount)
        for denom, amount in zip(denoms, amounts)
        if amount > 0
    )


def _assert_sent_funds(config: PoolConfig, amounts: Sequence[int], funds: Sequence[Coin]) -> None:
    """
    Funds должны совпадать с заявленными amounts поштучно.

    Монета вне заявленных (чужая denomination или актив пула с amount 0)
    отклоняется.

    Raises:
        InvalidAsset: Переданные funds не совпадают с заявленными amounts
    """
    sent: Dict[str, int] = {}
    for coin in funds:
        sent[coin.denom] = sent.get(coin.denom, 0) + coin.amount
    declared = {denom: amount for denom, amount in zip(config.denoms, amounts) if amount > 0}
    for denom, amount in sent.items():
        if amount > 0 and denom not in declared:
            raise InvalidAsset(
                "Supplied coins contain an asset that is not declared",
                asset=denom,
                expected=0,
                actual=amount,
            )
    for denom, amount in declared.items():
        if sent.get(denom, 0) != amount:
            raise InvalidAsset(
                "Native token balance mismatch between the argument and the transferred",
                asset=denom,
                expected=amount,
                actual=sent.get(denom, 0),
            )


class SettlementStateMachine:
    """
    Оркестратор операций пула.

    Единственный владелец прав на изменение PoolState и Config. Живёт столько же,
    сколько контракт; фаза восстанавливается в IDLE и после ошибок.
    """

    def __init__(
        self,
        ledger: PoolLedger,
        issuance: TokenIssuanceGateway,
        router: TradeRoutingGateway,
    ):
        self.ledger = ledger
        self.issuance = issuance
        self.router = router
        self.phase = SettlementPhase.IDLE

    # =========================================================================
    # PHASES / RECONCILIATION
    # =========================================================================

    @contextmanager
    def _awaiting(self, operation: PendingOperation) -> Iterator[None]:
        previous = self.phase
        self.phase = SettlementPhase.AWAITING_GATEWAY_ACK
        logger.debug(
            "Awaiting gateway ack: %s #%d", operation.kind.value, operation.correlation_id
        )
        try:
            yield
        finally:
            self.phase = previous

    def _ensure_idle(self) -> None:
        if self.phase != SettlementPhase.IDLE:
            raise GatewayError(
                "Re-entrant call while awaiting gateway acknowledgement",
                phase=self.phase.value,
            )

    @staticmethod
    def _reconcile_issuance(env: Env, ack: GatewayAck) -> PendingOperation:
        """
        Сверка ack Token-Issuance Gateway с PendingOperation.

        Raises:
            GatewayError: failure, неизвестный correlation_id или другое количество
        """
        operation = env.registry.close(ack.correlation_id)
        if not ack.success:
            raise GatewayError(
                f"Token-Issuance gateway failed: {ack.error}",
                correlation_id=ack.correlation_id,
                operation=operation.kind.value,
            )
        expected = operation.amounts.get("share")
        if expected is not None and ack.amount != expected:
            raise GatewayError(
                "Token-Issuance gateway moved an unexpected amount",
                expected=expected,
                actual=ack.amount,
            )
        logger.debug("Gateway ack #%d reconciled", ack.correlation_id)
        return operation

    def _mint(self, env: Env, config: PoolConfig, caller: str, amount: int, recipient: str) -> None:
        operation = env.registry.open(OperationKind.PROVIDE, caller, {"share": amount})
        request = MintRequest(
            correlation_id=operation.correlation_id,
            denom=config.lp_denom,
            amount=amount,
            recipient=recipient,
        )
        with self._awaiting(operation):
            ack = self.issuance.mint(request)
        self._reconcile_issuance(env, ack)

    def _commit(
        self,
        env: Env,
        config: PoolConfig,
        state: PoolState,
        new_state: PoolState,
        lp_supply: Optional[int] = None,
    ) -> None:
        """Commit относительно прочитанного snapshot'а + история балансов."""
        self.ledger.commit(
            new_state, env.block_time, config.precisions, lp_supply=lp_supply, pre_state=state
        )
        if config.params.track_asset_balances:
            self.ledger.record_balances(env.block_height, new_state.reserves)

    def _load_config(self, require_lp_denom: bool = True) -> PoolConfig:
        config = self.ledger.load_config()
        if require_lp_denom and not config.lp_denom:
            raise InvalidParameters("LP denomination is not created yet")
        return config

    # =========================================================================
    # LP DENOMINATION
    # =========================================================================

    def create_lp_denom(self, env: Env, caller: str) -> str:
        """
        Создание LP denomination через Token-Issuance Gateway (create-denom reply).

        Raises:
            InvalidParameters: LP denomination уже записан
            GatewayError: Gateway отклонил создание
        """
        config = self._load_config(require_lp_denom=False)
        if config.lp_denom:
            raise InvalidParameters("LP denom is already set", lp_denom=config.lp_denom)

        operation = env.registry.open(OperationKind.CREATE_DENOM, caller)
        request = CreateDenomRequest(
            correlation_id=operation.correlation_id,
            creator=config.contract_addr,
            subdenom=LP_SUBDENOM,
        )
        with self._awaiting(operation):
            ack = self.issuance.create_denom(request)
        self._reconcile_issuance(env, ack)
        if not ack.denom:
            raise GatewayError("Create-denom reply carries no denomination")

        self.ledger.save_config(config.model_copy(update={"lp_denom": ack.denom}))
        logger.info("LP denomination %s created", ack.denom)
        return ack.denom

    # =========================================================================
    # PROVIDE
    # =========================================================================

    @staticmethod
    def _parse_deposits(config: PoolConfig, assets: Sequence[Asset]) -> list[int]:
        if len(assets) > 2:
            raise InvalidNumberOfAssets(len(assets))
        deposits = [0, 0]
        seen: set[int] = set()
        for asset in assets:
            ind = config.asset_index(asset.info)
            if ind in seen:
                raise InvalidAsset("Doubling assets in provide", asset=str(asset.info))
            seen.add(ind)
            deposits[ind] = asset.amount
        return deposits

    def provide_liquidity(
        self,
        env: Env,
        caller: str,
        assets: Sequence[Asset],
        funds: Sequence[Coin] = (),
        slippage_tolerance: Optional[Decimal] = None,
        min_share: Optional[int] = None,
        receiver: Optional[str] = None,
    ) -> Response:
        """
        Provide: расчёт shares → mint(ы) → ack → commit → refund.

        Первый provide mint'ит MINIMUM_LIQUIDITY на сам контракт, затем share
        получателю. Ledger не меняется до подтверждения всех mint'ов.
        """
        self._ensure_idle()
        config = self._load_config()
        deposits = self._parse_deposits(config, assets)
        _assert_sent_funds(config, deposits, funds)

        now = env.block_time
        precisions = config.precisions
        state = self.ledger.read()
        result = shares_to_mint(deposits, state, config, now, slippage_tolerance, min_share)

        amp, gamma = state.amp_gamma.get_amp_gamma(now)
        new_state = accumulate_prices(state, now).model_copy(
            update={
                "reserves": (
                    state.reserves[0] + result.consumed[0],
                    state.reserves[1] + result.consumed[1],
                ),
                "total_share": state.total_share + result.total_minted,
                "last_updated": now,
            }
        )
        xp = new_state.xp(precisions)
        total_lp = to_decimal(new_state.total_share, LP_TOKEN_PRECISION)

        price_state = new_state.price_state
        if state.is_empty:
            price_state = price_state.model_copy(
                update={"xcp_profit": ONE, "xcp_profit_real": ONE}
            )
        elif result.last_price is not None:
            price_state = update_price(
                price_state,
                config.params,
                now,
                xp,
                total_lp,
                result.last_price,
                amp,
                gamma,
                vp_floor=virtual_price(state, precisions, amp, gamma),
            )
        else:
            price_state = refresh_profit(price_state, xp, total_lp, amp, gamma)
        new_state = new_state.model_copy(update={"price_state": price_state})

        receiver = receiver or caller
        if result.min_liquidity:
            self._mint(env, config, caller, result.min_liquidity, config.contract_addr)
        self._mint(env, config, caller, result.share, receiver)

        self._commit(
            env, config, state, new_state, lp_supply=self.issuance.supply(config.lp_denom)
        )
        logger.info(
            "Provide by %s: consumed=%s share=%d", caller, result.consumed, result.share
        )

        refunds = _coins(config.denoms, result.refunds)
        return Response(
            action="provide_liquidity",
            attributes={
                "sender": caller,
                "receiver": receiver,
                "assets": ", ".join(str(c) for c in _coins(config.denoms, result.consumed)),
                "share": str(result.share),
                "slippage": str(result.slippage),
            },
            messages=(BankSend(to_address=caller, amount=refunds),) if refunds else (),
        )

    # =========================================================================
    # WITHDRAW
    # =========================================================================

    def withdraw_liquidity(
        self,
        env: Env,
        caller: str,
        amount: int,
        assets: Sequence[Asset] = (),
        min_assets: Optional[Sequence[Asset]] = None,
    ) -> Response:
        """
        Withdraw: shares_to_burn → burn → ack → commit → перевод активов.

        Raises:
            InvalidParameters: Imbalanced withdraw (непустой assets)
            InsufficientLiquidity: amount больше баланса LP вызывающего
            SlippageExceeded: Нарушен min_assets
        """
        self._ensure_idle()
        config = self._load_config()
        if assets:
            raise InvalidParameters("Imbalanced withdraw is currently disabled")

        now = env.block_time
        precisions = config.precisions
        state = self.ledger.read()
        balance = self.issuance.balance(caller, config.lp_denom)
        withdrawn = shares_to_burn(amount, balance, state)
        check_min_assets(withdrawn, self._parse_min_assets(config, min_assets))

        amp, gamma = state.amp_gamma.get_amp_gamma(now)
        new_state = accumulate_prices(state, now).model_copy(
            update={
                "reserves": (
                    state.reserves[0] - withdrawn[0],
                    state.reserves[1] - withdrawn[1],
                ),
                "total_share": state.total_share - amount,
                "last_updated": now,
            }
        )
        price_state = refresh_profit(
            new_state.price_state,
            new_state.xp(precisions),
            to_decimal(new_state.total_share, LP_TOKEN_PRECISION),
            amp,
            gamma,
        )
        new_state = new_state.model_copy(update={"price_state": price_state})

        operation = env.registry.open(
            OperationKind.WITHDRAW,
            caller,
            {"share": amount, "asset0": withdrawn[0], "asset1": withdrawn[1]},
        )
        request = BurnRequest(
            correlation_id=operation.correlation_id,
            denom=config.lp_denom,
            amount=amount,
            owner=caller,
        )
        with self._awaiting(operation):
            ack = self.issuance.burn(request)
        self._reconcile_issuance(env, ack)

        self._commit(
            env, config, state, new_state, lp_supply=self.issuance.supply(config.lp_denom)
        )
        logger.info("Withdraw by %s: share=%d withdrawn=%s", caller, amount, withdrawn)

        coins = _coins(config.denoms, withdrawn)
        return Response(
            action="withdraw_liquidity",
            attributes={
                "sender": caller,
                "withdrawn_share": str(amount),
                "refund_assets": ", ".join(str(c) for c in coins),
            },
            messages=(BankSend(to_address=caller, amount=coins),) if coins else (),
        )

    @staticmethod
    def _parse_min_assets(
        config: PoolConfig, min_assets: Optional[Sequence[Asset]]
    ) -> Optional[list[int]]:
        if min_assets is None:
            return None
        if len(min_assets) > 2:
            raise InvalidNumberOfAssets(len(min_assets))
        minimums = [0, 0]
        for asset in min_assets:
            minimums[config.asset_index(asset.info)] = asset.amount
        return minimums

    # =========================================================================
    # SWAP: INTERNAL PATH
    # =========================================================================

    def _execute_swap(
        self,
        env: Env,
        config: PoolConfig,
        offer_ind: int,
        offer_amount: int,
        receiver: str,
        belief_price: Optional[Decimal] = None,
        max_spread: Optional[Decimal] = None,
        min_return: Optional[int] = None,
    ) -> SwapOutcome:
        """
        Синхронный свап по резервам пула с commit'ом в Pool Ledger.

        Raises:
            MaxSpreadExceeded: Отклонение от belief_price больше max_spread
            SlippageExceeded: Return ниже min_return
            InvalidAsset: Свап опустошает ask резерв
        """
        ask_ind = 1 - offer_ind
        params = config.params
        precisions = config.precisions
        now = env.block_time
        state = self.ledger.read()

        offer = to_decimal(offer_amount, precisions[offer_ind])
        xs = state.balances(precisions)
        before_swap_check(xs, offer)

        amp, gamma = state.amp_gamma.get_amp_gamma(now)
        maker_fee_share = params.maker_fee_share if params.charges_maker_fee else ZERO
        computed = compute_swap(
            xs,
            offer,
            ask_ind,
            state.price_state.price_scale,
            amp,
            gamma,
            params,
            maker_fee_share,
        )

        ask_precision = precisions[ask_ind]
        return_amount = floor_to_units(computed.dy, ask_precision)
        spread_amount = floor_to_units(computed.spread_fee, ask_precision)
        commission_amount = floor_to_units(computed.total_fee, ask_precision)
        maker_fee_amount = floor_to_units(computed.maker_fee, ask_precision)

        assert_max_spread(
            belief_price,
            max_spread,
            offer_amount,
            return_amount + commission_amount,
            spread_amount,
        )
        if min_return is not None and return_amount < min_return:
            raise SlippageExceeded(
                "Swap return is below min_return", expected=min_return, actual=return_amount
            )

        reserves = list(state.reserves)
        reserves[offer_ind] += offer_amount
        reserves[ask_ind] -= return_amount + maker_fee_amount
        if reserves[ask_ind] <= 0:
            raise InvalidAsset(
                "Swap would move the ask reserve to zero",
                reserve=state.reserves[ask_ind],
                actual=return_amount + maker_fee_amount,
            )
        fees = list(state.cumulative_fees)
        fees[ask_ind] += commission_amount

        new_state = accumulate_prices(state, now).model_copy(
            update={
                "reserves": tuple(reserves),
                "cumulative_fees": tuple(fees),
                "last_updated": now,
            }
        )
        xp = new_state.xp(precisions)
        total_lp = to_decimal(new_state.total_share, LP_TOKEN_PRECISION)
        returned = to_decimal(return_amount, ask_precision)

        if offer >= MIN_TRADE_SIZE and returned >= MIN_TRADE_SIZE:
            price_state = update_price(
                new_state.price_state,
                params,
                now,
                xp,
                total_lp,
                computed.calc_last_price(offer, offer_ind),
                amp,
                gamma,
                vp_floor=virtual_price(state, precisions, amp, gamma),
            )
        else:
            price_state = refresh_profit(new_state.price_state, xp, total_lp, amp, gamma)
        new_state = new_state.model_copy(update={"price_state": price_state})

        base_amount, quote_amount = (returned, offer) if offer_ind == 0 else (offer, returned)
        new_state = record_observation(new_state, now, base_amount, quote_amount)

        self._commit(env, config, state, new_state)

        ask_denom = config.denoms[ask_ind]
        messages = []
        if return_amount > 0:
            messages.append(
                BankSend(
                    to_address=receiver,
                    amount=(Coin(denom=ask_denom, amount=return_amount),),
                )
            )
        if maker_fee_amount > 0:
            messages.append(
                BankSend(
                    to_address=params.fee_address,
                    amount=(Coin(denom=ask_denom, amount=maker_fee_amount),),
                )
            )

        logger.info(
            "Swap %d%s -> %d%s (commission=%d maker_fee=%d)",
            offer_amount,
            config.denoms[offer_ind],
            return_amount,
            ask_denom,
            commission_amount,
            maker_fee_amount,
        )
        return SwapOutcome(
            offer_ind=offer_ind,
            ask_ind=ask_ind,
            offer_amount=offer_amount,
            return_amount=return_amount,
            spread_amount=spread_amount,
            commission_amount=commission_amount,
            maker_fee_amount=maker_fee_amount,
            messages=tuple(messages),
        )

    @staticmethod
    def _swap_attributes(
        config: PoolConfig, sender: str, receiver: str, outcome: SwapOutcome
    ) -> Dict[str, str]:
        return {
            "sender": sender,
            "receiver": receiver,
            "offer_asset": config.denoms[outcome.offer_ind],
            "ask_asset": config.denoms[outcome.ask_ind],
            "offer_amount": str(outcome.offer_amount),
            "return_amount": str(outcome.return_amount),
            "spread_amount": str(outcome.spread_amount),
            "commission_amount": str(outcome.commission_amount),
            "maker_fee_amount": str(outcome.maker_fee_amount),
        }

    def swap(
        self,
        env: Env,
        caller: str,
        offer: Asset,
        funds: Sequence[Coin] = (),
        ask_info: Optional[AssetInfo] = None,
        belief_price: Optional[Decimal] = None,
        max_spread: Optional[Decimal] = None,
        min_return: Optional[int] = None,
        to: Optional[str] = None,
        route: Optional[Sequence[RouteStep]] = None,
    ) -> Response:
        """
        Swap entry point.

        Routed path выбирается, если передан route или ask_info вне пары;
        иначе internal path (синхронный, без Gateway).
        """
        self._ensure_idle()
        config = self._load_config()
        offer_ind = config.asset_index(offer.info)
        amounts = [0, 0]
        amounts[offer_ind] = offer.amount
        _assert_sent_funds(config, amounts, funds)

        receiver = to or caller
        if route is not None or (ask_info is not None and ask_info not in config.asset_infos):
            return self._routed_swap(
                env,
                config,
                caller,
                offer,
                ask_info,
                route,
                belief_price,
                max_spread,
                min_return,
                receiver,
            )

        if ask_info is not None and config.asset_index(ask_info) == offer_ind:
            raise InvalidAsset("Offer and ask assets are the same", asset=str(offer.info))

        outcome = self._execute_swap(
            env, config, offer_ind, offer.amount, receiver, belief_price, max_spread, min_return
        )
        return Response(
            action="swap",
            attributes=self._swap_attributes(config, caller, receiver, outcome),
            messages=outcome.messages,
            data={"return_amount": str(outcome.return_amount)},
        )

    # =========================================================================
    # SWAP: ROUTED PATH
    # =========================================================================

    def _routed_swap(
        self,
        env: Env,
        config: PoolConfig,
        caller: str,
        offer: Asset,
        ask_info: Optional[AssetInfo],
        route: Optional[Sequence[RouteStep]],
        belief_price: Optional[Decimal],
        max_spread: Optional[Decimal],
        min_return: Optional[int],
        receiver: str,
    ) -> Response:
        if config.pool_id is None:
            raise InvalidParameters("Pool id is not set")
        if not route:
            raise InvalidParameters(
                "Route is required to swap into an asset outside the pair",
                ask_asset=str(ask_info) if ask_info is not None else "",
            )
        route = tuple(route)
        if route[0].pool_id != config.pool_id:
            raise InvalidParameters(
                "Route must start at this pool",
                expected=config.pool_id,
                actual=route[0].pool_id,
            )
        if ask_info is not None and route[-1].token_out_denom != ask_info.denom:
            raise InvalidParameters(
                "Route does not end with the ask asset",
                expected=ask_info.denom,
                actual=route[-1].token_out_denom,
            )

        operation = env.registry.open(
            OperationKind.SWAP,
            caller,
            {"offer": offer.amount, "route_steps": len(route)},
            swap_params=SwapParams(
                sender=caller,
                belief_price=belief_price,
                max_spread=max_spread,
                receiver=receiver,
            ),
        )
        request = RouteSwapRequest(
            correlation_id=operation.correlation_id,
            sender=config.contract_addr,
            offer=offer,
            route=route,
            min_return=min_return or 0,
            recipient=receiver,
        )
        with self._awaiting(operation):
            ack = self.router.route_swap(env, request)
        return self._reconcile_route(env, operation, ack, ask_info, min_return, offer, receiver)

    @staticmethod
    def _reconcile_route(
        env: Env,
        pending: PendingOperation,
        ack: RouteSwapAck,
        ask_info: Optional[AssetInfo],
        min_return: Optional[int],
        offer: Asset,
        receiver: str,
    ) -> Response:
        """
        Сверка RouteSwapAck.

        Raises:
            GatewayError: failure, чужой correlation_id, fill не совпал с исполненным
            SlippageExceeded: Итог маршрута ниже min_return
        """
        if ack.correlation_id != pending.correlation_id:
            raise GatewayError(
                "Acknowledgement does not match the pending swap",
                expected=pending.correlation_id,
                actual=ack.correlation_id,
            )
        operation = env.registry.close(ack.correlation_id)
        if not ack.success:
            raise GatewayError(
                f"Trade-Routing gateway failed: {ack.error}",
                correlation_id=ack.correlation_id,
            )
        if operation.fill is None or ack.pool_fill != operation.fill:
            raise GatewayError(
                "Reported pool fill differs from the executed fill",
                expected=operation.fill,
                actual=ack.pool_fill,
            )
        if ack.return_asset is None:
            raise GatewayError("Trade-Routing gateway reported no return asset")
        if ask_info is not None and ack.return_asset.info != ask_info:
            raise GatewayError(
                "Route returned an unexpected asset",
                expected=str(ask_info),
                actual=str(ack.return_asset.info),
            )
        if min_return is not None and ack.return_asset.amount < min_return:
            raise SlippageExceeded(
                "Routed swap return is below min_return",
                expected=min_return,
                actual=ack.return_asset.amount,
            )

        logger.info("Routed swap %s -> %s settled", offer, ack.return_asset)
        return Response(
            action="swap",
            attributes={
                "sender": operation.caller,
                "receiver": receiver,
                "offer_asset": str(offer.info),
                "ask_asset": str(ack.return_asset.info),
                "offer_amount": str(offer.amount),
                "return_amount": str(ack.return_asset.amount),
                "pool_fill": str(operation.fill),
                "routed": "true",
            },
            data={"return_amount": str(ack.return_asset.amount)},
        )

    # =========================================================================
    # SUDO HOOKS
    # =========================================================================

    def swap_exact_amount_in(
        self,
        env: Env,
        sender: str,
        token_in: Coin,
        token_out_denom: str,
        token_out_min_amount: int,
        correlation_id: Optional[int] = None,
    ) -> Response:
        """
        Hook routing модуля: свап точного входа.

        С correlation_id — продолжение routed swap'а этого пула: параметры
        берутся из PendingOperation, fill записывается в неё. Без него —
        сторонний свап: belief_price = token_in / token_out_min_amount, max_spread 0.
        """
        config = self._load_config()
        offer_ind = config.denom_index(token_in.denom)
        if config.denom_index(token_out_denom) == offer_ind:
            raise InvalidAsset("Offer and ask assets are the same", asset=token_in.denom)

        if correlation_id is None:
            self._ensure_idle()
            belief_price = None
            if token_out_min_amount > 0:
                belief_price = MATH_CONTEXT.divide(
                    Decimal(token_in.amount), Decimal(token_out_min_amount)
                )
            outcome = self._execute_swap(
                env,
                config,
                offer_ind,
                token_in.amount,
                sender,
                belief_price=belief_price,
                max_spread=ZERO,
                min_return=token_out_min_amount,
            )
        else:
            operation = env.registry.get(correlation_id)
            if (
                operation.kind != OperationKind.SWAP
                or operation.fill is not None
                or operation.swap_params is None
            ):
                raise GatewayError(
                    "Unexpected swap hook for correlation id", correlation_id=correlation_id
                )
            if token_in.amount != operation.amounts["offer"]:
                raise GatewayError(
                    "Routed offer differs from the pending swap",
                    expected=operation.amounts["offer"],
                    actual=token_in.amount,
                )
            # belief_price / max_spread относятся к паре пула только для одношагового маршрута
            single_step = operation.amounts.get("route_steps") == 1
            params = operation.swap_params
            outcome = self._execute_swap(
                env,
                config,
                offer_ind,
                token_in.amount,
                sender,
                belief_price=params.belief_price if single_step else None,
                max_spread=params.max_spread if single_step else MAX_ALLOWED_SLIPPAGE,
                min_return=token_out_min_amount,
            )
            env.registry.update(
                operation.with_fill(
                    Asset(info=AssetInfo.native(token_out_denom), amount=outcome.return_amount)
                )
            )

        return Response(
            action="swap",
            attributes=self._swap_attributes(config, sender, sender, outcome),
            messages=outcome.messages,
            data={"token_out_amount": str(outcome.return_amount)},
        )

    def swap_exact_amount_out(
        self,
        env: Env,
        sender: str,
        token_in_denom: str,
        token_in_max_amount: int,
        token_out: Coin,
    ) -> Response:
        """
        Hook routing модуля: свап точного выхода.

        offer = ceil(reverse simulation); неиспользованный вход возвращается sender'у.

        Raises:
            SlippageExceeded: offer > token_in_max_amount или return < token_out
        """
        self._ensure_idle()
        config = self._load_config()
        offer_ind = config.denom_index(token_in_denom)
        ask_ind = config.denom_index(token_out.denom)
        if offer_ind == ask_ind:
            raise InvalidAsset("Offer and ask assets are the same", asset=token_in_denom)

        state = self.ledger.read()
        precisions = config.precisions
        amp, gamma = state.amp_gamma.get_amp_gamma(env.block_time)
        offer_dec, _, _ = compute_offer_amount(
            state.balances(precisions),
            to_decimal(token_out.amount, precisions[ask_ind]),
            ask_ind,
            state.price_state.price_scale,
            amp,
            gamma,
            config.params,
        )
        offer_amount = ceil_to_units(offer_dec, precisions[offer_ind])
        if offer_amount > token_in_max_amount:
            raise SlippageExceeded(
                "Required offer exceeds token_in_max_amount",
                expected=token_in_max_amount,
                actual=offer_amount,
            )

        outcome = self._execute_swap(
            env,
            config,
            offer_ind,
            offer_amount,
            sender,
            max_spread=MAX_ALLOWED_SLIPPAGE,
            min_return=token_out.amount,
        )
        messages = list(outcome.messages)
        refund = token_in_max_amount - offer_amount
        if refund > 0:
            messages.append(
                BankSend(to_address=sender, amount=(Coin(denom=token_in_denom, amount=refund),))
            )
        return Response(
            action="swap",
            attributes=self._swap_attributes(config, sender, sender, outcome),
            messages=tuple(messages),
            data={"token_in_amount": str(offer_amount)},
        )

    # =========================================================================
    # CONFIG UPDATES
    # =========================================================================

    def update_params(self, env: Env, update: Dict[str, Any]) -> PoolParams:
        """
        Merge non-null полей в PoolParams.

        Raises:
            IncorrectPoolParam / InvalidParameters: Новые параметры вне границ
        """
        config = self._load_config(require_lp_denom=False)
        merged = config.params.model_dump()
        merged.update({key: value for key, value in update.items() if value is not None})
        params = PoolParams(**merged)
        self.ledger.save_config(config.model_copy(update={"params": params}))
        logger.info("Pool params updated at %d: %s", env.block_time, sorted(update))
        return params

    def enable_asset_balances_tracking(self, env: Env) -> None:
        """
        Включение истории резервов; текущие резервы пишутся сразу.

        Raises:
            InvalidParameters: История уже ведётся
        """
        config = self._load_config(require_lp_denom=False)
        if config.params.track_asset_balances:
            raise InvalidParameters("Asset balances tracking is already enabled")
        params = config.params.model_copy(update={"track_asset_balances": True})
        self.ledger.save_config(config.model_copy(update={"params": params}))
        self.ledger.record_balances(env.block_height, self.ledger.read().reserves)
        logger.info("Asset balances tracking enabled at height %d", env.block_height)

    def promote_amp_gamma(
        self, env: Env, next_amp: Decimal, next_gamma: Decimal, future_time: int
    ) -> AmpGamma:
        """
        Линейный ramp amp/gamma от текущих значений до next_* к future_time.

        Raises:
            InvalidParameters: Ramp чаще раза в MIN_AMP_CHANGING_TIME, короче
                MIN_AMP_CHANGING_TIME или с изменением больше MAX_AMP_GAMMA_CHANGE
        """
        config = self._load_config(require_lp_denom=False)
        state = self.ledger.read()
        now = env.block_time
        current = state.amp_gamma

        if now < current.initial_time + MIN_AMP_CHANGING_TIME:
            raise InvalidParameters(
                "Amp and gamma can be changed once per day",
                expected=current.initial_time + MIN_AMP_CHANGING_TIME,
                actual=now,
            )
        if future_time < now + MIN_AMP_CHANGING_TIME:
            raise InvalidParameters(
                "Amp and gamma ramp must last at least a day",
                expected=now + MIN_AMP_CHANGING_TIME,
                actual=future_time,
            )
        check_param_bounds("amp", next_amp)
        check_param_bounds("gamma", next_gamma)

        amp, gamma = current.get_amp_gamma(now)
        for name, value, target in (("amp", amp, next_amp), ("gamma", gamma, next_gamma)):
            ratio = MATH_CONTEXT.divide(target, value)
            if abs_diff(ratio, ONE) > MAX_AMP_GAMMA_CHANGE:
                raise InvalidParameters(
                    f"New {name} changes by more than {MAX_AMP_GAMMA_CHANGE}",
                    expected=MAX_AMP_GAMMA_CHANGE,
                    actual=abs_diff(ratio, ONE),
                )

        amp_gamma = AmpGamma(
            initial_amp=amp,
            initial_gamma=gamma,
            future_amp=next_amp,
            future_gamma=next_gamma,
            initial_time=now,
            future_time=future_time,
        )
        self._commit(
            env,
            config,
            state,
            state.model_copy(update={"amp_gamma": amp_gamma, "last_updated": now}),
        )
        logger.info("Amp/gamma ramp to (%s, %s) until %d", next_amp, next_gamma, future_time)
        return amp_gamma

    def stop_changing_amp_gamma(self, env: Env) -> AmpGamma:
        """Фиксация текущих amp/gamma."""
        config = self._load_config(require_lp_denom=False)
        state = self.ledger.read()
        now = env.block_time
        amp, gamma = state.amp_gamma.get_amp_gamma(now)
        amp_gamma = AmpGamma(
            initial_amp=amp,
            initial_gamma=gamma,
            future_amp=amp,
            future_gamma=gamma,
            initial_time=now,
            future_time=now,
        )
        self._commit(
            env,
            config,
            state,
            state.model_copy(update={"amp_gamma": amp_gamma, "last_updated": now}),
        )
        logger.info("Amp/gamma frozen at (%s, %s)", amp, gamma)
        return amp_gamma

