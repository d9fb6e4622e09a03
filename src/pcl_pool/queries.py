"""
Queries — read-only entry points пула

Ни один запрос не пишет в storage: cumulative_prices накапливает TWAP
до текущего времени "на лету", не сохраняя результат.

Ответы — JSON-совместимые dict'ы (числа в строках, как во входящих сообщениях).
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from pcl_pool.core.domain.assets import Asset, AssetInfo
from pcl_pool.core.errors import InvalidAsset
from pcl_pool.core.math.curve_invariant import calc_d
from pcl_pool.core.math.numerical_safeguards import (
    LP_TOKEN_PRECISION,
    MATH_CONTEXT,
    ONE,
    ZERO,
    ceil_to_units,
    floor_to_units,
    to_decimal,
)
from pcl_pool.core.math.swap_math import (
    before_swap_check,
    compute_offer_amount,
    compute_swap,
    dynamic_fee,
)
from pcl_pool.gateways.token_issuance import TokenIssuanceGateway
from pcl_pool.ledger.pool_ledger import PoolLedger
from pcl_pool.liquidity.accounting import share_in_assets
from pcl_pool.settlement.circuit_breaker import CircuitBreaker
from pcl_pool.settlement.price_oracle import accumulate_prices, observe


class PoolQueries:
    """Read-only представление Pool Ledger."""

    def __init__(
        self,
        ledger: PoolLedger,
        issuance: TokenIssuanceGateway,
        breaker: CircuitBreaker,
    ):
        self.ledger = ledger
        self.issuance = issuance
        self.breaker = breaker

    def _pool_assets(self) -> list[Dict[str, Any]]:
        config = self.ledger.load_config()
        state = self.ledger.read()
        return [
            Asset(info=info, amount=amount).to_msg()
            for info, amount in zip(config.asset_infos, state.reserves)
        ]

    # -------------------------------------------------------------------------
    # CONFIG / STATE
    # -------------------------------------------------------------------------

    def config(self, now: int) -> Dict[str, Any]:
        config = self.ledger.load_config()
        state = self.ledger.read()
        amp, gamma = state.amp_gamma.get_amp_gamma(now)
        return {
            "asset_infos": [info.to_msg() for info in config.asset_infos],
            "precisions": list(config.precisions),
            "lp_denom": config.lp_denom,
            "pool_id": config.pool_id,
            "owner": config.owner,
            "factory_addr": config.factory_addr,
            "params": config.params.model_dump(mode="json"),
            "amp": str(amp),
            "gamma": str(gamma),
            "future_time": state.amp_gamma.future_time,
            "price_scale": str(state.price_state.price_scale),
            "halted": self.breaker.is_open(),
        }

    def pool(self) -> Dict[str, Any]:
        return {
            "assets": self._pool_assets(),
            "total_share": str(self.ledger.read().total_share),
        }

    def share(self, amount: int) -> list[Dict[str, Any]]:
        """Активы, соответствующие amount LP."""
        config = self.ledger.load_config()
        withdrawn = share_in_assets(amount, self.ledger.read())
        return [
            Asset(info=info, amount=value).to_msg()
            for info, value in zip(config.asset_infos, withdrawn)
        ]

    def total_pool_liquidity(self) -> Dict[str, Any]:
        config = self.ledger.load_config()
        state = self.ledger.read()
        return {
            "total_pool_liquidity": [
                {"denom": denom, "amount": str(amount)}
                for denom, amount in zip(config.denoms, state.reserves)
            ]
        }

    def asset_balance_at(self, asset_info: AssetInfo, block_height: int) -> Dict[str, Any]:
        """
        Резерв актива к началу блока block_height.

        balance = None, если история не ведётся или до block_height пуста.
        """
        config = self.ledger.load_config()
        balance = self.ledger.balance_at(config.asset_index(asset_info), block_height)
        return {"balance": str(balance) if balance is not None else None}

    # -------------------------------------------------------------------------
    # SIMULATION
    # -------------------------------------------------------------------------

    def simulation(
        self, now: int, offer: Asset, ask_info: Optional[AssetInfo] = None
    ) -> Dict[str, str]:
        """Результат свапа без commit'а (те же ошибки, что у swap)."""
        config = self.ledger.load_config()
        state = self.ledger.read()
        offer_ind = config.asset_index(offer.info)
        ask_ind = 1 - offer_ind
        if ask_info is not None and config.asset_index(ask_info) != ask_ind:
            raise InvalidAsset("Offer and ask assets are the same", asset=str(offer.info))

        precisions = config.precisions
        offer_dec = to_decimal(offer.amount, precisions[offer_ind])
        xs = state.balances(precisions)
        before_swap_check(xs, offer_dec)
        amp, gamma = state.amp_gamma.get_amp_gamma(now)
        params = config.params
        computed = compute_swap(
            xs,
            offer_dec,
            ask_ind,
            state.price_state.price_scale,
            amp,
            gamma,
            params,
            params.maker_fee_share if params.charges_maker_fee else ZERO,
        )
        ask_precision = precisions[ask_ind]
        return {
            "return_amount": str(floor_to_units(computed.dy, ask_precision)),
            "spread_amount": str(floor_to_units(computed.spread_fee, ask_precision)),
            "commission_amount": str(floor_to_units(computed.total_fee, ask_precision)),
        }

    def reverse_simulation(
        self, now: int, ask: Asset, offer_info: Optional[AssetInfo] = None
    ) -> Dict[str, str]:
        """Сколько offer нужно для ask (offer округляется вверх)."""
        config = self.ledger.load_config()
        state = self.ledger.read()
        ask_ind = config.asset_index(ask.info)
        offer_ind = 1 - ask_ind
        if offer_info is not None and config.asset_index(offer_info) != offer_ind:
            raise InvalidAsset("Offer and ask assets are the same", asset=str(ask.info))

        precisions = config.precisions
        amp, gamma = state.amp_gamma.get_amp_gamma(now)
        offer, spread_fee, total_fee = compute_offer_amount(
            state.balances(precisions),
            to_decimal(ask.amount, precisions[ask_ind]),
            ask_ind,
            state.price_state.price_scale,
            amp,
            gamma,
            config.params,
        )
        return {
            "offer_amount": str(ceil_to_units(offer, precisions[offer_ind])),
            "spread_amount": str(floor_to_units(spread_fee, precisions[ask_ind])),
            "commission_amount": str(floor_to_units(total_fee, precisions[ask_ind])),
        }

    # -------------------------------------------------------------------------
    # PRICES
    # -------------------------------------------------------------------------

    def cumulative_prices(self, now: int) -> Dict[str, Any]:
        """
        TWAP-счётчики, накопленные до now.

        cumulative_prices: [[denom0, denom1, price0_cumulative],
                            [denom1, denom0, price1_cumulative]]
        """
        config = self.ledger.load_config()
        state = accumulate_prices(self.ledger.read(), now)
        acc = state.accumulators
        denom0, denom1 = config.denoms
        return {
            "assets": self._pool_assets(),
            "total_share": str(state.total_share),
            "cumulative_prices": [
                [denom0, denom1, str(acc.price0_cumulative)],
                [denom1, denom0, str(acc.price1_cumulative)],
            ],
            "last_updated": acc.last_updated,
        }

    def compute_d(self, now: int) -> Dict[str, str]:
        config = self.ledger.load_config()
        state = self.ledger.read()
        amp, gamma = state.amp_gamma.get_amp_gamma(now)
        return {"d": str(calc_d(state.xp(config.precisions), amp, gamma))}

    def lp_price(self, now: int) -> Dict[str, str]:
        """Цена 1 LP в единицах asset0: D / total_share."""
        config = self.ledger.load_config()
        state = self.ledger.read()
        if state.total_share == 0:
            return {"lp_price": str(ZERO)}
        amp, gamma = state.amp_gamma.get_amp_gamma(now)
        d = calc_d(state.xp(config.precisions), amp, gamma)
        total_lp = to_decimal(state.total_share, LP_TOKEN_PRECISION)
        return {"lp_price": str(MATH_CONTEXT.divide(d, total_lp))}

    def observe(self, now: int, seconds_ago: int) -> Dict[str, str]:
        price = observe(self.ledger.read().observations, now, seconds_ago)
        return {"price": str(price)}

    def spot_price(self, quote_denom: str, base_denom: str) -> Dict[str, str]:
        """
        Цена base актива в единицах quote (по last_price).

        Raises:
            InvalidAsset: Denomination вне пары или base == quote
        """
        config = self.ledger.load_config()
        quote_ind = config.denom_index(quote_denom)
        base_ind = config.denom_index(base_denom)
        if quote_ind == base_ind:
            raise InvalidAsset("Quote and base assets are the same", asset=quote_denom)
        last_price = self.ledger.read().price_state.last_price
        price: Decimal = last_price if base_ind == 1 else MATH_CONTEXT.divide(ONE, last_price)
        return {"spot_price": str(price)}

    def swap_fee(self) -> Dict[str, str]:
        """Текущий dynamic fee rate."""
        config = self.ledger.load_config()
        state = self.ledger.read()
        return {"swap_fee": str(dynamic_fee(state.xp(config.precisions), config.params))}
