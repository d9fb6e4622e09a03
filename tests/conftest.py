"""
Общие fixtures: host chain, пул uosmo/uusd и провайдер ликвидности.

Параметры пула по умолчанию: amp 40, gamma 0.02, price_scale 1,
mid_fee == out_fee == 0.003 (фиксированный fee rate), precisions 6/6.
"""

import pytest

from pcl_pool.core.domain.assets import Coin
from pcl_pool.host import HostChain

OSMO = "uosmo"
USD = "uusd"
OWNER = "owner"
PROVIDER = "provider"
TRADER = "trader"

INITIAL_LIQUIDITY = 1000_000000


def _instantiate_msg(**init_params) -> dict:
    params = {
        "amp": "40",
        "gamma": "0.02",
        "price_scale": "1",
        "mid_fee": "0.003",
        "out_fee": "0.003",
    }
    params.update(init_params)
    return {
        "asset_infos": [
            {"native_token": {"denom": OSMO}},
            {"native_token": {"denom": USD}},
        ],
        "owner": OWNER,
        "init_params": params,
    }


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def instantiate_msg():
    """Фабрика instantiate сообщения; kwargs переопределяют init_params."""
    return _instantiate_msg


@pytest.fixture
def host():
    """Host chain с балансами провайдера и трейдера."""
    chain = HostChain()
    for address in (PROVIDER, TRADER):
        chain.fund(
            address,
            [
                Coin(denom=OSMO, amount=1_000_000_000000),
                Coin(denom=USD, amount=1_000_000_000000),
            ],
        )
    return chain


@pytest.fixture
def empty_pool(host):
    """Пул, созданный factory, без ликвидности."""
    return host.create_pool(_instantiate_msg())


@pytest.fixture
def pool(host, empty_pool):
    """Пул с начальной ликвидностью 1000 uosmo / 1000 uusd от PROVIDER."""
    host.next_block()
    host.execute(
        empty_pool.address,
        PROVIDER,
        {
            "provide_liquidity": {
                "assets": [
                    {"info": {"native_token": {"denom": OSMO}}, "amount": str(INITIAL_LIQUIDITY)},
                    {"info": {"native_token": {"denom": USD}}, "amount": str(INITIAL_LIQUIDITY)},
                ]
            }
        },
        funds=[
            Coin(denom=OSMO, amount=INITIAL_LIQUIDITY),
            Coin(denom=USD, amount=INITIAL_LIQUIDITY),
        ],
    )
    host.next_block()
    return empty_pool
