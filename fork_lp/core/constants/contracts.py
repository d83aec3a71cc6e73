from fork_lp.core.constants.chains import (
    CHAIN_ID_ARBITRUM,
    CHAIN_ID_BASE,
    CHAIN_ID_ETHEREUM,
    CHAIN_ID_POLYGON,
)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

UNISWAP_V3_NPM: dict[int, str] = {
    CHAIN_ID_ETHEREUM: "0xC36442b4a4522E871399CD717aBDD847Ab11FE88",
    CHAIN_ID_ARBITRUM: "0xC36442b4a4522E871399CD717aBDD847Ab11FE88",
    CHAIN_ID_POLYGON: "0xC36442b4a4522E871399CD717aBDD847Ab11FE88",
    CHAIN_ID_BASE: "0x03a520b32C04BF3bEEf7BEb72E919cf822Ed34f1",
}

ETHEREUM_WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
ETHEREUM_USDC = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"
ETHEREUM_USDT = "0xdAC17F958D2ee523a2206206994597C13D831ec7"

# Mainnet account holding both WETH and USDC, used as the default funding source.
ETHEREUM_FUNDING_WHALE = "0x47ac0Fb4F2D84898e4D9E7b4DaB3C24507a6D503"

# approve() reverts when changing a non-zero allowance to another non-zero value.
TOKENS_REQUIRING_APPROVAL_RESET: set[tuple[int, str]] = {
    (CHAIN_ID_ETHEREUM, ETHEREUM_USDT),
}
