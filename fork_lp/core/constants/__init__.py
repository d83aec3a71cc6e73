from fork_lp.core.constants.chains import CHAIN_CODE_TO_ID
from fork_lp.core.constants.contracts import UNISWAP_V3_NPM, ZERO_ADDRESS

__all__ = ["CHAIN_CODE_TO_ID", "UNISWAP_V3_NPM", "ZERO_ADDRESS"]
