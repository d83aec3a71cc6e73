import asyncio

from web3 import AsyncWeb3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from fork_lp.core.constants.erc20_abi import ERC20_ABI


def _erc20(web3: AsyncWeb3, token_address: str):
    return web3.eth.contract(
        address=web3.to_checksum_address(token_address), abi=ERC20_ABI
    )


async def get_token_balance(
    web3: AsyncWeb3,
    token_address: str,
    wallet_address: str,
    *,
    block_identifier: str | int = "latest",
) -> int:
    contract = _erc20(web3, token_address)
    balance = await contract.functions.balanceOf(
        web3.to_checksum_address(wallet_address)
    ).call(block_identifier=block_identifier)
    return int(balance)


async def get_token_metadata(
    web3: AsyncWeb3, token_address: str
) -> tuple[str, int]:
    contract = _erc20(web3, token_address)
    symbol, decimals = await asyncio.gather(
        contract.functions.symbol().call(block_identifier="latest"),
        contract.functions.decimals().call(block_identifier="latest"),
    )
    return str(symbol), int(decimals)


async def get_token_allowance(
    web3: AsyncWeb3, token_address: str, owner_address: str, spender_address: str
) -> int:
    contract = _erc20(web3, token_address)
    allowance = await contract.functions.allowance(
        web3.to_checksum_address(owner_address),
        web3.to_checksum_address(spender_address),
    ).call(block_identifier="latest")
    return int(allowance)


async def simulate_transfer(
    web3: AsyncWeb3,
    token_address: str,
    from_address: str,
    to_address: str,
    amount: int,
) -> bool:
    """Dry-run ``transfer`` from ``from_address``; False if it would fail."""
    contract = _erc20(web3, token_address)
    try:
        ok = await contract.functions.transfer(
            web3.to_checksum_address(to_address), int(amount)
        ).call({"from": web3.to_checksum_address(from_address)})
    except ContractLogicError:
        return False
    except BadFunctionCallOutput:
        # Non-standard tokens (USDT) return nothing from transfer().
        return True
    return bool(ok)


def build_approve_transaction(
    web3: AsyncWeb3,
    *,
    from_address: str,
    chain_id: int,
    token_address: str,
    spender_address: str,
    amount: int,
) -> dict:
    contract = _erc20(web3, token_address)
    data = contract.encode_abi(
        "approve",
        [
            web3.to_checksum_address(spender_address),
            int(amount),
        ],
    )
    return {
        "to": web3.to_checksum_address(token_address),
        "from": web3.to_checksum_address(from_address),
        "data": data,
        "chainId": int(chain_id),
    }


def build_transfer_transaction(
    web3: AsyncWeb3,
    *,
    from_address: str,
    to_address: str,
    chain_id: int,
    token_address: str,
    amount: int,
) -> dict:
    contract = _erc20(web3, token_address)
    data = contract.encode_abi(
        "transfer", [web3.to_checksum_address(to_address), int(amount)]
    )
    return {
        "to": web3.to_checksum_address(token_address),
        "from": web3.to_checksum_address(from_address),
        "data": data,
        "chainId": int(chain_id),
    }
