from contextlib import asynccontextmanager

from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.middleware import ExtraDataToPOAMiddleware

from fork_lp.core.config import get_rpc_urls
from fork_lp.core.constants.chains import POA_MIDDLEWARE_CHAIN_IDS


class _ForkProvider(AsyncHTTPProvider):
    async def make_request(self, method, params):  # type: ignore[override]
        # Some fork proxies omit `id` in JSON-RPC responses, which breaks web3.py.
        req = self.form_request(method, params)
        request_data = self.encode_rpc_dict(req)
        raw_response = await self._make_request(method, request_data)
        response = self.decode_rpc_response(raw_response)
        if isinstance(response, dict) and "id" not in response:
            response["id"] = req.get("id")
        return response


def _get_rpcs_for_chain_id(chain_id: int) -> list:
    mapping = get_rpc_urls()
    rpcs = mapping.get(str(chain_id))
    if rpcs is None:
        rpcs = mapping.get(chain_id)  # allow int keys
    if rpcs is None:
        raise ValueError(f"No RPCs configured for chain ID {chain_id}")
    if isinstance(rpcs, str):
        return [rpcs]
    return rpcs


def get_rpc_url(chain_id: int) -> str:
    return str(_get_rpcs_for_chain_id(chain_id)[0])


def get_web3(rpc: str, chain_id: int | None = None) -> AsyncWeb3:
    provider = _ForkProvider(
        rpc, request_kwargs={"headers": AsyncHTTPProvider.get_request_headers()}
    )
    web3 = AsyncWeb3(provider)
    if chain_id in POA_MIDDLEWARE_CHAIN_IDS:
        web3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
    return web3


@asynccontextmanager
async def web3_from_rpc(rpc: str, chain_id: int | None = None):
    web3 = get_web3(rpc, chain_id)
    try:
        yield web3
    finally:
        await web3.provider.disconnect()
