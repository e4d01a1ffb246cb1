"""
chains - Chain access for FLASHARB.

- providers.py: JSON-RPC provider with endpoint failover (httpx)
- errors.py: node error message classification
- client.py: ChainClient interface, CallRequest, SignedSubmission
- rpc_client.py: ChainClient over eth_* JSON-RPC
- local.py: in-process chain running a SettlementProgram
- signer.py: EIP-1559 signing with eth-account
"""

from chains.client import CallRequest, ChainClient, SignedSubmission
from chains.errors import classify_rpc_error
from chains.local import LocalChain
from chains.providers import RPCProvider, RPCResponse, RPCStats
from chains.rpc_client import RPCChainClient
from chains.signer import TransactionSigner

__all__ = [
    "CallRequest",
    "ChainClient",
    "LocalChain",
    "RPCChainClient",
    "RPCProvider",
    "RPCResponse",
    "RPCStats",
    "SignedSubmission",
    "TransactionSigner",
    "classify_rpc_error",
]
