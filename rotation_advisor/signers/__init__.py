"""Transaction signers."""
from .rpc_wallet import RpcWalletSigner

__all__ = ["RpcWalletSigner"]
