from .eth import EthRpc, FeeData
from .http import RpcClient

__all__ = ["RpcClient", "EthRpc", "FeeData"]
