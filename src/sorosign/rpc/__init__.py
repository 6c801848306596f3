"""Soroban RPC collaborator."""

from sorosign.rpc.base import RpcClient, RpcError, SimulationResult
from sorosign.rpc.jsonrpc import JsonRpcClient

__all__ = ["RpcClient", "RpcError", "SimulationResult", "JsonRpcClient"]
