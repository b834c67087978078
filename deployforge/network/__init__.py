from .gate import NetworkGate
from .probe import ConnectivityProbe

__all__ = ["ConnectivityProbe", "NetworkGate"]
