"""Network module.

Provides:
- NetworkLink protocol and the nmcli-backed NmcliLink
- ConnectivityClassifier for online / offline / captive portal detection
"""

from .link import NetworkLink, NmcliLink
from .connectivity import ConnectivityClassifier, ConnectivityStatus

__all__ = [
    "NetworkLink",
    "NmcliLink",
    "ConnectivityClassifier",
    "ConnectivityStatus",
]
