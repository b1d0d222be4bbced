"""
Wallet connection for the GIF portal.

- providers: the injected wallet capability (browser extension adapter, mock)
- session: WalletSession, sole owner of the connected address
"""

from .providers import BrowserExtensionProvider, ConnectResponse, MockProvider, WalletProvider
from .session import WalletSession

__all__ = [
    "BrowserExtensionProvider",
    "ConnectResponse",
    "MockProvider",
    "WalletProvider",
    "WalletSession",
]
