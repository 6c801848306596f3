"""Interactive browser signing backend.

Opens the lab signing page with the unsigned envelope so the user can sign
and submit from a browser wallet. No signature ever comes back to the CLI,
so every signing call ends with SignatureUnavailableError.
"""

import logging
import webbrowser
from typing import Callable, Optional

import httpx
from stellar_sdk import xdr as stellar_xdr

from sorosign.signing.base import SignatureUnavailableError, Signer, SignerType

logger = logging.getLogger(__name__)

DEFAULT_LAB_URL = "https://lab.stellar.org/transaction/cli-sign"


class BrowserSigner(Signer):
    """Hands the transaction off to the lab."""

    def __init__(
        self,
        lab_url: str = DEFAULT_LAB_URL,
        opener: Callable[[str], bool] = webbrowser.open,
        public_key: Optional[bytes] = None,
    ):
        """Initialize browser signer.

        Args:
            lab_url: Signing page URL
            opener: Function that opens a URL (injected for tests)
            public_key: Key of the browser wallet, when known
        """
        super().__init__(SignerType.LAB)
        self.lab_url = lab_url
        self.opener = opener
        self._public_key = public_key

    def signing_url(self, envelope: stellar_xdr.TransactionEnvelope, network_passphrase: str) -> str:
        url = httpx.URL(
            self.lab_url,
            params={"networkPassphrase": network_passphrase, "xdr": envelope.to_xdr()},
        )
        return str(url)

    async def get_public_key(self) -> bytes:
        if self._public_key is None:
            raise SignatureUnavailableError("The lab signer does not expose a public key")
        return self._public_key

    async def sign_payload(self, payload: bytes) -> bytes:
        raise SignatureUnavailableError("Signing authorization entries in the lab is not supported")

    async def sign_tx_hash(
        self,
        tx_hash: bytes,
        envelope: stellar_xdr.TransactionEnvelope,
        network_passphrase: str,
    ) -> list[stellar_xdr.DecoratedSignature]:
        url = self.signing_url(envelope, network_passphrase)
        logger.info(f"Opening lab to sign transaction: {url}")
        self.opener(url)
        raise SignatureUnavailableError(
            "Returning a signature from the lab is not supported; "
            "the transaction can be signed and submitted in the lab"
        )
