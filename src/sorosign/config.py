"""Application configuration using pydantic-settings.

Covers network selection, RPC polling, fee defaults and signer backends
(hardware device, OS secure store, browser lab, external plugins).
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Network
    # ======================
    network_passphrase: str = Field(
        default="Test SDF Network ; September 2015",
        description="Network passphrase mixed into every signature payload",
    )
    rpc_url: str = Field(
        default="https://soroban-testnet.stellar.org",
        description="Soroban JSON-RPC endpoint",
    )
    rpc_timeout: float = Field(default=30.0, description="HTTP timeout for RPC calls (seconds)")
    poll_interval: float = Field(default=1.0, description="Delay between getTransaction polls (seconds)")
    poll_timeout: float = Field(default=30.0, description="Give up polling after this many seconds")

    # ======================
    # Fees & Authorization
    # ======================
    inclusion_fee: int = Field(default=100, description="Inclusion fee in stroops for new transactions")
    auth_expiration_offset: int = Field(
        default=60,
        description="Ledgers added to the latest ledger for authorization signature expiry",
    )

    # ======================
    # External Plugins
    # ======================
    plugin_prefixes: str = Field(
        default="stellar-signer-,soroban-signer-",
        description="Comma-separated executable prefixes tried when resolving a signer plugin",
    )

    # ======================
    # Hardware Device
    # ======================
    ledger_hd_index: int = Field(default=0, description="Account index in m/44'/148'/index'")
    ledger_hash_signing: bool = Field(
        default=False,
        description="Send only the transaction hash to the device (requires hash signing enabled in the app)",
    )
    ledger_emulator_url: Optional[str] = Field(
        default=None,
        description="HTTP APDU endpoint of a device emulator (e.g. http://127.0.0.1:5001)",
    )
    device_lock_timeout: float = Field(
        default=60.0, description="Maximum time to wait for exclusive device access (seconds)"
    )

    # ======================
    # Secure Store / Browser
    # ======================
    secure_store_service_prefix: str = Field(
        default="org.stellar.cli.",
        description="Service name prefix for OS keychain entries",
    )
    lab_url: str = Field(
        default="https://lab.stellar.org/transaction/cli-sign",
        description="Browser signing page; the unsigned envelope is appended as a query parameter",
    )

    # ======================
    # Logging
    # ======================
    log_level: str = Field(default="INFO", description="Root log level")

    @property
    def plugin_prefix_list(self) -> list[str]:
        """Parse plugin prefixes into an ordered list."""
        return [p.strip() for p in self.plugin_prefixes.split(",") if p.strip()]

    @property
    def uses_emulator(self) -> bool:
        """Check if device calls go to an HTTP emulator."""
        return bool(self.ledger_emulator_url)

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "network_passphrase": self.network_passphrase,
            "rpc_url": self._redact_url(self.rpc_url),
            "inclusion_fee": self.inclusion_fee,
            "auth_expiration_offset": self.auth_expiration_offset,
            "plugins": self.plugin_prefix_list,
            "ledger": {
                "hd_index": self.ledger_hd_index,
                "hash_signing": self.ledger_hash_signing,
                "emulator": self.ledger_emulator_url or "(not set)",
            },
            "secure_store_prefix": self.secure_store_service_prefix,
            "log_level": self.log_level,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact credentials embedded in an RPC URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
