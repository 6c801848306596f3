"""Reference signer plugins."""
