"""APDU client for the Stellar app on Ledger devices."""
