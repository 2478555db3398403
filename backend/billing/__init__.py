"""
Store Billing Module
Token-based usage fees for AI features in the store dashboard

This module provides:
- Global fee settings with fail-open defaults
- Per-store token balance debits and credits
- Usage-fee gate with compensating refunds on failure
- Immutable token ledger and unresolved-reversal records

Collections used:
- stores: pradana_token_balance field per store
- token_ledger: Immutable transaction log
- unresolved_reversals: Refunds that could not be applied
- app_settings: Global fee settings document
"""

__version__ = "1.0.0"
