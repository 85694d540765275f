"""
Endowment Treasury Ledger

A staking treasury prototype integrating:
- Two weighted stake pools with accumulator-based reward accounting
- Profit splitting between an endowment reserve and a bonus pool
- Delegated bonus spending with LP / primary / minted priority
- Burn-to-redeem payouts from the endowment
"""
