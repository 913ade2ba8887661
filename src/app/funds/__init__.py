"""Fund ledger: funds, allocations, capital calls, payments and distributions.

The capital call state machine lives in capital_calls, allocation status
derivation and portfolio weights in allocation_status, and the capital
figures (called/uncalled capital, MOIC, DPI, TVPI) in metrics.
"""
