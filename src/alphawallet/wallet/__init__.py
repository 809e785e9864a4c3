"""
Key derivation, addresses, transactions and scanning.
"""
