"""
Core modules for the token ledger.

This package contains the token lifecycle engine, the validation rules,
payment authorization and the error taxonomy.
"""
