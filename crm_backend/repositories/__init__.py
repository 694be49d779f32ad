"""
Data access for the template catalog, installation ledger and live schema
"""
