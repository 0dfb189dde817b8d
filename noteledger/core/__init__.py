"""
noteledger core: data model, errors, canonical encoding and keys.
"""
