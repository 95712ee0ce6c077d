"""
OSOT membership, e-commerce and registration API.

Records live in Dataverse; Redis holds short-lived cache entries,
registration sessions and the token blacklist.
"""
