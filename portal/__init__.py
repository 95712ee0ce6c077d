"""
Membership portal API: accounts and organizations stored in MongoDB.
"""
