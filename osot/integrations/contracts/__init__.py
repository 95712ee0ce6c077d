"""
Contracts (data models and client interfaces).

Both mock and real HTTP clients implement these, so controllers never
depend on which one is wired in.
"""
