"""
Pure business rules (no I/O): product and order state machines, line-item
arithmetic, order permissions and education category resolution.
"""
