"""
SLAM - SLA Record Store
Blueprint registry.
"""
