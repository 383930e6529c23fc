"""
Caller identity for protected routes (bearer access tokens).
"""
