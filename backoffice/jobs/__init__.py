"""
Background Jobs Module

Handles scheduled tasks for:
- Daily warranty expiry digest (per company)
"""
