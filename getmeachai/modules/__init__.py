"""
Get Me A Chai Modules
=====================

Flask blueprint modules registered by the GetMeAChai extension.
"""

__all__ = [
    'ai', 'auth', 'campaigns', 'comments', 'cron', 'email',
    'notifications', 'ops', 'payments', 'supporters', 'updates',
]
