"""
Notifications Module
====================

Provides:
- GET / -- latest 50 notifications and the unread count
- POST / -- mark-read, mark-all-read and delete actions
"""

from flask import Blueprint

notifications_bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')

from . import routes
