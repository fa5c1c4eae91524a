"""
Updates Module
==============

Provides:
- GET/POST /api/campaigns/<id>/updates -- creator posts, paginated feed
- POST /api/updates/<id>/like -- toggle a like
- publish_scheduled_updates() for the cron module
"""

from flask import Blueprint

updates_bp = Blueprint('updates', __name__, url_prefix='/api')

from . import routes
