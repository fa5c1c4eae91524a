"""
Cron Module
===========

Scheduled jobs exposed as HTTP endpoints for an external scheduler.
Callers authenticate with "Authorization: Bearer <CRON_SECRET>" or ?secret=.

Provides:
- /api/cron/close-expired-campaigns
- /api/cron/publish-scheduled
- /api/cron/weekly-summary
"""

from flask import Blueprint

cron_bp = Blueprint('cron', __name__, url_prefix='/api/cron')

from . import routes
