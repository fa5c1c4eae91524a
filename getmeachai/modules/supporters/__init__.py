"""
Supporters Module
=================

Read-only views over successful payments.

Provides:
- GET /api/campaigns/<id>/supporters -- top, recent and stats for a campaign
- GET /api/supporters/leaderboard -- platform-wide top supporters
- GET /api/supporters/mine -- the caller's contribution history
"""

from flask import Blueprint

supporters_bp = Blueprint('supporters', __name__, url_prefix='/api')

from . import routes
