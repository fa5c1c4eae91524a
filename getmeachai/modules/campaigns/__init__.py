"""
Campaigns Module
================

Provides:
- Campaign creation, editing, status changes and deletion by the creator
- Public listing with filters, trending ranking and category counts
- Drafts that stay private until the owner publishes them
- View and share tracking, abuse reports
- close_expired_campaigns() for the cron module
"""

from flask import Blueprint

campaigns_bp = Blueprint('campaigns', __name__, url_prefix='/api/campaigns')

from . import routes
