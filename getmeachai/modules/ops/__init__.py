"""
Ops Module
==========

Public /health endpoint for uptime monitors (no auth): database
connectivity, disk usage and process uptime.
"""

from flask import Blueprint

ops_health_bp = Blueprint(
    'ops_health',
    __name__,
    url_prefix='/health'
)

from . import routes
