"""
Comments Module
===============

Provides:
- GET/POST /api/campaigns/<id>/comments -- threaded comments
- POST /api/comments/<id>/like -- toggle a like
- POST /api/comments/<id>/pin -- creator pins a comment
- DELETE /api/comments/<id> -- soft delete
- POST /api/comments/<id>/report -- flag a comment for review
"""

from flask import Blueprint

comments_bp = Blueprint('comments', __name__, url_prefix='/api')

from . import routes
