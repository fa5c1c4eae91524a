"""
Auth Module
===========

Provides:
- Email/password signup and login (session based)
- Password reset through an emailed, single-use token
- GitHub and Google sign-in via OAuth when credentials are configured
- Profile and payout-key management for creators
"""

from flask import Blueprint

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')

from . import routes
