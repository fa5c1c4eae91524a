"""
AI Module
=========

Campaign-building assistance backed by an OpenRouter chat model.

Provides (all under /api/ai, rate limited by the 'ai' preset):
- generate-campaign (streamed), suggest-goal, generate-milestones,
  generate-rewards, generate-faqs, score-campaign
- chat -- platform help assistant
- recommendations -- campaigns ranked for the signed-in user
"""

from flask import Blueprint

ai_bp = Blueprint('ai', __name__, url_prefix='/api/ai')

from . import routes
