"""
Routes Package
Exports all route blueprints
"""
from livequiz.routes.teacher import teacher_bp
from livequiz.routes.player import player_bp

__all__ = ['teacher_bp', 'player_bp']
