"""
Sockets Package
"""
from livequiz.sockets.quiz_events import register_socket_events, emit_row_change

__all__ = ['register_socket_events', 'emit_row_change']
