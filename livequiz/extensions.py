"""
Flask Extensions
Centralized extension initialization
"""
from flask_sqlalchemy import SQLAlchemy
from flask_socketio import SocketIO

# Initialize extensions (without app binding)
db = SQLAlchemy()
socketio = SocketIO()

# Live player drivers keyed by socket id (managed by the socket handlers)
active_players = {}

# Teacher lobby watchers keyed by socket id
lobby_watchers = {}
