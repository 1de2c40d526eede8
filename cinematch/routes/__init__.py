from .movies import bp as movies_bp
from .sessions import bp as sessions_bp, history_bp
from .solo import bp as solo_bp

__all__ = ["movies_bp", "sessions_bp", "history_bp", "solo_bp"]
