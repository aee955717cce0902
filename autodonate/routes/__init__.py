from .core_routes import core
from .cron_routes import cron_bp
from .recurring_routes import recurring_bp
from .wallet_routes import wallet_bp

__all__ = ["core", "cron_bp", "recurring_bp", "wallet_bp"]
