"""
Инициализационный модуль для API роутеров
"""

from src.api.routes import admin_cron

__all__ = [
    'admin_cron',
]
