"""
Environment configuration for CozyClip backend
"""

import os
from pathlib import Path

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent

load_dotenv(PROJECT_ROOT / '.env')


class Config:
    """Settings read from the environment (and an optional .env file)"""

    def __init__(self, environ=None):
        env = os.environ if environ is None else environ

        self.environment = env.get('ENVIRONMENT', 'production')
        self.log_level = env.get('LOG_LEVEL', 'INFO').upper()
        self.ledger_backend = env.get('LEDGER_BACKEND', 'firestore').lower()
        self.transaction_max_attempts = int(env.get('TRANSACTION_MAX_ATTEMPTS', 5))
        self.quest_catalog_path = Path(env.get('QUEST_CATALOG_PATH', PROJECT_ROOT / 'data' / 'quests.json'))
        self.shop_catalog_path = Path(env.get('SHOP_CATALOG_PATH', PROJECT_ROOT / 'data' / 'shop_items.json'))
        self.credentials_path = env.get(
            'GOOGLE_APPLICATION_CREDENTIALS',
            str(PROJECT_ROOT / 'serviceAccountKey.json')
        )
        self.allowed_origins = [
            origin.strip() for origin in env.get('ALLOWED_ORIGINS', '*').split(',') if origin.strip()
        ]

        if self.ledger_backend not in ('firestore', 'memory'):
            raise ValueError(f"Unsupported LEDGER_BACKEND: {self.ledger_backend}")
        if self.transaction_max_attempts < 1:
            raise ValueError("TRANSACTION_MAX_ATTEMPTS must be at least 1")

    @property
    def is_development(self):
        return self.environment == 'development'
