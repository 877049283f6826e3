"""Application settings and validation."""

import os


class Settings:
    ENV: str
    DATABASE_URL: str
    OPENAI_API_KEY: str
    OPENAI_MODEL: str
    OPENAI_TIMEOUT_SECONDS: float
    PLAN_TEMPERATURE: float
    INSIGHT_TEMPERATURE: float
    INSIGHT_MAX_TOKENS: int
    ALLOW_DEV_CORS: bool
    SEED_DEMO_USER: bool
    LOG_LEVEL: str

    def __init__(self):
        default_db = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "studybuddy.db")
        self.ENV = os.getenv("ENV", "dev").lower()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{default_db}")
        self.OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
        self.OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")
        self.OPENAI_TIMEOUT_SECONDS = float(os.getenv("OPENAI_TIMEOUT_SECONDS", "60"))
        self.PLAN_TEMPERATURE = float(os.getenv("PLAN_TEMPERATURE", "0.7"))
        self.INSIGHT_TEMPERATURE = float(os.getenv("INSIGHT_TEMPERATURE", "0.8"))
        self.INSIGHT_MAX_TOKENS = int(os.getenv("INSIGHT_MAX_TOKENS", "150"))
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.SEED_DEMO_USER = os.getenv("SEED_DEMO_USER", "false").lower() == "true"
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.OPENAI_API_KEY:
            raise RuntimeError("OPENAI_API_KEY must be set in non-dev environments")
        if self.OPENAI_TIMEOUT_SECONDS <= 0:
            raise RuntimeError("OPENAI_TIMEOUT_SECONDS must be positive")


settings = Settings()
