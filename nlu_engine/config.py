"""Configuration settings for the NLU training engine"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Engine settings"""
    
    # Language server (tokenizer + vectorizer)
    language_server_url: str = "http://lang-server:3100"
    language_server_timeout: float = 30.0
    
    # Training
    max_concurrent_builds: int = 8
    enable_vector_cache: bool = True
    
    # Storage
    storage_root: str = "/app/data/bots"
    system_entities: List[str] = [
        "any", "amountOfMoney", "distance", "duration", "email", "number",
        "ordinal", "phoneNumber", "quantity", "temperature", "time", "url", "volume"
    ]
    
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
    )


settings = Settings()
