# roomchat/core/config.py
import os
from dotenv import load_dotenv

class Settings:
    """
    Setup environment variables.
        - HOST / PORT the address the chat server listens on
        - REAP_INTERVAL_SECONDS how often closed connections are swept
        - STATS_INTERVAL_SECONDS how often server statistics are logged
        - LOG_LEVEL root log level (read by core.logging)
    """

    # Load environment variables from the .env file
    load_dotenv()

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8080"))

    REAP_INTERVAL_SECONDS: float = float(os.getenv("REAP_INTERVAL_SECONDS", "30"))
    STATS_INTERVAL_SECONDS: float = float(os.getenv("STATS_INTERVAL_SECONDS", "300"))

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
