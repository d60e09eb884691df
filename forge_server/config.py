"""Configuration for the Roblox Asset Forge server."""

import os
from dotenv import load_dotenv

load_dotenv()

# LLM API Keys (API_KEY is the variable the browser build read)
GOOGLE_API_KEY = os.getenv("GOOGLE_API_KEY") or os.getenv("API_KEY", "")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")

# LLM Models
GEMINI_MODELS = {
    "flash": "gemini-2.5-flash",
    "pro": "gemini-3-pro-preview",
}

CLAUDE_MODELS = {
    "haiku": "claude-haiku-4-5-20251001",
    "sonnet": "claude-sonnet-4-5-20250929",
}

# Default settings
DEFAULT_PROVIDER = "gemini"
DEFAULT_GEMINI_MODEL = "pro"
DEFAULT_CLAUDE_MODEL = "sonnet"
DEFAULT_PROJECT_NAME = os.getenv("DEFAULT_PROJECT_NAME", "New Roblox Game")
DEFAULT_ROOT_NAME = "Workspace"
DEFAULT_ROOT_CLASS = "DataModel"

# Cache
CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "3600"))

# Server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
