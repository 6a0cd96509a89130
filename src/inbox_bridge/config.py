"""Configuration module for inbox-bridge.

This module loads configuration values from environment variables (and an
optional .env file) once at import time. Everything here is treated as
immutable for the lifetime of the process.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file for configuration
load_dotenv()


@dataclass(frozen=True)
class OAuthClientConfig:
    """OAuth client registration for one mail provider.

    Attributes:
        client_id: OAuth client id issued by the provider
        client_secret: OAuth client secret issued by the provider
        redirect_uri: Redirect URI registered with the provider
        token_url: Token endpoint used for refresh-token grants
        scope: Space-separated scopes to request on refresh (Microsoft only)
    """
    client_id: Optional[str]
    client_secret: Optional[str]
    redirect_uri: Optional[str]
    token_url: str
    scope: Optional[str] = None


# Token encryption
ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY")
ENCRYPTION_SALT = os.getenv("ENCRYPTION_SALT", "salt")

# Document store
MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGODB_DATABASE = os.getenv("MONGODB_DATABASE", "inbox_bridge")
USERS_COLLECTION_NAME = "users"

# Google (Gmail API)
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"
GOOGLE_OAUTH = OAuthClientConfig(
    client_id=os.getenv("GOOGLE_CLIENT_ID"),
    client_secret=os.getenv("GOOGLE_CLIENT_SECRET"),
    redirect_uri=os.getenv("GOOGLE_REDIRECT_URI"),
    token_url=GOOGLE_TOKEN_URL,
)

# Microsoft (Graph API)
MICROSOFT_TENANT = os.getenv("MICROSOFT_TENANT", "common")
MICROSOFT_OAUTH = OAuthClientConfig(
    client_id=os.getenv("MICROSOFT_CLIENT_ID"),
    client_secret=os.getenv("MICROSOFT_CLIENT_SECRET"),
    redirect_uri=os.getenv("MICROSOFT_REDIRECT_URI"),
    token_url=f"https://login.microsoftonline.com/{MICROSOFT_TENANT}/oauth2/v2.0/token",
    scope=os.getenv(
        "MICROSOFT_SCOPE",
        "offline_access User.Read Mail.ReadWrite Mail.Send",
    ),
)
GRAPH_API_URL = "https://graph.microsoft.com/v1.0"

# Yahoo (IMAP/SMTP with XOAUTH2)
YAHOO_OAUTH = OAuthClientConfig(
    client_id=os.getenv("YAHOO_CLIENT_ID"),
    client_secret=os.getenv("YAHOO_CLIENT_SECRET"),
    redirect_uri=os.getenv("YAHOO_REDIRECT_URI"),
    token_url="https://api.login.yahoo.com/oauth2/get_token",
)
YAHOO_IMAP_SERVER = os.getenv("YAHOO_IMAP_SERVER", "imap.mail.yahoo.com")
YAHOO_IMAP_PORT = int(os.getenv("YAHOO_IMAP_PORT", "993"))
YAHOO_SMTP_SERVER = os.getenv("YAHOO_SMTP_SERVER", "smtp.mail.yahoo.com")
YAHOO_SMTP_PORT = int(os.getenv("YAHOO_SMTP_PORT", "465"))  # implicit TLS

# Text generation
LLM_MODEL = os.getenv("LLM_MODEL", "groq/llama-3.3-70b-versatile")
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "32768"))
LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.7"))

# Upper bound (seconds) for any single provider round trip
PROVIDER_TIMEOUT = float(os.getenv("PROVIDER_TIMEOUT", "30"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
