"""
eBay OAuth Token Manager

Handles user token validation and refresh for the Sell APIs, plus the
application (client-credentials) token used for Taxonomy API lookups.
User tokens are stored in .env and refreshed shortly before they expire.

Usage:
    from dropship_lister.auth import get_token_manager

    token = get_token_manager().get_valid_token()
"""
import os
import time
import base64
import logging
import threading
from typing import Dict, Optional

import requests
from dotenv import load_dotenv, set_key

from .config import Config, _key, get_config
from .models import AccessToken

load_dotenv()
logger = logging.getLogger(__name__)

REFRESH_MARGIN_SECONDS = 300
APP_SCOPE = 'https://api.ebay.com/oauth/api_scope'

SELL_SCOPES = [
    'https://api.ebay.com/oauth/api_scope',
    'https://api.ebay.com/oauth/api_scope/sell.inventory',
    'https://api.ebay.com/oauth/api_scope/sell.account',
    'https://api.ebay.com/oauth/api_scope/sell.fulfillment',
]


class TokenError(Exception):
    """Raised when no usable access token can be obtained"""
    pass


def _basic_auth(config: Config) -> str:
    credentials = f"{config.ebay_app_id}:{config.ebay_client_secret}"
    return base64.b64encode(credentials.encode()).decode()


class TokenManager:
    """Manages eBay user OAuth tokens with automatic refresh"""

    def __init__(self, suffix: str = ""):
        self.suffix = suffix
        self.config = get_config(suffix)
        self.token_url = self.config.token_url
        self.env_file = self._find_env_file()
        self._lock = threading.Lock()

    def _find_env_file(self) -> str:
        """Find the .env file location"""
        # Look for .env in current directory or parent directories
        current = os.getcwd()
        while True:
            env_path = os.path.join(current, '.env')
            if os.path.exists(env_path):
                return env_path
            parent = os.path.dirname(current)
            if parent == current:
                return '.env'
            current = parent

    def get_current_token(self) -> Optional[str]:
        """Get the current access token from environment"""
        load_dotenv(override=True)
        return os.getenv(_key('EBAY_USER_TOKEN', self.suffix))

    def get_refresh_token(self) -> Optional[str]:
        """Get the refresh token from environment"""
        load_dotenv(override=True)
        return os.getenv(_key('EBAY_REFRESH_TOKEN', self.suffix))

    def get_token_expiry(self) -> float:
        """Epoch seconds at which the current access token expires (0 if unknown)"""
        load_dotenv(override=True)
        raw = os.getenv(_key('EBAY_TOKEN_EXPIRY', self.suffix), '')
        try:
            return float(raw) if raw else 0.0
        except ValueError:
            logger.warning(f"Ignoring malformed {_key('EBAY_TOKEN_EXPIRY', self.suffix)}: {raw}")
            return 0.0

    def load_token(self) -> Optional[AccessToken]:
        current = self.get_current_token()
        if not current:
            return None
        return AccessToken(
            access_token=current,
            expires_at=self.get_token_expiry(),
            refresh_token=self.get_refresh_token(),
        )

    def refresh_access_token(self, refresh_token: str) -> Optional[dict]:
        """Use refresh token to get a new access token"""
        if not self.config.ebay_app_id or not self.config.ebay_client_secret:
            logger.error("EBAY_APP_ID or EBAY_CLIENT_SECRET not configured")
            return None

        headers = {
            'Content-Type': 'application/x-www-form-urlencoded',
            'Authorization': f'Basic {_basic_auth(self.config)}'
        }
        data = {
            'grant_type': 'refresh_token',
            'refresh_token': refresh_token,
            'scope': ' '.join(SELL_SCOPES)
        }

        try:
            response = requests.post(self.token_url, headers=headers, data=data, timeout=30)
            response.raise_for_status()
            return response.json()
        except Exception as e:
            logger.error(f"Error refreshing token: {e}")
            return None

    def save_tokens(self, token_data: dict) -> bool:
        """Save tokens and expiry to .env file"""
        try:
            if 'access_token' in token_data:
                set_key(self.env_file, _key('EBAY_USER_TOKEN', self.suffix), token_data['access_token'])
                expires_in = int(token_data.get('expires_in') or 7200)
                set_key(self.env_file, _key('EBAY_TOKEN_EXPIRY', self.suffix), str(int(time.time()) + expires_in))
            if 'refresh_token' in token_data:
                set_key(self.env_file, _key('EBAY_REFRESH_TOKEN', self.suffix), token_data['refresh_token'])
            load_dotenv(override=True)
            return True
        except Exception as e:
            logger.error(f"Error saving tokens: {e}")
            return False

    def get_valid_token(self, force_refresh: bool = False) -> str:
        """Return a bearer token, refreshing once if it is within 5 minutes of expiry.

        Raises TokenError when there is no token or the refresh fails.
        """
        with self._lock:
            token = self.load_token()
            if token is None:
                raise TokenError(f"No access token found ({_key('EBAY_USER_TOKEN', self.suffix)})")

            if not force_refresh and not token.is_expired(REFRESH_MARGIN_SECONDS):
                return token.access_token

            logger.info("Access token expired or rejected, refreshing...")
            if not token.refresh_token:
                raise TokenError("Token expired and no refresh token is stored")

            token_data = self.refresh_access_token(token.refresh_token)
            if not token_data or not token_data.get('access_token'):
                raise TokenError("Token expired and could not be refreshed")

            if not self.save_tokens(token_data):
                # The new token is still good for this run
                logger.warning("Refreshed token could not be persisted")
            logger.info("Token refreshed successfully")
            return token_data['access_token']

    def ensure_valid_token(self) -> bool:
        """Ensure we have a valid access token, refreshing if necessary"""
        try:
            self.get_valid_token()
            return True
        except TokenError as e:
            logger.error(str(e))
            return False


class AppTokenProvider:
    """Client-credentials application token for the Taxonomy API, cached in memory"""

    def __init__(self, config: Config):
        self.config = config
        self._token: Optional[str] = None
        self._expires_at = 0.0

    def get_token(self) -> str:
        if self._token and time.time() < self._expires_at:
            return self._token

        logger.info("Requesting new eBay application token...")
        headers = {
            'Content-Type': 'application/x-www-form-urlencoded',
            'Authorization': f'Basic {_basic_auth(self.config)}'
        }
        data = {'grant_type': 'client_credentials', 'scope': APP_SCOPE}

        try:
            response = requests.post(self.config.token_url, headers=headers, data=data, timeout=30)
        except requests.exceptions.RequestException as e:
            raise TokenError(f"Failed to get application token: {e}")
        if response.status_code != 200:
            raise TokenError(f"Failed to get application token: {response.status_code} - {response.text}")

        token_data = response.json()
        expires_in = int(token_data.get('expires_in') or 7200)
        self._token = token_data['access_token']
        self._expires_at = time.time() + expires_in - REFRESH_MARGIN_SECONDS
        return self._token


_token_managers: Dict[str, TokenManager] = {}


def get_token_manager(suffix: str = "") -> TokenManager:
    manager = _token_managers.get(suffix)
    if manager is None:
        manager = TokenManager(suffix)
        _token_managers[suffix] = manager
    return manager


def get_valid_token(suffix: str = "") -> str:
    return get_token_manager(suffix).get_valid_token()
