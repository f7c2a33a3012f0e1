"""
OAuth authorization for every configured Drive account.

Reuses tokens from the token file where possible and falls back to an
interactive copy/paste consent flow for accounts that have none.
"""

import logging
import sys
import urllib.parse
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Optional, TextIO

from google_auth_oauthlib.flow import Flow

from ..config import AccountConfig
from ..constants import OAUTH_AUTH_URI, OAUTH_REDIRECT_URI, OAUTH_SCOPES, OAUTH_TOKEN_URI
from .tokens import Token, load_tokens, store_tokens

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CredentialConfig:
    """OAuth client settings for one account."""
    account_id: str
    client_id: str
    client_secret: str
    auth_uri: str = OAUTH_AUTH_URI
    token_uri: str = OAUTH_TOKEN_URI
    redirect_uri: str = OAUTH_REDIRECT_URI
    scopes: tuple = tuple(OAUTH_SCOPES)
    label: str = ""

    @classmethod
    def from_account(cls, account: AccountConfig) -> "CredentialConfig":
        return cls(
            account_id=account.account_id,
            client_id=account.client_id,
            client_secret=account.client_secret,
            label=account.label,
        )

    def to_client_config(self) -> dict:
        """Client config dict (same format as credentials.json)."""
        return {
            "installed": {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "auth_uri": self.auth_uri,
                "token_uri": self.token_uri,
                "redirect_uris": [self.redirect_uri],
            }
        }


def _default_flow_factory(config: CredentialConfig) -> Flow:
    return Flow.from_client_config(
        config.to_client_config(),
        scopes=list(config.scopes),
        redirect_uri=config.redirect_uri,
    )


def _code_from_input(text: str) -> str:
    parsed = urllib.parse.urlparse(text)
    if parsed.scheme not in ("http", "https"):
        return text
    params = urllib.parse.parse_qs(parsed.query)
    return params.get("code", [""])[0]


def bind_tokens(accounts: list[AccountConfig], tokens: list[Token]) -> tuple[dict, list[Token]]:
    """
    Match stored tokens to accounts.

    Tokens carrying an account_id bind by id regardless of position.
    Legacy tokens without one bind to the account at the same index,
    if that account has no token yet.

    Returns:
        Tuple of ({account_id: Token}, tokens for accounts no longer configured)
    """
    account_ids = [a.account_id for a in accounts]
    known = set(account_ids)
    bound: dict[str, Token] = {}
    orphans: list[Token] = []

    for token in tokens:
        if not token.account_id:
            continue
        if token.account_id not in known:
            orphans.append(token)
        elif token.account_id not in bound:
            bound[token.account_id] = token

    for index, token in enumerate(tokens):
        if token.account_id:
            continue
        if index < len(account_ids) and account_ids[index] not in bound:
            bound[account_ids[index]] = replace(token, account_id=account_ids[index])
        else:
            logger.debug("Dropping unbound legacy token at position %d", index)

    return bound, orphans


class CredentialAuthorizer:
    """
    Establishes a token for each configured account.

    Accounts that already have a stored token are reused as-is. For the
    rest, the operator is walked through the consent flow one account at
    a time, and the full token list is written back once at the end.
    """

    def __init__(
        self,
        accounts: list[AccountConfig],
        token_path: Path,
        input_stream: Optional[TextIO] = None,
        output_stream: Optional[TextIO] = None,
        flow_factory: Optional[Callable[[CredentialConfig], Flow]] = None,
    ):
        """
        Initialize authorizer.

        Args:
            accounts: Accounts in rotation order
            token_path: Path to save/load tokens
            input_stream: Where the authorization code is read from (default stdin)
            output_stream: Where the consent URL is printed (default stdout)
            flow_factory: Builds the OAuth flow for an account
        """
        self.accounts = list(accounts)
        self.token_path = Path(token_path)
        self._input = input_stream
        self._output = output_stream
        self._flow_factory = flow_factory or _default_flow_factory

    def authorize(self) -> tuple[list[CredentialConfig], list[Token]]:
        """
        Make sure every account has a token.

        Returns:
            Tuple of (configs, tokens). The first len(configs) tokens line up
            with configs; any remaining tokens belong to accounts that are no
            longer configured and are kept so they survive a rewrite.

        Raises:
            TokenStoreError: if freshly minted tokens can't be saved
            SystemExit: if the operator's authorization code can't be obtained
        """
        configs = [CredentialConfig.from_account(a) for a in self.accounts]
        bound, orphans = bind_tokens(self.accounts, load_tokens(self.token_path))

        minted = 0
        for config in configs:
            if config.account_id in bound:
                continue
            bound[config.account_id] = self.exchange(config)
            minted += 1

        tokens = [bound[c.account_id] for c in configs] + orphans

        if minted:
            store_tokens(self.token_path, tokens)
            logger.info("Stored %d new token(s) in %s", minted, self.token_path)
        else:
            logger.debug("Reusing stored tokens for %d account(s)", len(configs))

        return configs, tokens

    def exchange(self, config: CredentialConfig) -> Token:
        """Run the interactive consent flow for one account."""
        out = self._output or sys.stdout
        flow = self._flow_factory(config)
        auth_url, _ = flow.authorization_url(access_type="offline", prompt="consent")

        print(f"Authorize account {config.label or config.account_id}", file=out)
        print(f"Go to the following link in your browser {auth_url}", file=out)
        print("Paste the authorization code (or the full address you were redirected to): ",
              end="", file=out, flush=True)

        code = self._read_code()
        if not code:
            logger.critical("Unable to read authorization code for %s", config.account_id)
            raise SystemExit(1)

        try:
            flow.fetch_token(code=code)
        except Exception as e:
            logger.critical("Unable to retrieve token for %s: %s", config.account_id, e)
            raise SystemExit(1)

        return Token.from_credentials(flow.credentials, account_id=config.account_id)

    def _read_code(self) -> str:
        """
        Read the authorization code from the input stream ("" on EOF).

        Takes the first non-blank word. A pasted redirect URL yields its
        code query parameter.
        """
        stream = self._input or sys.stdin
        while True:
            try:
                line = stream.readline()
            except (OSError, ValueError) as e:
                logger.error("Could not read from operator input: %s", e)
                return ""
            if not line:
                return ""
            words = line.split()
            if words:
                return _code_from_input(words[0])
