"""
Tests for CredentialAuthorizer and token binding.
"""

import io
from datetime import datetime
from unittest.mock import Mock, patch

import pytest

from drivegate.config import AccountConfig
from drivegate.drive.auth import CredentialAuthorizer, CredentialConfig, bind_tokens
from drivegate.drive.tokens import Token, load_tokens, store_tokens


def make_accounts(count):
    return [AccountConfig(f"client-{i}", f"secret-{i}", name=f"account{i}") for i in range(1, count + 1)]


class FakeFlow:
    """Records the consent exchange instead of talking to Google."""

    def __init__(self, config, log, fail=False):
        self.config = config
        self.log = log
        self.fail = fail
        self.credentials = None

    def authorization_url(self, **kwargs):
        self.log.append(("url", self.config.account_id, kwargs))
        return f"https://consent.example/{self.config.account_id}", "state"

    def fetch_token(self, code):
        self.log.append(("exchange", self.config.account_id, code))
        if self.fail:
            raise ValueError("invalid_grant")
        self.credentials = Mock(
            token=f"access-{code}",
            refresh_token=f"refresh-{code}",
            expiry=datetime(2030, 1, 1),
        )


def make_authorizer(accounts, token_path, codes="", fail=False):
    log = []
    output = io.StringIO()
    authorizer = CredentialAuthorizer(
        accounts,
        token_path,
        input_stream=io.StringIO(codes),
        output_stream=output,
        flow_factory=lambda config: FakeFlow(config, log, fail=fail),
    )
    return authorizer, log, output


class TestAuthorizeEmptyStore:

    @pytest.mark.parametrize("count", [1, 2, 3])
    def test_one_exchange_per_account_in_order(self, temp_dir, count):
        token_path = temp_dir / "token.json"
        codes = "".join(f"code{i}\n" for i in range(1, count + 1))
        authorizer, log, _ = make_authorizer(make_accounts(count), token_path, codes)

        configs, tokens = authorizer.authorize()

        exchanges = [entry for entry in log if entry[0] == "exchange"]
        assert exchanges == [("exchange", f"client-{i}", f"code{i}") for i in range(1, count + 1)]
        assert [c.account_id for c in configs] == [f"client-{i}" for i in range(1, count + 1)]

        stored = load_tokens(token_path)
        assert [t.account_id for t in stored] == [f"client-{i}" for i in range(1, count + 1)]
        assert [t.access_token for t in stored] == [f"access-code{i}" for i in range(1, count + 1)]
        assert [t.access_token for t in tokens] == [t.access_token for t in stored]

    def test_offline_access_requested(self, temp_dir):
        authorizer, log, _ = make_authorizer(make_accounts(1), temp_dir / "token.json", "abc\n")
        authorizer.authorize()
        _, _, kwargs = log[0]
        assert kwargs["access_type"] == "offline"

    def test_consent_url_printed(self, temp_dir):
        authorizer, _, output = make_authorizer(make_accounts(1), temp_dir / "token.json", "abc\n")
        authorizer.authorize()
        assert "https://consent.example/client-1" in output.getvalue()
        assert "Paste the authorization code" in output.getvalue()

    def test_blank_lines_skipped(self, temp_dir):
        authorizer, log, _ = make_authorizer(make_accounts(1), temp_dir / "token.json", "\n   \n  xyz  \n")
        authorizer.authorize()
        assert ("exchange", "client-1", "xyz") in log

    def test_redirect_url_yields_code(self, temp_dir):
        pasted = "http://localhost/?state=state&code=4%2F0Abc-def&scope=https://www.googleapis.com/auth/drive\n"
        authorizer, log, _ = make_authorizer(make_accounts(1), temp_dir / "token.json", pasted)
        authorizer.authorize()
        assert ("exchange", "client-1", "4/0Abc-def") in log

    def test_redirect_url_without_code_is_fatal(self, temp_dir):
        pasted = "http://localhost/?error=access_denied\n"
        authorizer, log, _ = make_authorizer(make_accounts(1), temp_dir / "token.json", pasted)
        with pytest.raises(SystemExit):
            authorizer.authorize()
        assert not [entry for entry in log if entry[0] == "exchange"]

    def test_missing_code_is_fatal(self, temp_dir):
        token_path = temp_dir / "token.json"
        authorizer, _, _ = make_authorizer(make_accounts(2), token_path, "only-one\n")
        with pytest.raises(SystemExit):
            authorizer.authorize()
        assert not token_path.exists()

    def test_failed_exchange_is_fatal(self, temp_dir):
        authorizer, _, _ = make_authorizer(make_accounts(1), temp_dir / "token.json", "abc\n", fail=True)
        with pytest.raises(SystemExit):
            authorizer.authorize()


class TestAuthorizeExistingTokens:

    def test_no_exchange_and_no_store(self, temp_dir):
        token_path = temp_dir / "token.json"
        store_tokens(token_path, [Token(f"a{i}", account_id=f"client-{i}") for i in (1, 2)])
        authorizer, log, _ = make_authorizer(make_accounts(2), token_path)

        with patch("drivegate.drive.auth.store_tokens") as store:
            configs, tokens = authorizer.authorize()

        assert log == []
        store.assert_not_called()
        assert len(configs) == 2
        assert [t.access_token for t in tokens] == ["a1", "a2"]

    def test_tokens_follow_account_ids_after_reorder(self, temp_dir):
        token_path = temp_dir / "token.json"
        store_tokens(token_path, [Token("a1", account_id="client-1"), Token("a2", account_id="client-2")])
        accounts = list(reversed(make_accounts(2)))
        authorizer, log, _ = make_authorizer(accounts, token_path)

        configs, tokens = authorizer.authorize()

        assert log == []
        assert [c.account_id for c in configs] == ["client-2", "client-1"]
        assert [t.access_token for t in tokens] == ["a2", "a1"]

    def test_only_new_account_is_exchanged(self, temp_dir):
        token_path = temp_dir / "token.json"
        store_tokens(token_path, [Token("a1", account_id="client-1")])
        authorizer, log, _ = make_authorizer(make_accounts(2), token_path, "new\n")

        _, tokens = authorizer.authorize()

        assert [e[1] for e in log if e[0] == "exchange"] == ["client-2"]
        assert [t.access_token for t in tokens] == ["a1", "access-new"]
        assert [t.account_id for t in load_tokens(token_path)] == ["client-1", "client-2"]

    def test_removed_account_token_survives_rewrite(self, temp_dir):
        token_path = temp_dir / "token.json"
        store_tokens(token_path, [Token("old", account_id="gone")])
        authorizer, _, _ = make_authorizer(make_accounts(1), token_path, "c\n")

        configs, tokens = authorizer.authorize()

        assert len(configs) == 1
        assert [t.account_id for t in tokens] == ["client-1", "gone"]
        assert [t.account_id for t in load_tokens(token_path)] == ["client-1", "gone"]


class TestBindTokens:

    def test_legacy_tokens_bind_by_position(self):
        bound, orphans = bind_tokens(make_accounts(2), [Token("a"), Token("b")])
        assert bound["client-1"].access_token == "a"
        assert bound["client-2"].access_token == "b"
        assert bound["client-2"].account_id == "client-2"
        assert orphans == []

    def test_keyed_token_wins_over_legacy_slot(self):
        tokens = [Token("legacy"), Token("keyed", account_id="client-1")]
        bound, _ = bind_tokens(make_accounts(2), tokens)
        assert bound["client-1"].access_token == "keyed"
        assert "client-2" not in bound

    def test_duplicate_keyed_tokens_first_wins(self):
        tokens = [Token("first", account_id="client-1"), Token("second", account_id="client-1")]
        bound, orphans = bind_tokens(make_accounts(1), tokens)
        assert bound["client-1"].access_token == "first"
        assert orphans == []


class TestCredentialConfig:

    def test_from_account(self):
        config = CredentialConfig.from_account(AccountConfig("cid", "secret", name="main"))
        assert config.account_id == "cid"
        assert config.label == "main"
        installed = config.to_client_config()["installed"]
        assert installed["client_id"] == "cid"
        assert installed["client_secret"] == "secret"
        assert installed["redirect_uris"] == [config.redirect_uri]
        assert config.redirect_uri == "http://localhost"
