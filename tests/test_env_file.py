"""
Tests for .env parsing and display masking.
"""

from unittest.mock import patch

import pytest
from rich.console import Console

from enclave_deploy.core.env_file import display_environment, mask_value, parse_env_file, split_environment
from enclave_deploy.domain.errors import ValidationError


class TestSplitEnvironment:
    """Tests for public/private classification."""

    def test_public_suffix(self):
        """Keys ending in _PUBLIC are public; the rest are private."""
        parsed = split_environment({"PORT_PUBLIC": "8080", "API_KEY": "secret"})

        assert parsed.public == {"PORT_PUBLIC": "8080"}
        assert parsed.private == {"API_KEY": "secret"}
        assert not parsed.mnemonic_filtered

    def test_mnemonic_removed_any_case(self):
        """MNEMONIC is dropped whatever its case."""
        parsed = split_environment({"mnemonic": "word word", "MNEMONIC": "x", "A": "1"})

        assert parsed.mnemonic_filtered
        assert "mnemonic" not in parsed.private
        assert "MNEMONIC" not in parsed.private
        assert parsed.private == {"A": "1"}

    def test_bare_key_is_empty_string(self):
        """A key without a value becomes an empty string."""
        assert split_environment({"FLAG": None}).private == {"FLAG": ""}


class TestParseEnvFile:
    """Tests for reading files with python-dotenv."""

    def test_quotes_and_comments(self, tmp_path):
        """dotenv quoting, comments and export prefixes are honoured."""
        env_file = tmp_path / ".env"
        env_file.write_text(
            "# database\n"
            'DB_URL="postgres://user:pw@host/db"\n'
            "NAME_PUBLIC='demo app'\n"
            "MNEMONIC=abandon abandon about\n"
            "export TOKEN=abc123\n"
        )

        parsed = parse_env_file(env_file)

        assert parsed.private == {"DB_URL": "postgres://user:pw@host/db", "TOKEN": "abc123"}
        assert parsed.public == {"NAME_PUBLIC": "demo app"}
        assert parsed.mnemonic_filtered

    def test_missing_file(self, tmp_path):
        """A missing file is a validation error."""
        with pytest.raises(ValidationError):
            parse_env_file(tmp_path / "missing.env")


class TestMaskValue:
    """Tests for mask_value."""

    def test_long(self):
        """Long values keep four characters at each end."""
        assert mask_value("abcdefghijklmnop") == "abcd...mnop"

    def test_short(self):
        """Short values are fully hidden."""
        assert mask_value("12345678") == "***"


class TestDisplayEnvironment:
    """Tests for the confirmation table."""

    def _render(self, parsed):
        console = Console(record=True, width=200)
        with patch("enclave_deploy.core.env_file.console", console):
            display_environment(parsed)
        return console.export_text()

    def test_private_values_are_masked(self):
        """Private values never reach the terminal in full."""
        output = self._render(split_environment({"API_KEY": "sk-0123456789abcdef", "REGION_PUBLIC": "eu"}))

        assert "sk-0...cdef" in output
        assert "sk-0123456789abcdef" not in output
        assert "REGION_PUBLIC" in output

    def test_mnemonic_notice(self):
        """A filtered mnemonic is announced, never shown."""
        output = self._render(split_environment({"MNEMONIC": "word word", "A": "1"}))

        assert "Mnemonic environment variable removed" in output
        assert "word word" not in output

    def test_empty(self):
        """No variables prints a notice instead of a table."""
        assert "No environment variables found" in self._render(split_environment({}))
