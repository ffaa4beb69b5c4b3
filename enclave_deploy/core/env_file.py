# -----------------------------------------------------------------------------
# ENV FILE PARSER
# -----------------------------------------------------------------------------
# Responsibility: Split an app's .env file into the public map (shipped in the
# clear) and the private map (sealed for the TEE's KMS).
#
# Rules:
# - MNEMONIC is always dropped; the platform injects its own
# - Keys ending in _PUBLIC are public, everything else is private
# -----------------------------------------------------------------------------

from pathlib import Path

from dotenv import dotenv_values
from rich.console import Console
from rich.table import Table

from enclave_deploy.domain.errors import ValidationError
from enclave_deploy.domain.models import ParsedEnvironment

console = Console()

MNEMONIC_KEY = "MNEMONIC"
PUBLIC_SUFFIX = "_PUBLIC"


def split_environment(values: dict[str, str | None]) -> ParsedEnvironment:
    """
    Split already-parsed key/value pairs into public and private maps.

    Keys without a value (a bare `KEY` line) are kept with an empty string.
    """
    public: dict[str, str] = {}
    private: dict[str, str] = {}
    mnemonic_filtered = False

    for key, value in values.items():
        if key.upper() == MNEMONIC_KEY:
            mnemonic_filtered = True
            continue
        target = public if key.endswith(PUBLIC_SUFFIX) else private
        target[key] = value if value is not None else ""

    return ParsedEnvironment(public=public, private=private, mnemonic_filtered=mnemonic_filtered)


def parse_env_file(path: str | Path) -> ParsedEnvironment:
    """
    Parse an env file from disk.

    Raises:
        ValidationError: If the file does not exist.
    """
    env_path = Path(path)
    if not env_path.is_file():
        raise ValidationError(f"Environment file not found: {env_path}", str(env_path))

    parsed = split_environment(dotenv_values(env_path))
    console.print(
        f"[dim][RELEASE] Parsed {env_path.name}: {len(parsed.public)} public, "
        f"{len(parsed.private)} private[/dim]"
    )
    return parsed


def mask_value(value: str) -> str:
    """Mask a private value for display: first and last 4 chars, or *** when short."""
    if len(value) > 8:
        return f"{value[:4]}...{value[-4:]}"
    return "***"


def display_environment(parsed: ParsedEnvironment) -> None:
    """Print the parsed variables for confirmation. Private values are masked."""
    if parsed.mnemonic_filtered:
        console.print(
            "[italic cyan]Mnemonic environment variable removed to be overridden "
            "by protocol provided mnemonic[/italic cyan]"
        )

    table = Table(title="Container environment")
    table.add_column("Variable")
    table.add_column("Visibility")
    table.add_column("Value")
    for key, value in parsed.public.items():
        table.add_row(key, "public", value)
    for key, value in parsed.private.items():
        table.add_row(key, "private", mask_value(value))

    if not parsed.public and not parsed.private:
        console.print("[dim]No environment variables found[/dim]")
        return
    console.print(table)
