"""
Alpha Wallet CLI - Generate, inspect, verify and convert wallet backups.
"""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

import typer
from loguru import logger

from alphawallet.config import get_settings
from alphawallet.errors import WalletError
from alphawallet.formats import ImportResult, export_wallet, import_wallet
from alphawallet.wallet.address import address_to_scripthash
from alphawallet.wallet.keymanager import KeyManager

app = typer.Typer(
    name="alpha-wallet",
    help="Alpha L1 Wallet Management",
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure loguru logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
    )


def _load_wallet(wallet_file: Path, password: str | None) -> ImportResult:
    if not wallet_file.exists():
        logger.error(f"Wallet file not found: {wallet_file}")
        raise typer.Exit(1)

    result = asyncio.run(import_wallet(wallet_file.read_bytes(), password))
    if result.error is not None:
        logger.error(f"Failed to import wallet: {result.error}")
        raise typer.Exit(1)
    return result


def _write_output(content: str, output_file: Path | None) -> None:
    if output_file is None:
        typer.echo(content)
        return
    output_file.parent.mkdir(parents=True, exist_ok=True)
    output_file.write_text(content)
    os.chmod(output_file, 0o600)
    typer.echo(f"Wallet written to: {output_file}")


@app.command()
def generate(
    word_count: int = typer.Option(12, "--words", "-w", help="Number of words (12 or 24)"),
    address_count: int = typer.Option(1, "--addresses", "-a", help="Addresses to derive"),
    output_file: Path | None = typer.Option(
        None, "--output", "-o", help="Write a wallet backup to this file"
    ),
    export_format: str = typer.Option("json", "--format", "-f", help="Backup format: text | json"),
    password: str | None = typer.Option(
        None, "--password", "-p", envvar="ALPHA_WALLET_PASSWORD", help="Encrypt the backup"
    ),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Generate a new mnemonic wallet."""
    setup_logging(log_level)
    settings = get_settings()

    manager = KeyManager(prefix=settings.address_prefix, base_path=settings.default_base_path)
    try:
        mnemonic = manager.generate_new(word_count)
        wallet = manager.to_wallet(address_count)
    except (ValueError, WalletError) as e:
        logger.error(f"Failed to generate wallet: {e}")
        raise typer.Exit(1)
    finally:
        manager.clear()

    typer.echo("\n" + "=" * 80)
    typer.echo("GENERATED MNEMONIC - WRITE THIS DOWN AND KEEP IT SAFE!")
    typer.echo("=" * 80)
    typer.echo(f"\n{mnemonic}\n")
    typer.echo("=" * 80)
    for addr in wallet.addresses:
        typer.echo(f"{addr.path}  {addr.address}")

    if output_file is not None:
        content = export_wallet(
            wallet,
            export_format,  # type: ignore[arg-type]
            password,
            address_count=address_count,
            settings=settings,
        )
        _write_output(content, output_file)
    wallet.wipe()


@app.command()
def info(
    wallet_file: Path = typer.Argument(..., help="Wallet file (.dat, .json or .txt)"),
    password: str | None = typer.Option(
        None, "--password", "-p", envvar="ALPHA_WALLET_PASSWORD", help="Wallet password"
    ),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Display wallet type and addresses."""
    setup_logging(log_level)
    result = _load_wallet(wallet_file, password)
    wallet = result.wallet
    assert wallet is not None

    typer.echo(f"\nSource:          {result.source.value if result.source else 'unknown'}")
    typer.echo(f"Derivation mode: {wallet.derivation_mode.value}")
    typer.echo(f"Descriptor path: {wallet.descriptor_path or '-'}")
    typer.echo(f"Chain code:      {'yes' if wallet.chain_code else 'no'}")
    typer.echo(f"Mnemonic:        {'yes' if wallet.mnemonic else 'no'}")
    typer.echo(f"\nAddresses ({len(wallet.addresses)}):")
    for addr in wallet.addresses:
        kind = "change" if addr.is_change else "receive"
        typer.echo(f"  {addr.path or '-':<24} {addr.address}  [{kind}]")
    wallet.wipe()


@app.command()
def export(
    wallet_file: Path = typer.Argument(..., help="Wallet file to convert"),
    export_format: str = typer.Option("json", "--format", "-f", help="Output format: text | json"),
    output_file: Path | None = typer.Option(None, "--output", "-o", help="Output file path"),
    password: str | None = typer.Option(
        None, "--password", "-p", envvar="ALPHA_WALLET_PASSWORD", help="Password of the input"
    ),
    new_password: str | None = typer.Option(
        None, "--new-password", help="Encrypt the output with this password"
    ),
    address_count: int = typer.Option(1, "--addresses", "-a", help="Addresses to include"),
    all_addresses: bool = typer.Option(
        False, "--all-addresses", help="Include every address known to the wallet"
    ),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Convert a wallet file to the text or JSON backup format."""
    setup_logging(log_level)
    if export_format not in ("text", "json"):
        logger.error(f"Unsupported format: {export_format}")
        raise typer.Exit(1)

    wallet = _load_wallet(wallet_file, password).wallet
    assert wallet is not None
    try:
        content = export_wallet(
            wallet,
            export_format,  # type: ignore[arg-type]
            new_password,
            include_all_addresses=all_addresses,
            address_count=address_count,
        )
    except WalletError as e:
        logger.error(f"Export failed: {e}")
        raise typer.Exit(1)
    finally:
        wallet.wipe()

    _write_output(content, output_file)


@app.command()
def verify(
    wallet_file: Path = typer.Argument(..., help="Wallet file to verify"),
    password: str | None = typer.Option(
        None, "--password", "-p", envvar="ALPHA_WALLET_PASSWORD", help="Wallet password"
    ),
    log_level: str = typer.Option("INFO", "--log-level", "-l"),
) -> None:
    """Import a wallet file and check every stored address re-derives."""
    setup_logging(log_level)
    result = _load_wallet(wallet_file, password)
    assert result.wallet is not None

    typer.echo(result.message)
    typer.echo(f"Verified {len(result.wallet.addresses)} address(es)")
    result.wallet.wipe()


@app.command()
def scripthash(
    address: str = typer.Argument(..., help="Alpha bech32 address"),
) -> None:
    """Print the Electrum-style scripthash of an address."""
    setup_logging("WARNING")
    try:
        typer.echo(address_to_scripthash(address))
    except WalletError as e:
        logger.error(f"Invalid address: {e}")
        raise typer.Exit(1)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
