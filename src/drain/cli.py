"""
Drain CLI: withdrawal-request ledger for multi-party wallets.

Commands:
    drain init              Initialize ledger state (administrator)
    drain allow-wallet      Whitelist a wallet for a verified owner
    drain disallow-wallet   Remove a wallet from the whitelist
    drain grant             Add per-asset budget to a wallet
    drain request           Create a withdrawal request (wallet owner)
    drain sign              Co-sign a request's payload (wallet owner)
    drain execute           Execute a co-signed request as the wallet
    drain status            Show ledger state
    drain wallet            Show a wallet's withdrawal requests
    drain budget            Show remaining budget
    drain encode            Preview a payload without recording it
    drain audit             View audit trail
    drain demo              Run a full demo flow
    drain dev ...           Operate the local registry and asset store
"""

from __future__ import annotations

import sys
import tempfile
import time
from pathlib import Path
from typing import NoReturn, Optional

import click
from click.core import ParameterSource

from .accounts import LocalAccount, MultisigAccount
from .address import normalize_address
from .assets import LocalFungibleStore
from .audit import AuditTrail
from .config import DrainConfig
from .context import DrainContext, build_encoder, is_initialized
from .errors import DrainError
from .models import WithdrawalRequest
from .registry import LocalOwnershipRegistry
from .store import LedgerStore


# ── Helpers ───────────────────────────────────────────────────────

def _config() -> DrainConfig:
    return DrainConfig.from_env()


def _fail(message: str) -> NoReturn:
    click.echo(f"❌ {message}", err=True)
    sys.exit(1)


def _open_context(config: Optional[DrainConfig] = None) -> DrainContext:
    config = config or _config()
    store, registry, assets, audit = DrainContext.local_collaborators(config)
    try:
        return DrainContext.open(config, store, registry, assets, audit=audit)
    except DrainError as e:
        _fail(str(e))


def _load_key(param: str, value: str, unsafe_allow_key_arg: bool) -> LocalAccount:
    ctx = click.get_current_context(silent=True)
    key_from_argv = (
        ctx is not None
        and ctx.get_parameter_source(param) == ParameterSource.COMMANDLINE
    )
    if key_from_argv and not unsafe_allow_key_arg:
        _fail(
            f"Refusing --{param.replace('_', '-')} from argv. Re-run with prompt input or pass "
            "--unsafe-allow-key-arg to acknowledge the risk."
        )
    try:
        return LocalAccount.from_private_key(value)
    except ValueError as e:
        _fail(f"Invalid private key: {e}")


def _parse_public_keys(raw: str) -> tuple[bytes, ...]:
    keys = []
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        if item.startswith("0x"):
            item = item[2:]
        keys.append(bytes.fromhex(item))
    return tuple(keys)


def _parse_signatures(values: tuple[str, ...]) -> dict[int, bytes]:
    signatures: dict[int, bytes] = {}
    for value in values:
        index, _, sig = value.partition(":")
        if not sig:
            raise ValueError(f"Signature must look like INDEX:HEX, got {value}")
        signatures[int(index)] = bytes.fromhex(sig[2:] if sig.startswith("0x") else sig)
    return signatures


def _echo_request(request: WithdrawalRequest, indent: str = "   ") -> None:
    status = "✅" if request.is_executed else "⏳"
    click.echo(
        f"{indent}{status} #{request.request_id} {request.amount} of {request.asset} "
        f"→ {request.receiver} ({request.status.value})"
    )


unsafe_key_option = click.option(
    "--unsafe-allow-key-arg",
    is_flag=True,
    default=False,
    help="Allow passing private keys via argv (unsafe; can leak in shell/process history).",
)


# ── CLI ───────────────────────────────────────────────────────────

@click.group()
@click.version_option(version="0.1.0")
def main():
    """Drain: budgeted withdrawal requests for multi-party wallets."""
    pass


@main.command()
@click.option("--admin-key", prompt=True, hide_input=True, help="Administrator private key (hex)")
@unsafe_key_option
def init(admin_key: str, unsafe_allow_key_arg: bool):
    """Initialize ledger state. Administrator only, once."""
    config = _config()
    admin = _load_key("admin_key", admin_key, unsafe_allow_key_arg)
    store, registry, assets, audit = DrainContext.local_collaborators(config)
    try:
        ctx = DrainContext.initialize(admin, config, store, registry, assets, audit=audit)
    except DrainError as e:
        _fail(f"Failed to initialize: {e}")
    resource_address, _paused = ctx.get_state_fields()
    click.echo("✅ Drain initialized")
    click.echo(f"   Admin:            {config.admin_address}")
    click.echo(f"   Resource account: {resource_address}")
    click.echo(f"   State:            {config.state_path}")


@main.command("allow-wallet")
@click.argument("wallet")
@click.option("--owner", required=True, help="Address claimed to own the wallet")
@click.option("--admin-key", prompt=True, hide_input=True, help="Administrator private key (hex)")
@unsafe_key_option
def allow_wallet(wallet: str, owner: str, admin_key: str, unsafe_allow_key_arg: bool):
    """Whitelist WALLET after verifying OWNER in the ownership registry."""
    ctx = _open_context()
    admin = _load_key("admin_key", admin_key, unsafe_allow_key_arg)
    try:
        ctx.allow_wallet(admin, wallet, owner)
    except (DrainError, ValueError) as e:
        _fail(f"Failed to allow wallet: {e}")
    click.echo(f"✅ Wallet allowed: {wallet}")


@main.command("disallow-wallet")
@click.argument("wallet")
@click.option("--admin-key", prompt=True, hide_input=True, help="Administrator private key (hex)")
@unsafe_key_option
def disallow_wallet(wallet: str, admin_key: str, unsafe_allow_key_arg: bool):
    """Remove WALLET from the whitelist."""
    ctx = _open_context()
    admin = _load_key("admin_key", admin_key, unsafe_allow_key_arg)
    try:
        ctx.disallow_wallet(admin, wallet)
    except (DrainError, ValueError) as e:
        _fail(f"Failed to disallow wallet: {e}")
    click.echo(f"✅ Wallet disallowed: {wallet}")


@main.command()
@click.argument("wallet")
@click.option("--asset", required=True, help="Asset metadata address")
@click.option("--amount", type=int, required=True, help="Amount to add (base units)")
@click.option("--admin-key", prompt=True, hide_input=True, help="Administrator private key (hex)")
@unsafe_key_option
def grant(wallet: str, asset: str, amount: int, admin_key: str, unsafe_allow_key_arg: bool):
    """Add AMOUNT of ASSET to WALLET's withdrawal budget."""
    ctx = _open_context()
    admin = _load_key("admin_key", admin_key, unsafe_allow_key_arg)
    try:
        remaining = ctx.grant_budget(admin, wallet, asset, amount)
    except (DrainError, ValueError) as e:
        _fail(f"Failed to grant budget: {e}")
    click.echo(f"✅ Granted {amount} of {asset}")
    click.echo(f"   Remaining: {remaining}")


@main.command()
@click.argument("wallet")
@click.option("--sequence-number", type=int, required=True,
              help="Wallet's next transaction sequence number")
@click.option("--receiver", required=True, help="Receiver address")
@click.option("--asset", required=True, help="Asset metadata address")
@click.option("--amount", type=int, required=True, help="Amount (base units)")
@click.option("--owner-key", prompt=True, hide_input=True, help="Wallet owner private key (hex)")
@unsafe_key_option
def request(
    wallet: str,
    sequence_number: int,
    receiver: str,
    asset: str,
    amount: int,
    owner_key: str,
    unsafe_allow_key_arg: bool,
):
    """Create a withdrawal request from WALLET. Consumes budget permanently."""
    ctx = _open_context()
    owner = _load_key("owner_key", owner_key, unsafe_allow_key_arg)
    try:
        created = ctx.create_request(owner, wallet, sequence_number, receiver, asset, amount)
    except (DrainError, ValueError) as e:
        _fail(f"Failed to create request: {e}")
    click.echo(f"✅ Withdrawal request #{created.request_id} created")
    click.echo(f"   Amount:   {created.amount} of {created.asset}")
    click.echo(f"   Receiver: {created.receiver}")
    click.echo(f"   Payload:  0x{created.payload.hex()}")


@main.command()
@click.argument("wallet")
@click.argument("request_id", type=int)
@click.option("--owner-key", prompt=True, hide_input=True, help="Wallet owner private key (hex)")
@unsafe_key_option
def sign(wallet: str, request_id: int, owner_key: str, unsafe_allow_key_arg: bool):
    """Sign the stored payload of REQUEST_ID with an owner key."""
    ctx = _open_context()
    owner = _load_key("owner_key", owner_key, unsafe_allow_key_arg)
    try:
        stored = ctx.requests.get_request(wallet, request_id)
    except (DrainError, ValueError) as e:
        _fail(str(e))
    click.echo("0x" + owner.sign(stored.payload).hex())


@main.command()
@click.argument("wallet")
@click.argument("request_id", type=int)
@click.option("--public-keys", required=True, help="Comma-separated owner public keys (hex), in wallet order")
@click.option("--threshold", type=int, required=True, help="Signatures required")
@click.option("--signature", "signatures", multiple=True,
              help="Owner signature over the payload as INDEX:HEX (repeatable)")
def execute(wallet: str, request_id: int, public_keys: str, threshold: int, signatures: tuple[str, ...]):
    """Execute REQUEST_ID as WALLET once enough owners signed its payload."""
    ctx = _open_context()
    try:
        account = MultisigAccount(_parse_public_keys(public_keys), threshold)
        parsed = _parse_signatures(signatures)
        stored = ctx.requests.get_request(wallet, request_id)
    except (DrainError, ValueError) as e:
        _fail(str(e))
    if account.address != normalize_address(wallet):
        _fail(f"Public keys and threshold derive {account.address}, not {wallet}")
    if not account.verify(stored.payload, parsed):
        _fail(f"Fewer than {threshold} valid owner signatures over the request payload")
    try:
        executed = ctx.execute_request(account, request_id)
    except DrainError as e:
        _fail(f"Failed to execute request: {e}")
    click.echo(f"✅ Withdrawal request #{executed.request_id} executed")
    click.echo(f"   {executed.amount} of {executed.asset} → {executed.receiver}")


@main.command()
def status():
    """Show ledger state."""
    config = _config()
    store = LedgerStore(config.state_path)
    if not is_initialized(store):
        click.echo("Drain is not initialized.")
        return
    ctx = _open_context(config)
    state = ctx.state()
    click.echo("📊 Drain state")
    click.echo(f"   Admin:            {state.admin_address}")
    click.echo(f"   Resource account: {state.resource_address}")
    click.echo(f"   Paused:           {state.paused}")
    click.echo(f"   Initialized:      {time.strftime('%Y-%m-%d %H:%M', time.localtime(state.initialized_at))}")
    allowed = ctx.permissions.allowed_wallets()
    click.echo(f"   Allowed wallets:  {len(allowed)}")
    for wallet in allowed:
        click.echo(f"     {wallet}")


@main.command()
@click.argument("wallet")
def wallet(wallet: str):
    """Show WALLET's withdrawal requests."""
    ctx = _open_context()
    try:
        record = ctx.get_wallet(wallet)
    except (DrainError, ValueError) as e:
        _fail(str(e))
    click.echo(f"👛 Wallet {record.address}")
    click.echo(f"   Requests: {record.request_count}")
    for item in record.withdrawals:
        _echo_request(item)


@main.command()
@click.argument("wallet")
@click.option("--asset", required=True, help="Asset metadata address")
def budget(wallet: str, asset: str):
    """Show WALLET's remaining budget for ASSET."""
    ctx = _open_context()
    try:
        remaining = ctx.get_remaining_budget(wallet, asset)
    except (DrainError, ValueError) as e:
        _fail(str(e))
    click.echo(f"💰 Remaining budget: {remaining}")


@main.command()
@click.argument("wallet")
@click.option("--sequence-number", type=int, required=True, help="Transaction sequence number")
@click.option("--request-id", type=int, required=True, help="Request id argument")
@click.option("--now", type=int, default=None, help="Fix current time (unix seconds)")
def encode(wallet: str, sequence_number: int, request_id: int, now: Optional[int]):
    """Preview a payload without recording anything."""
    encoder = build_encoder(_config())
    try:
        payload = encoder.encode(wallet, sequence_number, request_id, now=now)
    except (DrainError, ValueError) as e:
        _fail(str(e))
    click.echo("0x" + payload.hex())


@main.command()
@click.option("--wallet", "wallet_filter", default=None, help="Filter by wallet address")
@click.option("--limit", type=int, default=20, help="Number of events")
def audit(wallet_filter: Optional[str], limit: int):
    """View the audit trail."""
    config = _config()
    _store, _registry, _assets, trail = DrainContext.local_collaborators(config)
    if wallet_filter:
        wallet_filter = normalize_address(wallet_filter)
    events = trail.read_events(wallet=wallet_filter, limit=limit)

    if not events:
        click.echo("No audit events found.")
        return

    for event in events:
        ts = time.strftime("%H:%M:%S", time.localtime(event.timestamp))
        amount = f" {event.amount}" if event.amount is not None else ""
        request_id = f" #{event.request_id}" if event.request_id is not None else ""
        target = f" {event.wallet}" if event.wallet else ""
        click.echo(f"  {ts} {event.event_type}{request_id}{amount}{target}")


@main.command()
def demo():
    """Run a full demo of the allow → grant → request → co-sign → execute flow."""
    click.echo("🎬 Drain Demo: Budgeted Multisig Withdrawal")
    click.echo("=" * 50)

    with tempfile.TemporaryDirectory() as tmp:
        admin = LocalAccount.generate()
        owners = [LocalAccount.generate() for _ in range(3)]
        multisig = MultisigAccount.from_owners(owners, threshold=2)
        receiver = LocalAccount.generate()
        asset = "0xa"

        config = DrainConfig(
            admin_address=admin.address,
            module_address=admin.address,
            home=Path(tmp) / "drain",
        )
        store = LedgerStore(config.state_path)
        registry = LocalOwnershipRegistry(config.registry_path)
        assets = LocalFungibleStore(config.assets_path)
        audit_trail = AuditTrail(config.audit_path, config.audit_key_path)
        for owner in owners:
            registry.register(owner.address, multisig.address)
        assets.mint(multisig.address, asset, 5_000)

        click.echo("\n1️⃣  Initializing ledger...")
        ctx = DrainContext.initialize(admin, config, store, registry, assets, audit=audit_trail)
        click.echo(f"   Resource account: {ctx.get_state_fields()[0]}")

        click.echo("\n2️⃣  Allowing 2-of-3 wallet and granting 1000...")
        ctx.allow_wallet(admin, multisig.address, owners[0].address)
        ctx.grant_budget(admin, multisig.address, asset, 1_000)
        click.echo(f"   Wallet: {multisig.address}")

        click.echo("\n3️⃣  Owner requests 400 for the receiver...")
        created = ctx.create_request(owners[0], multisig.address, 0, receiver.address, asset, 400)
        click.echo(f"   Request #{created.request_id}, budget left {ctx.get_remaining_budget(multisig.address, asset)}")

        click.echo("\n4️⃣  Owner requests 700 (over budget)...")
        try:
            ctx.create_request(owners[0], multisig.address, 1, receiver.address, asset, 700)
        except DrainError as e:
            click.echo(f"   ❌ {e}")

        click.echo("\n5️⃣  Two owners co-sign the payload, wallet executes...")
        signatures = {0: owners[0].sign(created.payload), 2: owners[2].sign(created.payload)}
        click.echo(f"   Threshold met: {multisig.verify(created.payload, signatures)}")
        ctx.execute_request(multisig, created.request_id)
        click.echo(f"   Receiver balance: {assets.balance_of(receiver.address, asset)}")

        click.echo("\n6️⃣  Executing again...")
        try:
            ctx.execute_request(multisig, created.request_id)
        except DrainError as e:
            click.echo(f"   ❌ {e}")

        click.echo("\n7️⃣  Audit trail...")
        for event in audit_trail.read_events(limit=10):
            click.echo(f"   {event.event_type}")

    click.echo("\n" + "=" * 50)
    click.echo("🎉 Demo complete! Allow → Grant → Request → Co-sign → Execute")


# ── Local collaborator stand-ins ──────────────────────────────────

@main.group("dev")
def dev_group():
    """Operate the local ownership registry and asset store."""
    pass


@dev_group.command("new-key")
def dev_new_key():
    """Generate an Ed25519 account key."""
    account = LocalAccount.generate()
    click.echo(f"Address:     {account.address}")
    click.echo(f"Public key:  0x{account.public_key_bytes.hex()}")
    click.echo(f"Private key: {account.private_key_hex}")


@dev_group.command("multisig-address")
@click.option("--public-keys", required=True, help="Comma-separated owner public keys (hex)")
@click.option("--threshold", type=int, required=True, help="Signatures required")
def dev_multisig_address(public_keys: str, threshold: int):
    """Derive a K-of-N wallet address."""
    try:
        account = MultisigAccount(_parse_public_keys(public_keys), threshold)
    except ValueError as e:
        _fail(str(e))
    click.echo(account.address)


@dev_group.command("register-owner")
@click.argument("owner")
@click.argument("wallet")
@click.option("--pending", is_flag=True, help="Register as a pending (not yet active) ownership")
def dev_register_owner(owner: str, wallet: str, pending: bool):
    """Record OWNER as an owner of WALLET in the local registry."""
    registry = LocalOwnershipRegistry(_config().registry_path)
    registry.register(owner, wallet, pending=pending)
    click.echo(f"✅ {owner} → {wallet}{' (pending)' if pending else ''}")


@dev_group.command("mint")
@click.argument("account")
@click.option("--asset", required=True, help="Asset metadata address")
@click.option("--amount", type=int, required=True, help="Amount (base units)")
def dev_mint(account: str, asset: str, amount: int):
    """Credit ACCOUNT in the local asset store."""
    store = LocalFungibleStore(_config().assets_path)
    try:
        store.mint(account, asset, amount)
    except (DrainError, ValueError) as e:
        _fail(str(e))
    click.echo(f"✅ Minted {amount} of {asset} to {account}")


@dev_group.command("balance")
@click.argument("account")
@click.option("--asset", required=True, help="Asset metadata address")
def dev_balance(account: str, asset: str):
    """Show ACCOUNT's balance in the local asset store."""
    store = LocalFungibleStore(_config().assets_path)
    click.echo(str(store.balance_of(account, asset)))


if __name__ == "__main__":
    main()
