"""
Endow CLI - Command Line Interface for the treasury ledger

Main entry point for all CLI commands. Commands operate on a SQLite ledger
in --data-dir; accounts may be given as 0x addresses or as labels
("alice"), which map to deterministic addresses.
"""

import functools
import logging
from pathlib import Path

import click

from endow.utils.logger import setup_logging


def _open_treasury(ctx):
    """Open the persisted treasury in the context's data directory."""
    from endow.core.storage import StorageManager
    from endow.core.treasury import Treasury

    config = ctx.obj["config"]
    if not (ctx.obj["data_dir"] / config.db_name).exists():
        click.echo(f"❌ No ledger in {ctx.obj['data_dir']}")
        click.echo("   Create with: endow init")
        raise SystemExit(1)
    storage = StorageManager(ctx.obj["data_dir"], db_name=config.db_name)
    return Treasury(config=config, storage_manager=storage)


def _account(value: str) -> bytes:
    from endow.crypto import parse_address
    return parse_address(value)


def ledger_command(fn):
    """Report ledger errors as CLI failures instead of tracebacks."""
    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        from endow.core.errors import TreasuryError
        try:
            return fn(*args, **kwargs)
        except TreasuryError as e:
            click.echo(f"❌ {type(e).__name__}: {e}")
            raise SystemExit(1)
    return wrapper


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--log-file", is_flag=True, help="Also write logs to <log_dir>/endow.log")
@click.option("--data-dir", default=None, help="Data directory (default: config data_dir)")
@click.option("--config", "config_path", default=None, help="JSON config file")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, log_file, data_dir, config_path):
    """Endowment Treasury Ledger - staking treasury prototype"""
    from endow.core.config import load_config
    from endow.core.errors import InvalidParameter

    try:
        config = load_config(config_path)
    except InvalidParameter as e:
        click.echo(f"❌ {e}")
        raise SystemExit(1)

    level = logging.DEBUG if debug else logging.WARNING
    setup_logging(level=level, log_dir=config.log_dir.expanduser() if log_file else None)

    ctx.ensure_object(dict)
    ctx.obj["data_dir"] = Path(data_dir or config.data_dir).expanduser()
    ctx.obj["data_dir"].mkdir(parents=True, exist_ok=True)
    ctx.obj["config"] = config


# =============================================================================
# Setup Commands
# =============================================================================


@cli.command("init")
@click.option("--admin", default="admin", help="Admin account (granted every role)")
@click.pass_context
@ledger_command
def init(ctx, admin):
    """Create a new treasury ledger"""
    from endow.core.access import ALL_ROLES, DEFAULT_ADMIN
    from endow.core.storage import StorageManager
    from endow.core.treasury import Treasury
    from endow.crypto import to_checksum_address

    config = ctx.obj["config"]
    db_path = ctx.obj["data_dir"] / config.db_name
    if db_path.exists():
        click.echo(f"❌ Ledger already exists at {db_path}")
        raise SystemExit(1)

    admin_addr = _account(admin)
    treasury = Treasury(
        admin=admin_addr,
        config=config,
        storage_manager=StorageManager(ctx.obj["data_dir"], db_name=config.db_name),
    )
    for role in ALL_ROLES:
        if role != DEFAULT_ADMIN:
            treasury.grant_role(admin_addr, role, admin_addr)

    click.echo(f"✓ Treasury created at {db_path}")
    click.echo(f"  Admin: {to_checksum_address(admin_addr)}")
    click.echo(f"  Treasury address: {to_checksum_address(treasury.address)}")


@cli.command("grant")
@click.argument("role")
@click.argument("account")
@click.option("--as", "caller", default="admin", help="Acting admin")
@click.pass_context
@ledger_command
def grant(ctx, role, account, caller):
    """Grant ROLE (DEFAULT_ADMIN, FINANCE_ADMIN, DELEGATE) to ACCOUNT"""
    treasury = _open_treasury(ctx)
    if treasury.grant_role(_account(caller), role.upper(), _account(account)):
        click.echo(f"✓ Granted {role.upper()} to {account}")
    else:
        click.echo(f"  {account} already holds {role.upper()}")


@cli.command("faucet")
@click.argument("symbol", type=click.Choice(["PRIMARY", "LP", "SETTLE"], case_sensitive=False))
@click.argument("account")
@click.argument("amount", type=int)
@click.option("--as", "caller", default="admin", help="Acting admin")
@click.pass_context
@ledger_command
def faucet(ctx, symbol, account, amount, caller):
    """Mint AMOUNT of an asset to ACCOUNT"""
    treasury = _open_treasury(ctx)
    treasury.mint_asset(_account(caller), symbol.upper(), _account(account), amount)
    click.echo(f"✓ Minted {amount} {symbol.upper()} to {account}")


# =============================================================================
# Staking Commands
# =============================================================================


@cli.command("deposit")
@click.argument("account")
@click.option("--primary", default=0, type=int, help="Primary asset to stake")
@click.option("--lp", default=0, type=int, help="LP asset to stake")
@click.pass_context
@ledger_command
def deposit(ctx, account, primary, lp):
    """Stake assets held by ACCOUNT"""
    treasury = _open_treasury(ctx)
    settled = treasury.deposit(_account(account), primary, lp)
    click.echo(f"✓ Staked primary={primary}, lp={lp} (settled {settled} bonus)")


@cli.command("withdraw")
@click.argument("account")
@click.option("--primary", default=0, type=int, help="Primary asset to unstake")
@click.option("--lp", default=0, type=int, help="LP asset to unstake")
@click.option("--emergency", is_flag=True, help="Withdraw everything, forfeiting pending bonus")
@click.pass_context
@ledger_command
def withdraw(ctx, account, primary, lp, emergency):
    """Unstake assets of ACCOUNT"""
    treasury = _open_treasury(ctx)
    if emergency:
        amount_primary, amount_lp = treasury.emergency_withdraw(_account(account))
        click.echo(f"⚠️  Emergency withdrawal: primary={amount_primary}, lp={amount_lp}")
        return
    settled = treasury.withdraw(_account(account), primary, lp)
    click.echo(f"✓ Unstaked primary={primary}, lp={lp} (settled {settled} bonus)")


@cli.command("profit")
@click.argument("payer")
@click.argument("amount", type=int)
@click.pass_context
@ledger_command
def profit(ctx, payer, amount):
    """Deliver AMOUNT of settlement asset from PAYER as profit"""
    treasury = _open_treasury(ctx)
    receipt = treasury.receive_profit(_account(payer), amount)
    click.echo(f"✓ Profit {amount}: endowment={receipt.endowment_portion}, bonus={receipt.bonus_portion}")
    click.echo(f"  Pools: primary={receipt.bonus_primary}, lp={receipt.bonus_lp}")


# =============================================================================
# Delegate Commands
# =============================================================================


@cli.command("spend")
@click.argument("account")
@click.argument("amount", type=int)
@click.option("--as", "caller", default="admin", help="Acting delegate")
@click.pass_context
@ledger_command
def spend(ctx, account, amount, caller):
    """Spend AMOUNT of ACCOUNT's bonus"""
    treasury = _open_treasury(ctx)
    receipt = treasury.spend_bonus(_account(caller), _account(account), amount)
    click.echo(
        f"✓ Spent {amount}: lp={receipt.from_lp}, primary={receipt.from_primary}, burned={receipt.burned}"
    )


@cli.command("rebate")
@click.argument("account")
@click.argument("amount", type=int)
@click.option("--as", "caller", default="admin", help="Acting delegate")
@click.pass_context
@ledger_command
def rebate(ctx, account, amount, caller):
    """Refund AMOUNT of bonus to ACCOUNT"""
    treasury = _open_treasury(ctx)
    treasury.rebate_bonus(_account(caller), _account(account), amount)
    click.echo(f"✓ Rebated {amount} bonus to {account}")


@cli.command("burn")
@click.argument("beneficiary")
@click.argument("amount", type=int)
@click.option("--as", "caller", default="admin", help="Acting delegate")
@click.option("--quote", is_flag=True, help="Only show the payout")
@click.pass_context
@ledger_command
def burn(ctx, beneficiary, amount, caller, quote):
    """Burn AMOUNT of BENEFICIARY's primary asset for a payout"""
    treasury = _open_treasury(ctx)
    account = _account(beneficiary)
    if quote:
        endowment_portion, bonus_portion = treasury.get_burn_value_portions(account, amount)
        click.echo(f"Quote: endowment={endowment_portion}, bonus={bonus_portion}")
        click.echo(f"  Max burn: {treasury.max_burn_amount()}")
        return
    receipt = treasury.claim_and_burn_on_behalf(_account(caller), account, amount)
    click.echo(
        f"✓ Burned {amount}: paid {receipt.payout} "
        f"(endowment={receipt.endowment_portion}, bonus={receipt.bonus_portion})"
    )


# =============================================================================
# Inspection Commands
# =============================================================================


@cli.command("show")
@click.argument("account")
@click.pass_context
def show(ctx, account):
    """Show ACCOUNT's positions, bonus and balances"""
    from endow.core.state import PoolKind
    from endow.crypto import to_checksum_address

    treasury = _open_treasury(ctx)
    addr = _account(account)

    click.echo(f"Account {to_checksum_address(addr)}")
    click.echo("-" * 40)
    for kind in PoolKind:
        position = treasury.get_position(addr, kind)
        click.echo(f"  {kind.name:8} staked={position.amount} tally={position.reward_tally}")
    click.echo(f"  Pending bonus: {treasury.pending_bonus(addr)}")
    click.echo(f"  Total bonus:   {treasury.total_bonus(addr)}")
    for symbol, token in treasury.tokens.items():
        click.echo(f"  {symbol:8} balance={token.balance_of(addr)}")
    roles = treasury.access.roles_of(addr)
    if roles:
        click.echo(f"  Roles: {', '.join(roles)}")


@cli.command("params")
@click.option("--set", "assignment", nargs=2, default=None, help="NAME VALUE to update")
@click.option("--as", "caller", default="admin", help="Acting finance admin")
@click.pass_context
@ledger_command
def params(ctx, assignment, caller):
    """Show or update treasury parameters"""
    from endow.core.state import PoolKind

    treasury = _open_treasury(ctx)
    if assignment:
        name, raw = assignment
        value = int(raw)
        setters = {
            "endowment_percent": treasury.set_endowment_percent,
            "burn_limit": treasury.set_burn_limit,
            "burn_endowment_multiplier": treasury.set_burn_multiplier,
        }
        weights = {"weight_primary": PoolKind.PRIMARY, "weight_lp": PoolKind.LP}
        if name in weights:
            treasury.set_pool_weight(_account(caller), weights[name], value)
        elif name in setters:
            setters[name](_account(caller), value)
        else:
            click.echo(f"❌ Unknown parameter: {name}")
            raise SystemExit(1)
        click.echo(f"✓ {name} = {value}")
        return

    for name, value in treasury.parameters.to_dict().items():
        click.echo(f"  {name}: {value}")


@cli.command("history")
@click.argument("account", required=False)
@click.option("--limit", default=20, help="Max entries to show")
@click.pass_context
def history(ctx, account, limit):
    """Show the operation journal"""
    treasury = _open_treasury(ctx)
    entries = treasury.history(_account(account) if account else None, limit)
    if not entries:
        click.echo("No operations recorded.")
        return
    for entry in entries:
        click.echo(f"  #{entry['seq']} {entry['op']}: {entry['data']}")


@cli.command("stats")
@click.pass_context
def stats(ctx):
    """Show treasury statistics and invariant status"""
    treasury = _open_treasury(ctx)
    click.echo("Treasury Statistics")
    click.echo("-" * 40)
    for key, value in treasury.stats().items():
        click.echo(f"  {key}: {value}")

    violations = treasury.check_invariants()
    if violations:
        click.echo("⚠️  Invariant violations:")
        for violation in violations:
            click.echo(f"    - {violation}")
    else:
        click.echo("  Invariants: OK")


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
def demo():
    """Run an in-memory walkthrough of the treasury"""
    from endow.core.access import DELEGATE, FINANCE_ADMIN
    from endow.core.fixed_point import PRECISION
    from endow.core.treasury import Treasury, PRIMARY_SYMBOL, LP_SYMBOL, SETTLEMENT_SYMBOL
    from endow.crypto import address_from_label

    admin = address_from_label("admin")
    alice = address_from_label("alice")
    bob = address_from_label("bob")
    source = address_from_label("profit-source")

    click.echo("=" * 60)
    click.echo("  ENDOWMENT TREASURY - DEMO")
    click.echo("=" * 60)
    click.echo()

    treasury = Treasury(admin=admin)
    treasury.grant_role(admin, DELEGATE, admin)
    treasury.grant_role(admin, FINANCE_ADMIN, admin)
    treasury.set_burn_limit(admin, PRECISION // 10)

    treasury.mint_asset(admin, PRIMARY_SYMBOL, alice, 1_000 * PRECISION)
    treasury.mint_asset(admin, PRIMARY_SYMBOL, bob, 1_000 * PRECISION)
    treasury.mint_asset(admin, LP_SYMBOL, bob, 500 * PRECISION)
    treasury.mint_asset(admin, SETTLEMENT_SYMBOL, source, 10_000 * PRECISION)
    click.echo("📦 Minted primary to alice and bob, LP to bob, settlement to the profit source")

    treasury.deposit(alice, 600 * PRECISION, 0)
    treasury.deposit(bob, 200 * PRECISION, 500 * PRECISION)
    click.echo("🔒 alice stakes 600 primary; bob stakes 200 primary + 500 LP")

    receipt = treasury.receive_profit(source, 1_000 * PRECISION)
    click.echo(f"💰 Profit 1000: endowment={receipt.endowment_portion // PRECISION}, "
               f"bonus={receipt.bonus_portion // PRECISION}")
    click.echo(f"   alice bonus: {treasury.total_bonus(alice) / PRECISION:.4f}")
    click.echo(f"   bob bonus:   {treasury.total_bonus(bob) / PRECISION:.4f}")
    click.echo()

    spent = treasury.spend_bonus(admin, bob, 100 * PRECISION)
    click.echo(f"🧾 Delegate spends 100 of bob's bonus: lp={spent.from_lp / PRECISION:.4f}, "
               f"primary={spent.from_primary / PRECISION:.4f}, burned={spent.burned / PRECISION:.4f}")

    burn_amount = 100 * PRECISION
    endowment_portion, bonus_portion = treasury.get_burn_value_portions(alice, burn_amount)
    click.echo(f"🔥 alice burns 100 primary: quote endowment={endowment_portion / PRECISION:.4f}, "
               f"bonus={bonus_portion / PRECISION:.4f}")
    treasury.claim_and_burn_on_behalf(admin, alice, burn_amount)
    click.echo(f"   alice settlement balance: {treasury.settlement_token.balance_of(alice) / PRECISION:.4f}")
    click.echo()

    click.echo("📊 Final Statistics:")
    for key, value in treasury.stats().items():
        click.echo(f"  {key}: {value}")
    click.echo(f"  Invariants: {'OK' if not treasury.check_invariants() else treasury.check_invariants()}")
    click.echo()
    click.echo("✅ Demo complete!")


if __name__ == "__main__":
    cli()
