"""
Inventory Watch CLI - run checks and manage subscriptions.
"""

import click

from . import config
from .db import Store
from .main import loop as run_loop
from .main import run_once, setup_logging
from .providers import get_provider, provider_keys


def _validate_providers(ctx, param, value):
    for key in value:
        try:
            get_provider(key)
        except KeyError:
            raise click.BadParameter(f"unknown provider {key!r} (known: {', '.join(provider_keys())})")
    return value or tuple(provider_keys())


@click.group()
@click.option('--db', default=config.SQLITE_DB_PATH, help='Database path')
@click.pass_context
def cli(ctx, db):
    """Inventory Watch - email subscribers when new inventory shows up."""
    setup_logging()
    ctx.ensure_object(dict)
    store = Store(db, config.SQLITE_BUSY_TIMEOUT_SECONDS)
    store.init_db()
    ctx.obj['store'] = store


@cli.command()
@click.pass_context
def run(ctx):
    """Check every provider once."""
    try:
        summary = run_once(ctx.obj['store'].db_path)
    except RuntimeError as e:
        raise click.ClickException(str(e))
    for outcome in summary.outcomes:
        status = 'error' if outcome.error else ('changed' if outcome.changed else 'unchanged')
        click.echo(f"{outcome.key}: {status}, {outcome.sent} sent, {outcome.failed} failed")


@cli.command()
@click.option('--interval', '-i', default=config.SCRAPE_INTERVAL_MINUTES, type=int,
              help='Minutes between runs')
@click.pass_context
def loop(ctx, interval):
    """Check every provider on a fixed interval."""
    try:
        run_loop(interval, ctx.obj['store'].db_path)
    except RuntimeError as e:
        raise click.ClickException(str(e))


@cli.command()
@click.argument('email')
@click.option('--provider', '-p', multiple=True, callback=_validate_providers,
              help='Provider key (repeatable, default: all)')
@click.option('--base/--no-base', default=True, help='Opt into site-wide updates')
@click.option('--message-id', default=None, help='Existing thread anchor to reply to')
@click.pass_context
def subscribe(ctx, email, provider, base, message_id):
    """Subscribe EMAIL to one or more providers."""
    store = ctx.obj['store']
    for key in provider:
        store.add_subscription(email, key, base=base, message_id=message_id)
        click.echo(f"Subscribed {email} to {key}")


@cli.command()
@click.argument('email')
@click.option('--provider', '-p', multiple=True, callback=_validate_providers,
              help='Provider key (repeatable, default: all)')
@click.pass_context
def unsubscribe(ctx, email, provider):
    """Remove EMAIL's subscriptions."""
    store = ctx.obj['store']
    for key in provider:
        if store.remove_subscription(email, key):
            click.echo(f"Unsubscribed {email} from {key}")
        else:
            click.echo(f"{email} was not subscribed to {key}")


@cli.command()
@click.pass_context
def seed(ctx):
    """Subscribe every GMAIL_RECIPIENTS address to every provider."""
    if not config.GMAIL_RECIPIENTS:
        raise click.ClickException("GMAIL_RECIPIENTS is empty")
    store = ctx.obj['store']
    for email in config.GMAIL_RECIPIENTS:
        for key in provider_keys():
            store.add_subscription(email, key, base=True, message_id=config.MESSAGE_ID_REF)
    click.echo(f"Seeded {len(config.GMAIL_RECIPIENTS)} recipient(s) across {len(provider_keys())} provider(s)")


@cli.command()
@click.pass_context
def subscriptions(ctx):
    """List subscription records."""
    subs = ctx.obj['store'].list_subscriptions()
    if not subs:
        click.echo("No subscriptions.")
        return
    for sub in subs:
        flag = 'base' if sub.base else '-'
        click.echo(f"{sub.user_id}\t{sub.provider_key}\t{flag}\t{sub.message_id or ''}")


@cli.command()
@click.pass_context
def state(ctx):
    """Show the last observed state of each provider."""
    states = {s.provider_key: s for s in ctx.obj['store'].list_provider_states()}
    for key in provider_keys():
        s = states.get(key)
        if s is None:
            click.echo(f"{key}: never checked")
        elif s.product_links is not None:
            click.echo(f"{key}: {len(s.product_links)} item(s), first={s.product_links[0] if s.product_links else '-'}")
        else:
            click.echo(f"{key}: {s.updated_msg!r}")


def main():
    cli(obj={})


if __name__ == '__main__':
    main()
