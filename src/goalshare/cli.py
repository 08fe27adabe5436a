"""
Command Line Interface for goalshare.
"""

import asyncio
import click
from pathlib import Path
from .version import VERSION
from .config import Settings
from .models import Capability, HierarchicalPermissions, PermissionLevel, PropagationResult, ResourceType, SpecificOverrides
from .notify import LogNotifier
from .recovery import GoalshareError, PartialPropagationFailure
from .sharing import SharingService
from .store import YamlDocumentStore

RESOURCE_TYPES = click.Choice([t.value for t in ResourceType])
LEVELS = click.Choice([l.value for l in PermissionLevel if l is not PermissionLevel.OWNER])
CAPABILITIES = click.Choice([c.value for c in Capability])


def _service(ctx) -> SharingService:
    settings = ctx.obj
    store = YamlDocumentStore(settings.data_dir, settings.collection_prefix)
    return SharingService(store, notifier=LogNotifier())


def _run(coro):
    """Run a service call, turning domain errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except PartialPropagationFailure as e:
        _echo_result(e.result)
        click.echo(f"❌ Partially applied; failed: {', '.join(e.failed_ids)}")
        raise click.exceptions.Exit(1)
    except GoalshareError as e:
        click.echo(f"❌ {e}")
        raise click.exceptions.Exit(1)


def _parse_overrides(pairs):
    values = {}
    for pair in pairs:
        name, sep, raw = pair.partition("=")
        if not sep or raw.lower() not in ("true", "false"):
            raise click.BadParameter(f"expected name=true|false, got {pair!r}", param_hint="--override")
        if name not in SpecificOverrides.model_fields:
            raise click.BadParameter(f"unknown capability {name!r}", param_hint="--override")
        values[name] = raw.lower() == "true"
    return SpecificOverrides(**values) if values else None


def _echo_result(result: PropagationResult):
    click.echo(f"🔁 {result.operation.value} from {result.source}: {len(result.succeeded)} descendant(s) updated")
    for ref in result.skipped:
        click.echo(f"   ⏭️  {ref} (owned by {result.user_id})")
    for failure in result.failed:
        click.echo(f"   ❌ {failure.ref}: {failure.error}")


@click.group()
@click.version_option(version=VERSION, prog_name="goalshare")
@click.option('--data-dir', type=click.Path(file_okay=False, path_type=Path), default=None,
              help='Directory of the YAML document store')
@click.option('--env', 'environment', type=click.Choice(['development', 'production', 'test']), default=None,
              help='Environment whose collections to use')
@click.pass_context
def main(ctx, data_dir, environment):
    """
    goalshare - share areas, goals, milestones, tasks and routines.
    """
    settings = Settings.from_env()
    updates = {}
    if data_dir is not None:
        updates['data_dir'] = data_dir
    if environment is not None:
        updates['environment'] = environment
    ctx.obj = Settings.model_validate({**settings.model_dump(), **updates}) if updates else settings


@main.command()
@click.argument('resource_type', type=RESOURCE_TYPES)
@click.argument('resource_id')
@click.option('--yaml', 'as_yaml', is_flag=True, help='Print the normalized document as YAML')
@click.pass_context
def show(ctx, resource_type, resource_id, as_yaml):
    """Show who a resource is shared with."""
    service = _service(ctx)
    resource = _run(service.store.require(ResourceType(resource_type), resource_id))

    if as_yaml:
        click.echo(resource.to_yaml(), nl=False)
        return

    click.echo(f"📁 {resource.ref} {resource.name or ''}".rstrip())
    click.echo(f"   👤 Owner: {resource.owner_id}")
    if not resource.permissions:
        click.echo("   🔒 Not shared")
    for user_id, grant in resource.permissions.items():
        overrides = grant.specific_overrides.model_dump(exclude_none=True) if grant.specific_overrides else {}
        suffix = f" {overrides}" if overrides else ""
        click.echo(f"   🤝 {user_id}: {grant.level.value}{suffix}")
    for user_id in resource.pending_collaborators():
        click.echo(f"   ⏳ {user_id}: pending")


@main.command()
@click.argument('user_id')
@click.argument('resource_type', type=RESOURCE_TYPES)
@click.argument('resource_id')
@click.pass_context
def resolve(ctx, user_id, resource_type, resource_id):
    """Show a user's effective permissions on a resource."""
    service = _service(ctx)
    permissions = _run(service.effective_permissions(user_id, ResourceType(resource_type), resource_id))

    if permissions is None:
        click.echo(f"🚫 {user_id} has no access")
        return
    click.echo(f"🔑 {user_id}: {permissions.level.value}")
    if permissions.inherited_from is not None:
        click.echo(f"   ⬆️  inherited from {permissions.inherited_from.type.value}/{permissions.inherited_from.id}")


@main.command()
@click.argument('user_id')
@click.argument('resource_type', type=RESOURCE_TYPES)
@click.argument('resource_id')
@click.argument('capability', type=CAPABILITIES)
@click.pass_context
def check(ctx, user_id, resource_type, resource_id, capability):
    """Check whether a user holds a capability; exits 1 when denied."""
    service = _service(ctx)
    allowed = _run(service.can(user_id, ResourceType(resource_type), resource_id, capability))

    if allowed:
        click.echo(f"✅ {user_id} may {capability}")
    else:
        click.echo(f"🚫 {user_id} may not {capability}")
        raise click.exceptions.Exit(1)


@main.command()
@click.argument('actor_id')
@click.argument('resource_type', type=RESOURCE_TYPES)
@click.argument('resource_id')
@click.argument('user_id')
@click.option('--level', type=LEVELS, default='viewer', show_default=True, help='Permission level to grant')
@click.option('--override', 'overrides', multiple=True, help='Capability override, e.g. can_edit_tasks=true')
@click.pass_context
def share(ctx, actor_id, resource_type, resource_id, user_id, level, overrides):
    """Share a resource (and its descendants) with a user."""
    service = _service(ctx)
    grant = HierarchicalPermissions(level=PermissionLevel(level), specific_overrides=_parse_overrides(overrides))
    result = _run(service.share(actor_id, ResourceType(resource_type), resource_id, user_id, grant))

    click.echo(f"✅ Shared {resource_type}/{resource_id} with {user_id} as {level}")
    _echo_result(result)


@main.command()
@click.argument('actor_id')
@click.argument('resource_type', type=RESOURCE_TYPES)
@click.argument('resource_id')
@click.argument('user_id')
@click.option('--level', type=LEVELS, required=True, help='New permission level')
@click.option('--override', 'overrides', multiple=True, help='Capability override, e.g. can_edit_tasks=true')
@click.pass_context
def update(ctx, actor_id, resource_type, resource_id, user_id, level, overrides):
    """Change an existing collaborator's permissions."""
    service = _service(ctx)
    grant = HierarchicalPermissions(level=PermissionLevel(level), specific_overrides=_parse_overrides(overrides))
    result = _run(service.update_permissions(actor_id, ResourceType(resource_type), resource_id, user_id, grant))

    click.echo(f"✅ {user_id} is now {level} on {resource_type}/{resource_id}")
    _echo_result(result)


@main.command()
@click.argument('actor_id')
@click.argument('resource_type', type=RESOURCE_TYPES)
@click.argument('resource_id')
@click.argument('user_id')
@click.pass_context
def revoke(ctx, actor_id, resource_type, resource_id, user_id):
    """Remove a user's access to a resource and its descendants."""
    service = _service(ctx)
    result = _run(service.revoke(actor_id, ResourceType(resource_type), resource_id, user_id))

    click.echo(f"✅ Removed {user_id} from {resource_type}/{resource_id}")
    _echo_result(result)


if __name__ == "__main__":
    main()
