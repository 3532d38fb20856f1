"""wsctl CLI entry point using Typer."""

from __future__ import annotations

import functools
import json
import logging
import sys
from pathlib import Path
from typing import Callable, Optional

import typer
from rich.table import Table

from wsctl.core.config import AppConfig, ConfigManager
from wsctl.core.context import Context, ContextStore, UserIdentity, require_workspace
from wsctl.core.errors import ExitCode, PersistenceError, WsctlError
from wsctl.core.logging import LOGGER_NAME, log_error, setup_logging
from wsctl.execution.apps import (
    SUPPORTED_APPS,
    build_invocation,
    clone_repositories,
    execute_invocation,
    resolve_git_repos,
)
from wsctl.execution.bridge import ExecutionBridge
from wsctl.execution.credentials import GoogleDefaultCredentials
from wsctl.resources.catalog import ResourceCatalog
from wsctl.resources.fetcher import HttpResourceFetcher, ResourceFetcher
from wsctl.resources.models import BqPathFormat, ResolveOptions, StewardshipType
from wsctl.ui import console, error, info, success, warn

PASSTHROUGH_SETTINGS = {"allow_extra_args": True, "ignore_unknown_options": True}


class CliState:
    """Per-invocation objects shared by every command."""

    def __init__(self, manager: ConfigManager, cwd: Optional[Path] = None):
        self.manager = manager
        self.store = ContextStore(manager.config, cwd=cwd)
        self._context: Optional[Context] = None
        self._fetcher: Optional[ResourceFetcher] = None
        self._credentials: Optional[GoogleDefaultCredentials] = None

    @property
    def config(self) -> AppConfig:
        return self.manager.config

    @property
    def context(self) -> Context:
        if self._context is None:
            self._context = self.store.load()
        return self._context

    @property
    def credentials(self) -> GoogleDefaultCredentials:
        if self._credentials is None:
            self._credentials = GoogleDefaultCredentials(timeout=self.config.server.timeout)
        return self._credentials

    @property
    def fetcher(self) -> ResourceFetcher:
        if self._fetcher is None:
            self._fetcher = HttpResourceFetcher(
                self.config.server.url,
                token_provider=self.credentials.access_token,
                timeout=self.config.server.timeout,
            )
        return self._fetcher

    def catalog(self) -> ResourceCatalog:
        return ResourceCatalog(self.context, store=self.store, fetcher=self.fetcher)

    def bridge(self) -> ExecutionBridge:
        context = require_workspace(self.context)
        return ExecutionBridge(self.config, context, catalog=self.catalog(), credentials=self.credentials)


def _main_callback(ctx: typer.Context) -> None:
    """Load configuration and set up logging for every command."""
    manager = ConfigManager()
    setup_logging(manager.config)
    ctx.obj = CliState(manager)


def _state(ctx: typer.Context) -> CliState:
    return ctx.find_object(CliState)


def handle_errors(func: Callable) -> Callable:
    """Turn classified wsctl errors into a console message and their exit code."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except PersistenceError as e:
            log_error(**e.to_dict())
            warn(f"{e.message} The change applies to this command only.")
            raise typer.Exit(e.exit_code)
        except WsctlError as e:
            log_error(**e.to_dict())
            error(e.message)
            raise typer.Exit(e.exit_code)

    return wrapper


app = typer.Typer(
    name="wsctl",
    help="Workspace-scoped cloud CLI: bind a directory to a workspace and run tools against it.",
    no_args_is_help=True,
    callback=_main_callback,
)
workspace_app = typer.Typer(help="Bind the current directory tree to a workspace.", no_args_is_help=True)
resource_app = typer.Typer(help="Manage and resolve workspace resources.", no_args_is_help=True)
app_app = typer.Typer(help="Run applications in the workspace.", no_args_is_help=True)
config_app = typer.Typer(help="View or change wsctl configuration.", no_args_is_help=True)
app.add_typer(workspace_app, name="workspace")
app.add_typer(resource_app, name="resource")
app.add_typer(app_app, name="app")
app.add_typer(config_app, name="config")


# --- Workspace commands ---


@workspace_app.command("bind")
@handle_errors
def workspace_bind(
    ctx: typer.Context,
    workspace_id: str = typer.Argument(..., help="Workspace id"),
    user_email: Optional[str] = typer.Option(None, "--user-email", help="Email of the logged-in user"),
    pet_sa_email: Optional[str] = typer.Option(None, "--pet-sa-email", help="User's pet service account"),
) -> None:
    """Bind this directory tree to a workspace and fetch its resources."""
    state = _state(ctx)
    description = state.fetcher.get_workspace(workspace_id)
    user = UserIdentity(email=user_email, pet_sa_email=pet_sa_email) if user_email else None
    context = state.store.bind(state.context, description, user)
    state.catalog().sync()
    success(f"Bound to workspace {context.workspace_id} at {state.store.workspace_dir()}")
    if context.user is None and not state.config.skip_credential_check:
        warn(
            "No user recorded for this workspace. "
            "Tool commands will refuse to run until you bind again with --user-email."
        )


@workspace_app.command("set")
@handle_errors
def workspace_set(
    ctx: typer.Context,
    workspace_id: str = typer.Argument(..., help="Workspace id"),
) -> None:
    """Switch an existing binding to another workspace."""
    state = _state(ctx)
    description = state.fetcher.get_workspace(workspace_id)
    state.store.set_workspace(state.context, description)
    state.catalog().sync()
    success(f"Workspace set to {workspace_id}")


@workspace_app.command("unbind")
@handle_errors
def workspace_unbind(ctx: typer.Context) -> None:
    """Forget the workspace bound to this directory tree."""
    state = _state(ctx)
    state.store.unbind(state.context)
    success("Workspace unbound")


@workspace_app.command("describe")
@handle_errors
def workspace_describe(ctx: typer.Context) -> None:
    """Show the bound workspace."""
    state = _state(ctx)
    context = require_workspace(state.context)
    table = Table(title="Workspace")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("ID", context.workspace_id)
    table.add_row("Name", context.workspace_name or "")
    table.add_row("Cloud platform", context.cloud_platform.value if context.cloud_platform else "")
    table.add_row("Google project", context.google_project_id or "")
    table.add_row("Server", f"{state.config.server.name} ({state.config.server.url})")
    table.add_row("User", context.user.email if context.user else "")
    table.add_row("Root directory", str(state.store.workspace_dir()))
    table.add_row("Current directory", str(state.store.current_dir_relative_to_workspace()))
    table.add_row("Resources", str(len(context.resources)))
    console.print(table)


# --- Resource commands ---


@resource_app.command("list")
@handle_errors
def resource_list(
    ctx: typer.Context,
    stewardship: Optional[StewardshipType] = typer.Option(None, "--stewardship", help="Filter by stewardship"),
) -> None:
    """List the workspace's resources."""
    catalog = _state(ctx).catalog()
    resources = catalog.list_by_stewardship(stewardship) if stewardship else catalog.list()
    table = Table(title="Resources")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="green")
    table.add_column("Stewardship")
    table.add_column("Description")
    for resource in resources:
        table.add_row(resource.name, resource.kind.value, resource.stewardship.value, resource.description)
    console.print(table)


@resource_app.command("describe")
@handle_errors
def resource_describe(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Resource name"),
) -> None:
    """Show all properties of a resource."""
    resource = _state(ctx).catalog().get(name)
    table = Table(title=resource.name)
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")
    _flat_table(table, resource.model_dump(mode="json"))
    console.print(table)


@resource_app.command("add")
@handle_errors
def resource_add(
    ctx: typer.Context,
    resource_id: str = typer.Argument(..., help="Id of an existing workspace resource"),
) -> None:
    """Add a workspace resource to the local catalog by id."""
    resource = _state(ctx).catalog().add_by_id(resource_id)
    success(f"Added {resource.kind.value} {resource.name}")


@resource_app.command("delete")
@handle_errors
def resource_delete(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Resource name"),
) -> None:
    """Remove a resource from the local catalog."""
    resource = _state(ctx).catalog().remove(name)
    success(f"Removed {resource.kind.value} {resource.name}")


@resource_app.command("sync")
@handle_errors
def resource_sync(ctx: typer.Context) -> None:
    """Refresh the local catalog from the workspace backend."""
    resources = _state(ctx).catalog().sync()
    success(f"Synced {len(resources)} resources")


@resource_app.command("update")
@handle_errors
def resource_update(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Resource name"),
    new_name: Optional[str] = typer.Option(None, "--new-name", help="New resource name"),
    description: Optional[str] = typer.Option(None, "--description", help="New description"),
) -> None:
    """Rename or re-describe a resource."""
    resource = _state(ctx).catalog().update(name, new_name=new_name, description=description)
    success(f"Updated {resource.name}")


@resource_app.command("resolve")
@handle_errors
def resource_resolve(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Resource name, or [data collection]/[resource]"),
    exclude_bucket_prefix: bool = typer.Option(
        False, "--exclude-bucket-prefix", help="Drop gs:// from bucket and object paths"
    ),
    bq_path: BqPathFormat = typer.Option(BqPathFormat.FULL_PATH, "--bq-path", help="BigQuery path format"),
    output_format: str = typer.Option("text", "--format", help="Output format: text or json"),
) -> None:
    """Resolve a resource to its cloud identifier."""
    options = ResolveOptions(exclude_bucket_prefix=exclude_bucket_prefix, bq_path_format=bq_path)
    catalog = _state(ctx).catalog()

    if output_format == "json":
        typer.echo(json.dumps(catalog.resolve_to_mapping(name, options), indent=2))
        return

    resolved = catalog.resolve(name, options)
    if isinstance(resolved, str):
        typer.echo(resolved)
    else:
        table = Table(show_header=True)
        table.add_column("NAME", style="cyan")
        table.add_column("PATH", style="green")
        for key, value in resolved.items():
            table.add_row(key, value)
        console.print(table)


# --- Application commands ---


@app_app.command("list")
def app_list() -> None:
    """List the applications with built-in support."""
    table = Table(title="Supported Apps")
    table.add_column("App", style="cyan")
    table.add_column("Install", style="green")
    for name, supported in SUPPORTED_APPS.items():
        table.add_row(name, supported.install_url or "")
    console.print(table)


@app_app.command("execute", context_settings=PASSTHROUGH_SETTINGS, add_help_option=False)
@handle_errors
def app_execute(ctx: typer.Context) -> None:
    """Run any command with the workspace environment."""
    exit_code = _state(ctx).bridge().run(execute_invocation(list(ctx.args)))
    raise typer.Exit(exit_code)


def _passthrough(name: str) -> Callable:
    @handle_errors
    def command(ctx: typer.Context) -> None:
        exit_code = _state(ctx).bridge().run(build_invocation(name, ctx.args))
        raise typer.Exit(exit_code)

    command.__doc__ = f"Call {name} in the workspace."
    return command


for _name in ("gcloud", "gsutil", "bq", "nextflow"):
    app.command(_name, context_settings=PASSTHROUGH_SETTINGS, add_help_option=False)(_passthrough(_name))


@app.command("git", context_settings=PASSTHROUGH_SETTINGS, add_help_option=False)
@handle_errors
def git(
    ctx: typer.Context,
    resource: Optional[str] = typer.Option(
        None, "--resource", help="Comma-separated git repository resources to clone"
    ),
    clone_all: bool = typer.Option(False, "--all", help="Clone every git repository in the workspace"),
) -> None:
    """Call git in the workspace, or clone the workspace's git repositories."""
    state = _state(ctx)
    names = [n for n in resource.split(",") if n] if resource else None
    if not (names or clone_all):
        raise typer.Exit(state.bridge().run(build_invocation("git", ctx.args)))

    bridge = state.bridge()
    urls = resolve_git_repos(bridge.catalog, names, clone_all, list(ctx.args))
    if not urls:
        info("No git repositories to clone.")
        return
    results = clone_repositories(bridge, urls)
    for url, code in results.items():
        if code != 0:
            error(f"Git clone for {url} failed")


# --- Config commands ---


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the current configuration."""
    state = _state(ctx)
    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    _flat_table(table, state.config.model_dump(mode="json"))
    console.print(table)
    info(f"Config file: {state.manager.config_path}")


@config_app.command("get")
def config_get(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Dot-notation key, e.g. server.url"),
) -> None:
    """Print one configuration value."""
    value = _state(ctx).manager.get(key)
    if value is None:
        error(f"Configuration key not found: {key}")
        raise typer.Exit(ExitCode.USER_ACTIONABLE)
    typer.echo(str(value))


@config_app.command("set")
def config_set(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Dot-notation key, e.g. runner"),
    value: str = typer.Argument(..., help="New value"),
) -> None:
    """Change one configuration value and save it."""
    manager = _state(ctx).manager
    try:
        manager.set(key, value)
    except (KeyError, ValueError) as e:
        error(str(e))
        raise typer.Exit(ExitCode.USER_ACTIONABLE)
    manager.save()
    success(f"{key} = {manager.get(key)}")


@config_app.command("reset")
def config_reset(ctx: typer.Context) -> None:
    """Restore the default configuration and save it."""
    manager = _state(ctx).manager
    manager.reset()
    manager.save()
    success(f"Configuration reset: {manager.config_path}")


def _flat_table(table: Table, data: dict, prefix: str = "") -> None:
    """Flatten nested dict into table rows."""
    for key, value in data.items():
        full_key = f"{prefix}{key}" if not prefix else f"{prefix}.{key}"
        if isinstance(value, dict):
            _flat_table(table, value, full_key)
        else:
            table.add_row(full_key, str(value))


def main() -> None:
    """Console-script entry point: unexpected failures exit with a dedicated code."""
    try:
        app()
    except Exception as e:
        logging.getLogger(LOGGER_NAME).exception("Unexpected error")
        error(f"Unexpected error: {e}")
        sys.exit(ExitCode.UNEXPECTED)


if __name__ == "__main__":
    main()
