import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import get_settings
from .errors import SliderError
from .llm_provider import describe_provider
from .models import Permissions, ProviderKind
from .services import Services, build_services
from .slide_templates import template_catalog
from .users import new_user_record

# Configure logging
logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

# Initialize Typer app
app = typer.Typer(
    name="slider-omni",
    help="Generate HTML slide presentations from a topic using AI",
    add_completion=False
)

# Initialize console for rich output
console = Console()


def _services() -> Services:
    services = build_services()
    services.initialize()
    return services


def _fail(error: Exception):
    console.print(f"[red]Error: {error}[/red]")
    raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", "--host", help="Host to bind the server to"),
    port: int = typer.Option(8000, "--port", help="Port to bind the server to"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes")
):
    """Start the FastAPI server"""

    console.print(f"[green]Starting server on {host}:{port}[/green]")

    import uvicorn
    uvicorn.run("slider_omni.backend.api:app", host=host, port=port, reload=reload)


@app.command("init-db")
def init_db():
    """Create the database schema and the configured initial admin"""
    settings = get_settings()
    _services()
    if settings.storage == "sqlite":
        console.print(f"[green]✓ Database ready at {settings.database_path}[/green]")
    else:
        console.print("[yellow]Storage is in-memory; nothing persisted[/yellow]")


@app.command("create-user")
def create_user(
    username: str = typer.Argument(..., help="Username"),
    email: str = typer.Option(..., "--email", "-e", help="Email address"),
    password: str = typer.Option(..., "--password", "-p", prompt=True, hide_input=True, help="Password"),
    admin: bool = typer.Option(False, "--admin", help="Grant the sudo permission")
):
    """Create a user directly in storage"""
    services = _services()
    try:
        record = new_user_record(username, email, password, permissions=Permissions(sudo=admin))
        services.auth.users.add(record)
    except SliderError as e:
        _fail(e)
    console.print(f"[green]✓ Created user {username}{' (admin)' if admin else ''}[/green]")


@app.command("reset-credits")
def reset_credits(username: str = typer.Argument(..., help="Username")):
    """Reset a user's omnitokens and omnicoins to the monthly baseline"""
    services = _services()
    if not services.ledger.reset(username):
        _fail(f"user not found: {username}")
    balances = services.ledger.balances(username)
    console.print(
        f"[green]✓ {username}: {balances['omnitokens']} omnitokens, {balances['omnicoins']} omnicoins[/green]"
    )


@app.command()
def users():
    """List users with their balances"""
    services = _services()

    table = Table(title="Users")
    table.add_column("Username", style="cyan")
    table.add_column("Admin", style="magenta")
    table.add_column("Omnitokens", justify="right")
    table.add_column("Omnicoins", justify="right")

    for user in services.auth.list_users():
        table.add_row(
            user["username"],
            "yes" if user["permissions"].get("sudo") else "",
            str(user["omnitokens"]),
            str(user["omnicoins"]),
        )

    console.print(table)


@app.command()
def templates():
    """Show the built-in templates and their layouts"""
    table = Table(title="Templates")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Theme", style="magenta")
    table.add_column("Layouts")

    for template in template_catalog():
        layouts = ", ".join(f"{l['id']} ({l['category']})" for l in template["layouts"])
        table.add_row(template["id"], template["name"], template["theme"], layouts)

    console.print(table)


@app.command("set-azure")
def set_azure(
    api_key: str = typer.Option(..., "--api-key", help="Azure OpenAI key"),
    endpoint: str = typer.Option(..., "--endpoint", help="Resource endpoint URL"),
    deployment: str = typer.Option(..., "--deployment", help="Deployment name"),
    api_version: str = typer.Option("2024-02-15-preview", "--api-version", help="API version"),
    activate: bool = typer.Option(False, "--activate", help="Make this the active provider")
):
    """Store the Azure OpenAI configuration"""
    services = _services()
    services.resolver.upsert_azure(api_key, endpoint, deployment, api_version)
    if activate:
        services.resolver.set_active(ProviderKind.AZURE)
    console.print(f"[green]✓ Azure provider saved{' and activated' if activate else ''}[/green]")


@app.command("set-openrouter")
def set_openrouter(
    api_key: str = typer.Option(..., "--api-key", help="OpenRouter key"),
    model: str = typer.Option(..., "--model", help="Model identifier"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Override the API base URL"),
    activate: bool = typer.Option(False, "--activate", help="Make this the active provider")
):
    """Store the OpenRouter configuration"""
    services = _services()
    services.resolver.upsert_openrouter(api_key, model, base_url)
    if activate:
        services.resolver.set_active(ProviderKind.OPENROUTER)
    console.print(f"[green]✓ OpenRouter provider saved{' and activated' if activate else ''}[/green]")


@app.command("activate-provider")
def activate_provider(provider: ProviderKind = typer.Argument(..., help="azure or openrouter")):
    """Make one configured provider the active one"""
    services = _services()
    try:
        services.resolver.set_active(provider)
    except SliderError as e:
        _fail(e)
    console.print(f"[green]✓ Active provider: {provider.value}[/green]")


@app.command()
def providers(test: bool = typer.Option(False, "--test", help="Send a test prompt to the active provider")):
    """List configured providers (keys masked)"""
    services = _services()

    table = Table(title="LLM Providers")
    table.add_column("Provider", style="cyan")
    table.add_column("Active", style="magenta")
    table.add_column("Key")
    table.add_column("Target")

    for config in services.resolver.repository.list():
        info = describe_provider(config)
        target = info.get("model") or info.get("deploymentName") or ""
        table.add_row(info["provider"], "✓" if info["isActive"] else "", info["apiKey"], target)

    console.print(table)

    if test:
        try:
            model = services.resolver.active_model()
        except SliderError as e:
            _fail(e)
        if model.test_connection():
            console.print(f"[green]✓ {model.name} answered[/green]")
        else:
            _fail(f"{model.name} did not answer")


@app.command()
def show(presentation_id: str = typer.Argument(..., help="Presentation id")):
    """Show a stored presentation's metadata"""
    services = _services()
    record = services.store.get(presentation_id)
    if record is None:
        _fail(f"presentation not found: {presentation_id}")

    console.print(f"\n[bold blue]Presentation: {record.title}[/bold blue]")
    console.print(f"[dim]Id: {record.id}[/dim]")
    console.print(f"[dim]Owner: {record.owner}[/dim]")
    console.print(f"[dim]Created: {record.created_at}[/dim]")
    console.print(f"[dim]Total slides: {record.slide_count}[/dim]\n")


@app.command()
def export(
    presentation_id: str = typer.Argument(..., help="Presentation id"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output file (default: <id>.html)"),
    as_json: bool = typer.Option(False, "--json", help="Write the full record as JSON")
):
    """Write a stored presentation to a file"""
    services = _services()
    record = services.store.get(presentation_id)
    if record is None:
        _fail(f"presentation not found: {presentation_id}")

    suffix = ".json" if as_json else ".html"
    path = Path(output or f"{presentation_id}{suffix}")
    if as_json:
        path.write_text(
            json.dumps(record.model_dump(by_alias=True, mode="json"), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
    else:
        path.write_text(record.html or "", encoding="utf-8")
    console.print(f"[green]✓ Saved to: {path}[/green]")


if __name__ == "__main__":
    app()
