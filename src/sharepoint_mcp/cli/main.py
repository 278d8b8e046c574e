"""Command-line interface for sharepoint-mcp."""

import sys
import webbrowser

import click

from sharepoint_mcp.__version__ import __version__


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """SharePoint MCP Server - Connect Claude to SharePoint document libraries.

    Provides tools for:
    - Authentication (authenticate, status, logout)
    - Folders (list, create, delete, tree view)
    - Documents (list, read, upload, update, delete, download, metadata)
    """
    pass


@main.command()
def mcp() -> None:
    """Start the MCP server for Claude Desktop integration.

    Authentication can be completed later with the 'authenticate' tool
    and the local auth server ('sharepoint-mcp auth-server').

    This command is typically invoked by Claude Desktop via the MCP protocol.
    """
    from sharepoint_mcp.auth import TokenStorage
    from sharepoint_mcp.config import load_config
    from sharepoint_mcp.server import main as server_main

    config = load_config()
    if not config.is_configured:
        click.echo("⚠️  SHAREPOINT_CLIENT_ID / SHAREPOINT_TENANT_ID not set.", err=True)

    token = TokenStorage(config.token_path).load()
    if token is None:
        click.echo(
            "⚠️  Not authenticated. Use the 'authenticate' tool or 'sharepoint-mcp setup'.",
            err=True,
        )
    elif token.is_expired() and not token.refresh_token:
        click.echo("⚠️  Token expired and cannot be refreshed.", err=True)

    # Start the MCP server (runs indefinitely)
    try:
        click.echo("Starting SharePoint MCP server...", err=True)
        server_main()
    except KeyboardInterrupt:
        click.echo("\nServer stopped.", err=True)
    except Exception as e:
        click.echo(f"❌ Server error: {e}", err=True)
        sys.exit(1)


@main.command("auth-server")
def auth_server() -> None:
    """Run the local OAuth callback server.

    Serves /auth/start and /auth/callback on the host and port of
    SHAREPOINT_REDIRECT_URI until interrupted.
    """
    from sharepoint_mcp.auth import OAuthClient, TokenStorage
    from sharepoint_mcp.auth.callback_server import create_callback_server
    from sharepoint_mcp.config import load_config

    config = load_config()
    if not config.is_configured:
        click.echo("⚠️  OAuth client not configured; only the status page will work.")

    oauth = OAuthClient(config, TokenStorage(config.token_path))
    try:
        server = create_callback_server(oauth, config)
    except OSError as e:
        click.echo(f"❌ Could not start auth server: {e}")
        sys.exit(1)

    click.echo(f"✓ Auth server running at {config.auth_server_url}")
    click.echo(f"  Start authentication: {config.auth_server_url}/auth/start")
    click.echo(f"  Callback URL: {config.redirect_uri}")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        click.echo("\nAuth server stopped.")
    finally:
        server.server_close()


@main.command()
def setup() -> None:
    """Set up SharePoint OAuth authentication.

    This will:
    1. Start the local callback server
    2. Open the browser for Microsoft sign-in
    3. Store tokens at ~/.sharepoint-mcp-tokens.json (or SHAREPOINT_TOKEN_PATH)

    Requires:
    - SHAREPOINT_CLIENT_ID, SHAREPOINT_CLIENT_SECRET and SHAREPOINT_TENANT_ID
    """
    from sharepoint_mcp.auth import OAuthClient, TokenStatus, TokenStorage
    from sharepoint_mcp.auth.callback_server import create_callback_server
    from sharepoint_mcp.auth.token_manager import TokenManager
    from sharepoint_mcp.config import load_config

    config = load_config()
    storage = TokenStorage(config.token_path)
    oauth = OAuthClient(config, storage)

    # Check if already authenticated
    if TokenManager(storage, oauth).get_status() == TokenStatus.VALID:
        click.echo("✓ Already authenticated!")
        click.echo(f"Token stored at: {storage.token_path}")
        click.echo("")

        if not click.confirm("Re-authenticate?"):
            return

    if not config.is_configured or not config.client_secret:
        click.echo("❌ Error: OAuth client credentials required")
        click.echo("")
        click.echo("Set environment variables:")
        click.echo("  export SHAREPOINT_CLIENT_ID='your-client-id'")
        click.echo("  export SHAREPOINT_CLIENT_SECRET='your-client-secret'")
        click.echo("  export SHAREPOINT_TENANT_ID='your-tenant-id'")
        sys.exit(1)

    try:
        server = create_callback_server(oauth, config)
    except OSError as e:
        click.echo(f"❌ Could not start auth server: {e}")
        sys.exit(1)

    start_url = f"{config.auth_server_url}/auth/start"
    click.echo("Starting OAuth authentication flow...")
    click.echo(f"Browser will open for Microsoft sign-in: {start_url}")
    click.echo("")
    webbrowser.open(start_url)

    try:
        while not server.authenticated:
            server.handle_request()
    except KeyboardInterrupt:
        click.echo("\n❌ Authentication cancelled.")
        sys.exit(1)
    finally:
        server.server_close()

    click.echo("✓ Authentication successful!")
    click.echo(f"Token stored at: {storage.token_path}")
    click.echo("")
    click.echo("Run 'sharepoint-mcp doctor' to verify setup.")


@main.command()
def logout() -> None:
    """Delete the stored SharePoint tokens."""
    from sharepoint_mcp.auth import TokenStorage
    from sharepoint_mcp.config import load_config

    storage = TokenStorage(load_config().token_path)
    if not storage.exists():
        click.echo("Not authenticated; nothing to remove.")
        return

    storage.clear()
    click.echo(f"✓ Removed tokens at {storage.token_path}")


@main.command()
def doctor() -> None:
    """Check configuration and authentication status.

    Verifies:
    1. OAuth client settings
    2. Site addressing
    3. Token validity
    """
    from sharepoint_mcp.auth import TokenStatus, TokenStorage
    from sharepoint_mcp.config import load_config

    config = load_config()

    click.echo("SharePoint MCP Status:")
    click.echo("")

    click.echo("Configuration:")
    for label, value in (
        ("SHAREPOINT_CLIENT_ID", config.client_id),
        ("SHAREPOINT_CLIENT_SECRET", config.client_secret),
        ("SHAREPOINT_TENANT_ID", config.tenant_id),
    ):
        click.echo(f"  {'✓' if value else '❌'} {label}")

    if config.site_id:
        click.echo(f"  ✓ Site ID: {config.site_id}")
    elif config.site_url:
        click.echo(f"  ✓ Site URL: {config.site_url}")
    else:
        click.echo("  ❌ SHAREPOINT_SITE_URL or SHAREPOINT_SITE_ID")

    click.echo(f"  Redirect URI: {config.redirect_uri}")
    click.echo("")

    if not config.is_configured:
        click.echo("❌ Setup required. Set the SHAREPOINT_* environment variables.")
        sys.exit(1)

    token = TokenStorage(config.token_path).load()

    click.echo("Authentication:")
    click.echo(f"  Token file: {config.token_path}")

    if token is None:
        status = TokenStatus.MISSING
    elif token.is_expired():
        status = TokenStatus.EXPIRED
    else:
        status = TokenStatus.VALID

    if status == TokenStatus.MISSING:
        click.echo("  ❌ Not authenticated")
        click.echo("")
        click.echo("Run 'sharepoint-mcp setup' to authenticate.")
        sys.exit(1)
    elif status == TokenStatus.EXPIRED:
        if token.refresh_token:
            click.echo("  ⚠️  Token expired (will refresh automatically on use)")
        else:
            click.echo("  ❌ Token expired and no refresh token is stored")
            click.echo("")
            click.echo("Run 'sharepoint-mcp setup' to re-authenticate.")
            sys.exit(1)
    else:
        click.echo("  ✓ Authenticated")
        click.echo(f"  Token expires: {token.expires_at.strftime('%Y-%m-%d %H:%M:%S UTC')}")

    click.echo("")
    click.echo("✓ Ready to use!")


if __name__ == "__main__":
    main()
