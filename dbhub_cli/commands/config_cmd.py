"""Configuration management commands."""

import typer

from ..config import get_config, CONFIG_FILE
from ..output import print_dict, print_success, print_error, print_json
from ..main import state


app = typer.Typer(help="Configuration management")


@app.command("set")
def set_config(
    key: str = typer.Argument(..., help="Configuration key (url, api-key)"),
    value: str = typer.Argument(..., help="Configuration value"),
) -> None:
    """Set a configuration value.

    Supported keys:
    - url: DBHub server URL
    - api-key: Personal API key (optional, needed for private databases)

    Configuration is saved to ~/.dbhub/config.yaml
    """
    try:
        config = get_config()
        config.set_value(key, value)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if state.json_output:
        print_json({"success": True, "key": key, "file": str(CONFIG_FILE)})
        return

    display_value = value
    if key.lower() in ("api-key", "api_key", "apikey"):
        display_value = config._mask_key(value) if value else ""

    print_success(f"Configuration updated: {key} = {display_value}")
    print_success(f"Saved to: {CONFIG_FILE}")


@app.command("get")
def get_config_value(
    key: str = typer.Argument(..., help="Configuration key (url, api-key)"),
) -> None:
    """Print a single configuration value (API keys are masked)."""
    config = get_config()
    try:
        value = config.get_value(key)
    except ValueError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if key.lower() in ("api-key", "api_key", "apikey") and value:
        value = config._mask_key(value)

    if state.json_output:
        print_json({"key": key, "value": value})
    else:
        print(value)


@app.command("show")
def show_config() -> None:
    """Show current configuration.

    Displays configuration from all sources:
    1. Environment variables (highest priority)
    2. Config file (~/.dbhub/config.yaml)
    3. Defaults

    API key is masked for security.
    """
    config = get_config()

    if state.json_output:
        print_json(config.to_dict())
        return

    print_dict(config.to_dict(), title="Current Configuration")

    if CONFIG_FILE.exists():
        print_success(f"\nConfig file: {CONFIG_FILE}")
    else:
        print_error(f"\nConfig file not found: {CONFIG_FILE}")
