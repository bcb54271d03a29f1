"""Typer CLI entrypoint."""

from __future__ import annotations

from pathlib import Path

import typer
import yaml

from hl7conf.core.device_loader import device_to_document, load_device_description
from hl7conf.core.errors import Hl7confError
from hl7conf.core.service import HL7ConfigService

app = typer.Typer(help="HL7 application configuration stored in a hierarchical directory")
registry_app = typer.Typer(help="Inspect and edit the unique HL7 application names registry")
app.add_typer(registry_app, name="registry")


def _build_service() -> HL7ConfigService:
    service = HL7ConfigService()
    for warning in getattr(service, "load_warnings", ()):
        typer.echo(f"Warning: {warning}", err=True)
    return service


@app.command("apply")
def apply_device(path: Path = typer.Argument(..., help="YAML device description")) -> None:
    """Create a device from FILE or merge FILE into the stored device."""
    try:
        service = _build_service()
        device = load_device_description(path, service.facets)
        created = service.apply(device)
        typer.echo(f"{'Created' if created else 'Updated'} device {device.name}")
    except Hl7confError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("show")
def show_device(name: str) -> None:
    """Print a stored device as a YAML device description."""
    try:
        service = _build_service()
        device = service.load_device(name)
        typer.echo(yaml.safe_dump(device_to_document(device), sort_keys=False).rstrip())
    except Hl7confError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("remove")
def remove_device(name: str) -> None:
    """Remove a device and release its HL7 application names."""
    try:
        service = _build_service()
        service.remove(name)
        typer.echo(f"Removed device {name}")
    except Hl7confError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("devices")
def list_devices() -> None:
    """List stored devices."""
    try:
        service = _build_service()
        names = service.list_devices()
        if not names:
            typer.echo("No devices configured")
            return
        for name in names:
            typer.echo(name)
    except Hl7confError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("find")
def find_application(name: str) -> None:
    """Show the device and settings of an HL7 application."""
    try:
        service = _build_service()
        hl7_app = service.find_application(name)
        device = hl7_app.device
        typer.echo(f"{hl7_app.name} on {device.name if device else '<detached>'}")
        typer.echo(f"  installed: {'yes' if hl7_app.is_installed else 'no'}")
        typer.echo(f"  character set: {hl7_app.character_set}")
        if hl7_app.accepted_message_types:
            typer.echo(f"  message types: {', '.join(hl7_app.accepted_message_types)}")
        if hl7_app.accepted_sending_applications:
            typer.echo(f"  sending applications: {', '.join(hl7_app.accepted_sending_applications)}")
    except Hl7confError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@app.command("extensions")
def list_extensions() -> None:
    """List loaded extension facets and their attributes."""
    try:
        service = _build_service()
        if not service.facets:
            typer.echo("No extensions loaded")
            return
        for facet in sorted(service.facets.values(), key=lambda f: f.id):
            where = facet.placement if facet.rdn is None else f"{facet.placement} ({facet.rdn})"
            typer.echo(f"{facet.id}: {facet.name} [{where}]")
            for attr in facet.attributes:
                typer.echo(f"  {attr.name}{' (multi)' if attr.multi else ''}")
    except Hl7confError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@registry_app.command("list")
def registry_list() -> None:
    """List registered HL7 application names."""
    try:
        service = _build_service()
        names = service.list_registered_names()
        if not names:
            typer.echo("No HL7 application names registered")
            return
        for name in sorted(names):
            typer.echo(name)
    except Hl7confError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@registry_app.command("register")
def registry_register(name: str) -> None:
    """Reserve NAME in the registry."""
    try:
        service = _build_service()
        if not service.register_application(name):
            typer.echo(f"HL7 application name '{name}' is already registered", err=True)
            raise typer.Exit(code=1)
        typer.echo(f"Registered {name}")
    except Hl7confError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


@registry_app.command("unregister")
def registry_unregister(name: str) -> None:
    """Release NAME from the registry."""
    try:
        service = _build_service()
        service.unregister_application(name)
        typer.echo(f"Unregistered {name}")
    except Hl7confError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from None


def run() -> None:
    app()


if __name__ == "__main__":
    run()
