"""
Volume management commands.
"""

import json
from typing import Dict, List, Optional

import typer
from oslo_log import log as logging

from ibox_csi.controller import build_client, get_controller
from ibox_csi.controller.configuration import ProvisionerConfig, load_config
from ibox_csi.controller.models import (
    CapacityRange,
    ControllerExpandVolumeRequest,
    CreateVolumeRequest,
    DeleteVolumeRequest,
)
from ibox_csi.controller.utils import parse_size

app = typer.Typer(help="Volume management commands")

PROTOCOL_HELP = "Storage protocol: nfs or nfs_treeq"
CONFIG_FILE_HELP = "Configuration file with an [ibox_csi] section"


def _parse_params(params: List[str]) -> Dict[str, str]:
    parsed = {}
    for item in params:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected key=value, got {item!r}", param_hint="--param")
        parsed[key.strip()] = value.strip()
    return parsed


def _get_controller(protocol: str, config_file: Optional[str]):
    conf = load_config(config_file)
    logging.setup(conf, "ibox-csi")
    return get_controller(protocol, build_client(conf), ProvisionerConfig.from_conf(conf))


@app.command()
def create(
    name: str = typer.Argument(..., help="Volume name"),
    protocol: str = typer.Option("nfs", "--protocol", help=PROTOCOL_HELP),
    size: str = typer.Option(..., "--size", help="Capacity in bytes or with a unit (e.g., 10GiB)"),
    param: List[str] = typer.Option([], "--param", "-p", help="Storage class parameter key=value"),
    config_file: Optional[str] = typer.Option(None, "--config-file", help=CONFIG_FILE_HELP),
):
    """
    Create a new volume.

    Prints the volume id and its volume context.
    """
    try:
        parameters = _parse_params(param)
        capacity = parse_size(size)

        typer.echo(f"Creating {protocol} volume: {name}")

        controller = _get_controller(protocol, config_file)
        response = controller.create_volume(
            CreateVolumeRequest(
                name=name,
                capacity_range=CapacityRange(required_bytes=capacity),
                parameters=parameters,
            )
        )

        typer.echo(f"  Volume ID: {response.volume.volume_id}")
        typer.echo(f"  Capacity: {response.volume.capacity_bytes} bytes")
        typer.echo(json.dumps(response.volume.volume_context, indent=2, sort_keys=True))
        typer.echo(f"Volume {name} created successfully")

    except typer.BadParameter:
        raise
    except Exception as e:
        typer.echo(f"Error creating volume: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def expand(
    volume_id: str = typer.Argument(..., help="Volume ID"),
    protocol: str = typer.Option("nfs", "--protocol", help=PROTOCOL_HELP),
    size: str = typer.Option(..., "--size", help="New capacity in bytes or with a unit"),
    config_file: Optional[str] = typer.Option(None, "--config-file", help=CONFIG_FILE_HELP),
):
    """
    Expand a volume.
    """
    try:
        capacity = parse_size(size)

        typer.echo(f"Expanding volume: {volume_id}")

        controller = _get_controller(protocol, config_file)
        response = controller.controller_expand_volume(
            ControllerExpandVolumeRequest(
                volume_id=volume_id,
                capacity_range=CapacityRange(required_bytes=capacity),
            )
        )

        typer.echo(f"Volume {volume_id} expanded to {response.capacity_bytes} bytes")

    except Exception as e:
        typer.echo(f"Error expanding volume: {e}", err=True)
        raise typer.Exit(1)


@app.command()
def delete(
    volume_id: str = typer.Argument(..., help="Volume ID"),
    protocol: str = typer.Option("nfs", "--protocol", help=PROTOCOL_HELP),
    config_file: Optional[str] = typer.Option(None, "--config-file", help=CONFIG_FILE_HELP),
):
    """
    Delete a volume.

    Deleting a volume that no longer exists succeeds.
    """
    try:
        typer.echo(f"Deleting volume: {volume_id}")

        controller = _get_controller(protocol, config_file)
        controller.delete_volume(DeleteVolumeRequest(volume_id=volume_id))

        typer.echo(f"Volume {volume_id} deleted successfully")

    except Exception as e:
        typer.echo(f"Error deleting volume: {e}", err=True)
        raise typer.Exit(1)
