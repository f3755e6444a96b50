"""CLI entrypoint: Typer app definition and command registration"""

import typer

from adfmd.cli.commands import roundtrip_cmd, to_adf_cmd, to_md_cmd


app = typer.Typer(name="adfmd", no_args_is_help=True, help="Extended markdown <-> ADF converter")

app.command(name="to-adf")(to_adf_cmd)
app.command(name="to-md")(to_md_cmd)
app.command(name="roundtrip")(roundtrip_cmd)
