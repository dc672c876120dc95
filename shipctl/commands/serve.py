import typer

from shipctl.config import Config

app = typer.Typer(help="Run the read-only HTTP API")


@app.callback(invoke_without_command=True)
def serve(
    host: str = typer.Option(Config.API_HOST, help="Bind address"),
    port: int = typer.Option(Config.API_PORT, help="Bind port"),
    reload: bool = typer.Option(False, help="Reload on code changes"),
):
    """Serve cluster records and conditions over HTTP."""
    import uvicorn

    Config.validate()
    typer.echo(f"🌐 Serving shipctl API on http://{host}:{port}")
    uvicorn.run("shipctl.api.main:app", host=host, port=port, reload=reload)
