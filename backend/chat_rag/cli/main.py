"""CLI entrypoint for chat-rag."""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any, Optional

import requests
import typer
import uvicorn

from chat_rag.api.dependencies import ServiceContainer, build_services
from chat_rag.core.config import get_settings
from chat_rag.core.errors import ChatRagError

app = typer.Typer(name="chat-rag", help="chat-rag command-line interface")
listener_app = typer.Typer(name="listener", help="Control the DM listener of a running server")
app.add_typer(listener_app, name="listener")

DEFAULT_HOST = "http://127.0.0.1:8000"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip("/")
    env_host = os.environ.get("CHRAG_HOST")
    if env_host:
        return env_host.rstrip("/")
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    url = f"{_resolve_host(host)}{path}"
    try:
        resp = requests.request(method, url, timeout=60, **kwargs)
    except requests.RequestException as exc:
        typer.echo(f"Request to {url} failed: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _echo(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2))


def _run_locally(job) -> Any:
    async def runner() -> Any:
        services: ServiceContainer = build_services(get_settings())
        try:
            return await job(services)
        finally:
            await services.close()

    try:
        return asyncio.run(runner())
    except ChatRagError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


@app.command()
def query(
    q: str = typer.Argument(..., help="Question to ask"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Ask a question through the running server."""
    resp = _request("POST", "/rag", host=host, json={"query": q})
    _echo(resp.json())


@listener_app.command("start")
def listener_start(host: Optional[str] = typer.Option(None, "--host", help="Override backend host")) -> None:
    resp = _request("POST", "/rag/listen", host=host, json={"action": "start"})
    _echo(resp.json())


@listener_app.command("stop")
def listener_stop(host: Optional[str] = typer.Option(None, "--host", help="Override backend host")) -> None:
    resp = _request("POST", "/rag/listen", host=host, json={"action": "stop"})
    _echo(resp.json())


@listener_app.command("status")
def listener_status(host: Optional[str] = typer.Option(None, "--host", help="Override backend host")) -> None:
    resp = _request("GET", "/rag/listen", host=host)
    _echo(resp.json())


@app.command()
def serve(
    bind: str = typer.Option("127.0.0.1", "--bind", help="Bind address"),
    port: int = typer.Option(8000, "--port", help="Bind port"),
) -> None:
    """Run the HTTP API."""
    uvicorn.run("chat_rag.app:app", host=bind, port=port, log_config=None)


@app.command("ingest-messages")
def ingest_messages() -> None:
    """Vectorize the whole chat history in this process."""

    async def job(services: ServiceContainer):
        return await services.message_job.ingest_all_messages()

    result = _run_locally(job)
    _echo(result.to_dict())


@app.command("ingest-document")
def ingest_document(document_id: str = typer.Argument(..., help="Document identifier")) -> None:
    """Vectorize one uploaded document in this process."""

    async def job(services: ServiceContainer):
        return await services.document_pipeline.ingest_by_id(document_id)

    result = _run_locally(job)
    _echo(result.to_dict())


if __name__ == "__main__":
    app()
