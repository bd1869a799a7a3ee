"""Command line entrypoint for Send-It."""

import asyncio
import json
import logging
import sys
from typing import Any, Dict, Tuple

import click
import uvicorn

from .adapters.registry import build_registry
from .api.app import create_app
from .analyzer import AnalysisCache, FrameworkAnalyzer, GitHubClient, RateLimiter
from .collaborators import EnvTokenStore, InMemoryAnalysisStore
from .config import Settings
from .errors import RateLimitExceeded, SendItError
from .models import DeploymentConfig, DeploymentJob, JobStatus, Platform
from .orchestrator import DeploymentOrchestrator, DeploymentQueue, EventChannel, EventTypes, NdjsonEventSink, read_events

EXIT_CODES = {
    JobStatus.SUCCEEDED: 0,
    JobStatus.FAILED: 1,
    JobStatus.TIMED_OUT: 2,
    JobStatus.CANCELED: 130,
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


def _json_output(data: Dict[str, Any]) -> None:
    """Output data as JSON."""
    click.echo(json.dumps(data, indent=None))


def _parse_env(pairs: Tuple[str, ...]) -> Dict[str, str]:
    env_vars = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"Expected KEY=VALUE, got '{pair}'", param_hint="--env")
        key, value = pair.split("=", 1)
        env_vars[key.strip()] = value
    return env_vars


def _parse_options(pairs: Tuple[str, ...]) -> Dict[str, str]:
    options = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"Expected key=value, got '{pair}'", param_hint="--option")
        key, value = pair.split("=", 1)
        options[key.strip()] = value
    return options


def build_analyzer(settings: Settings, tokens: EnvTokenStore) -> FrameworkAnalyzer:
    client = GitHubClient(
        RateLimiter(),
        api_url=settings.github_api_url,
        token=tokens.get("github"),
        timeout=settings.request_timeout,
    )
    return FrameworkAnalyzer(client, cache=AnalysisCache(ttl=settings.cache_ttl), store=InMemoryAnalysisStore())


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx, verbose):
    """Send-It - analyze repositories and deploy them to hosting platforms."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _configure_logging(verbose)


@main.command()
@click.argument("repo")
@click.option("--json", "output_json", is_flag=True, help="Output machine-readable JSON")
def analyze(repo, output_json):
    """Detect the framework of a GitHub repository and score each platform."""
    settings = Settings.from_env()
    analyzer = build_analyzer(settings, EnvTokenStore())
    try:
        result = asyncio.run(analyzer.analyze(repo))
    except RateLimitExceeded as e:
        click.echo(f"GitHub rate limit exceeded; retry in {e.retry_after:.0f}s", err=True)
        sys.exit(1)
    except SendItError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)

    if output_json:
        _json_output(result.to_dict())
        return
    click.echo(f"Framework: {result.framework}")
    for platform, score in sorted(result.scores.items(), key=lambda item: -item[1]):
        click.echo(f"  {platform:<12} {score}")
    click.echo(f"Recommended: {result.best_platform}")


async def _run_deployment(
    job: DeploymentJob,
    settings: Settings,
    use_cli: bool,
    stream: bool,
) -> DeploymentJob:
    channel = EventChannel()
    channel.add_sink(NdjsonEventSink(settings.home))
    registry = build_registry(settings, EnvTokenStore(), use_cli=use_cli)
    orchestrator = DeploymentOrchestrator(registry, settings=settings, channel=channel)
    queue = DeploymentQueue(orchestrator)

    admission = queue.enqueue(job)
    if not admission.accepted:
        raise SendItError(admission.reason)

    if stream:
        async for event in channel.subscribe(job.id):
            _print_event(event.type, event.data)
    return await admission.handle.wait()


def _print_event(event_type: str, data: Dict[str, Any]) -> None:
    if event_type == EventTypes.STATUS:
        click.echo(f"[{data['status']}] {data.get('message', '')}", err=True)
    else:
        click.echo(f"  {data.get('message', '')}", err=True)


@main.command()
@click.option("--repo", required=True, help="GitHub repository URL or owner/repo")
@click.option("--platform", required=True, type=click.Choice([p.value for p in Platform]), help="Target platform")
@click.option("--env", "env_pairs", multiple=True, help="Environment variable KEY=VALUE (repeatable)")
@click.option("--option", "option_pairs", multiple=True, help="Platform option key=value (repeatable)")
@click.option("--project-name", help="Project/site name on the platform")
@click.option("--branch", help="Branch to deploy")
@click.option("--framework", help="Framework override")
@click.option("--build-command", help="Build command")
@click.option("--start-command", help="Start command (Cloud Run)")
@click.option("--root-directory", help="Directory of the app inside the repository")
@click.option("--environment", default="production", show_default=True, help="Target environment")
@click.option("--timeout", type=float, help="Polling deadline in seconds")
@click.option("--path", "repo_path", type=click.Path(file_okay=False), help="Local checkout (needed with --via-cli)")
@click.option("--via-cli", is_flag=True, help="Deploy to Vercel with the vercel CLI")
@click.option("--json", "output_json", is_flag=True, help="Output machine-readable JSON")
def deploy(repo, platform, env_pairs, option_pairs, project_name, branch, framework, build_command,
           start_command, root_directory, environment, timeout, repo_path, via_cli, output_json):
    """Deploy a repository and wait for the outcome."""
    try:
        settings = Settings.from_env()
        if timeout is not None:
            settings.poll.timeout = timeout
        config = DeploymentConfig(
            env_vars=_parse_env(env_pairs),
            project_name=project_name,
            branch=branch,
            framework=framework,
            build_command=build_command,
            start_command=start_command,
            root_directory=root_directory,
            environment=environment,
            options=_parse_options(option_pairs),
        )
        job = DeploymentJob(repo_url=repo, platform=platform, config=config, repo_path=repo_path)
        job = asyncio.run(_run_deployment(job, settings, via_cli, stream=not output_json))
    except SendItError as e:
        if output_json:
            _json_output({"status": "error", "error": {"kind": e.kind, "message": e.message}})
        else:
            click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("Deployment canceled", err=True)
        sys.exit(130)

    _report(job, output_json)
    sys.exit(EXIT_CODES.get(job.status, 1))


def _report(job: DeploymentJob, output_json: bool) -> None:
    if job.status == JobStatus.SUCCEEDED:
        result = {"id": job.deployment_id, "url": job.url, "readyState": "READY"}
        if output_json:
            _json_output({**result, "job_id": job.id})
        else:
            click.echo(f"Deployed: {job.url}")
        return

    error = job.last_error
    message = error.message if error else job.status.value
    if output_json:
        _json_output({
            "job_id": job.id,
            "id": job.deployment_id,
            "status": job.status.value,
            "error": error.to_dict() if error else None,
        })
    elif job.status == JobStatus.TIMED_OUT:
        click.echo(f"Timed out: {message}", err=True)
    elif job.status == JobStatus.CANCELED:
        click.echo(f"Canceled: {message}", err=True)
    else:
        click.echo(f"Deployment failed: {message}", err=True)


@main.command()
@click.argument("job_id")
@click.option("--json", "output_json", is_flag=True, help="Output raw NDJSON")
def events(job_id, output_json):
    """Show the event log of a job."""
    settings = Settings.from_env()
    try:
        records = read_events(settings.home, job_id)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)
    if not records:
        click.echo(f"No events found for {job_id}", err=True)
        sys.exit(2)

    for record in records:
        if output_json:
            _json_output(record)
        else:
            data = record.get("data", {})
            label = data.get("status") if record.get("type") == EventTypes.STATUS else "log"
            click.echo(f"{record.get('ts', '')} [{label}] {data.get('message', '')}")


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
def serve(host, port):
    """Run the REST API with uvicorn."""
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    main()
