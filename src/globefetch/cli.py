from __future__ import annotations

import json

import click

from .config import load_settings
from .errors import ConfigurationError
from .session import PollHost


def _echo_ready(reference: str) -> None:
    click.echo(json.dumps({"event": "artifact_ready", "reference": reference}))


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--style", type=str, help="Image style (meteosat, geoColor, natColor, ...)")
@click.option("--image-size", type=int, help="Target display size in pixels")
@click.option("--own-image-path", type=str, help="Explicit image URL overriding the style table")
@click.option("--update-interval", type=float, help="Seconds between fixed-URL fetches (0 = fetch once)")
@click.option("--retry-delay", type=float, help="Seconds before retrying a failed index lookup")
@click.option("--save-images/--no-save-images", "enable_image_saving", default=None, help="Archive new images")
@click.option("--log-level", type=click.Choice(["ERROR", "WARN", "INFO", "DEBUG"], case_sensitive=False), help="Log verbosity")
@click.option("--images-dir", type=click.Path(path_type=str), help="Artifacts directory")
@click.option("--logs-dir", type=click.Path(path_type=str), help="Log directory")
@click.option("--reference-base", type=str, help="Public URL prefix for artifact references")
@click.option("--user-agent", type=str, help="Custom user agent")
@click.option("--once", is_flag=True, help="Run a single poll cycle and exit")
def main(once: bool, **kwargs):
    """Poll a satellite image source and keep the current frame on disk."""
    try:
        settings = load_settings(kwargs)
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc
    host = PollHost(_echo_ready)
    session = host.start(settings)
    if once:
        host.scheduler.cancel_all()
        outcome = session.poller.run_cycle()
        if outcome.error:
            raise click.ClickException(outcome.error)
        return
    try:
        host.scheduler.run()
    except KeyboardInterrupt:  # pragma: no cover - interactive stop
        host.scheduler.cancel_all()


if __name__ == "__main__":  # pragma: no cover
    main()
