from __future__ import annotations

import json
import logging

import click

from astro_cache.astro.engine import load_engine
from astro_cache.core.app import create_app
from astro_cache.utils.config import AppConfig

logger = logging.getLogger(__name__)


@click.command()
@click.option("--host", default="127.0.0.1", help="Interface to bind")
@click.option("--port", default=3001, help="Port to listen on for HTTP")
@click.option(
    "--log-level",
    default="INFO",
    help="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
)
@click.option(
    "--engine",
    "engine_path",
    envvar="ASTRO_ENGINE",
    required=True,
    help="Chart engine as 'module:attr' (class, factory or instance)",
)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="JSON config file; environment variables are used when omitted",
)
def main(host: str, port: int, log_level: str, engine_path: str, config_file: str | None) -> int:
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if config_file:
        with open(config_file, encoding="utf-8") as fh:
            config = AppConfig.from_dict(json.load(fh))
    else:
        config = AppConfig.from_env()

    try:
        engine = load_engine(engine_path)
    except (ImportError, AttributeError, TypeError, ValueError) as exc:
        raise click.BadParameter(str(exc), param_hint="--engine") from exc

    if not config.geocoder.api_key:
        logger.warning("OPENCAGE_API_KEY is not set; /api/geocode will return 500")
    if not config.interpreter.api_key:
        logger.warning("OPENROUTER_API_KEY is not set; /api/interpret will return 500")

    app = create_app(config, engine)

    import uvicorn

    uvicorn.run(app, host=host, port=port, log_level=log_level.lower())
    return 0


if __name__ == "__main__":
    main()
