import argparse
import os
from typing import Type, Any

from obsred.version import version


def init_cli() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Reduce, solve and stack the frames of an observation.")

    # config
    parser.add_argument("config", type=str, help="Configuration file")

    # logging
    parser.add_argument(
        "--log-level", type=str, choices=["critical", "error", "warning", "info", "debug"], default="info"
    )
    parser.add_argument("-l", "--log-file", type=str, help="file to write log into")

    # debug stuff
    parser.add_argument("--debug-time", type=str, help="Fake time at start for obsred to use")

    # version
    parser.add_argument("-v", "--version", action="version", version=version())
    return parser


def parse_cli(parser: argparse.ArgumentParser, args: Any = None) -> dict[str, Any]:
    from obsred.utils.time import Time

    parsed = parser.parse_args(args)

    # set debug time now
    if parsed.debug_time is not None:
        delta = Time(parsed.debug_time) - Time.now()
        Time.set_offset_to_now(delta)

    # get full path of config
    if parsed.config:
        parsed.config = os.path.abspath(parsed.config)
    return vars(parsed)


def run(app_class: Type[Any], **kwargs: Any) -> None:
    """Run an obsred application with the given options.

    Args:
        app_class: Class to create app from
    """
    app = app_class(**kwargs)
    app.run()


def main() -> None:
    from obsred.application import Application

    args = parse_cli(init_cli())
    run(app_class=Application, **args)


if __name__ == "__main__":
    main()
