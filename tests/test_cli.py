import os

from obsred.application import Application
from obsred.cli.obsred import init_cli, parse_cli
from obsred.modules import ObservationManager


def test_parse_cli():
    args = parse_cli(init_cli(), ["config.yaml", "--log-level", "debug"])
    assert args["config"] == os.path.abspath("config.yaml")
    assert args["log_level"] == "debug"
    assert args["log_file"] is None


def test_application(tmp_path):
    config = tmp_path / "config.yaml"
    config.write_text(
        "class: obsred.modules.ObservationManager\n"
        "working_dir: %s\n"
        "observation: obs\n"
        "pipeline:\n"
        "  combine_method: median\n" % tmp_path
    )

    app = Application(str(config))
    assert isinstance(app._module, ObservationManager)
    assert app._module.pipeline_config.combine_method.name == "MEDIAN"
